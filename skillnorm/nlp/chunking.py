# skillnorm/nlp/chunking.py
import re

# sentence ends at ., ! or ? followed by whitespace; blank lines and bullets also end one
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+|\n\s*\n|\n(?=\s*[-*•])")


def split_sentences(text: str) -> list[str]:
    if not isinstance(text, str):
        return []
    parts = (" ".join(p.split()) for p in _SENTENCE_END.split(text))
    return [p for p in parts if p]


def chunk_text(text: str, max_chars: int = 3000) -> list[str]:
    """
    Pack whole sentences into chunks of at most ``max_chars`` characters.

    A sentence is never split. A single sentence longer than ``max_chars``
    becomes its own oversized chunk.
    """
    chunks: list[str] = []
    current: list[str] = []
    size = 0
    for sentence in split_sentences(text):
        extra = len(sentence) + (1 if current else 0)
        if current and size + extra > max_chars:
            chunks.append(" ".join(current))
            current, size = [], 0
            extra = len(sentence)
        current.append(sentence)
        size += extra
    if current:
        chunks.append(" ".join(current))
    return chunks
