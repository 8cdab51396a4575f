# skillnorm/nlp/normalizer.py
from typing import Any


def normalize(raw: Any) -> str:
    """Canonical comparison key: trimmed, lower-cased, single-spaced.

    This is the only canonical form in the system; the skills table's
    unique constraint, the similarity matcher and per-document dedup
    all compare these keys. Non-strings map to "".
    """
    if not isinstance(raw, str):
        return ""
    return " ".join(raw.split()).lower()


def display_name(raw: Any) -> str:
    """Human-facing skill name. Not an identity; never compare on it.

    Keeps the caller's casing when it has any upper-case letters
    ("SQL", "Node.js"), otherwise capitalizes each word.
    """
    if not isinstance(raw, str):
        return ""
    name = " ".join(raw.split())
    if name and not any(ch.isupper() for ch in name):
        name = " ".join(w[:1].upper() + w[1:] for w in name.split(" "))
    return name

