# skillnorm/api/deps.py
from functools import lru_cache
from typing import Callable

import numpy as np

from skillnorm.llm.client import LLMClient
from skillnorm.nlp.embeddings import embed_texts


@lru_cache
def get_llm_client() -> LLMClient:
    # one client per process so the concurrency cap is shared by all requests
    return LLMClient()


def get_embedder() -> Callable[[list[str]], np.ndarray]:
    return embed_texts
