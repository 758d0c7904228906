"""Embedding generation via an OpenAI-compatible /embeddings endpoint."""

import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from newsroom.config import settings
from newsroom.errors import EmbeddingError

logger = logging.getLogger(__name__)


class Embedder:
    """Turns text into a fixed-length vector.

    Every caller treats failures as non-fatal: an article without a vector
    is still searchable lexically.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: Optional[str] = None,
        max_chars: Optional[int] = None,
    ):
        self.client = client
        self.model = model or settings.EMBEDDING_MODEL
        self.max_chars = max_chars or settings.EMBEDDING_INPUT_CHARS

    async def embed(self, text: str) -> list[float]:
        trimmed = (text or "")[: self.max_chars]
        if not trimmed.strip():
            raise EmbeddingError("Cannot embed empty text")

        try:
            response = await self.client.embeddings.create(model=self.model, input=trimmed)
        except openai.APIError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        values = list(response.data[0].embedding) if response.data else []
        if not values:
            raise EmbeddingError("Embedding service returned an empty vector")

        logger.debug(f"Generated embedding of length {len(values)} for text of length {len(trimmed)}")
        return values
