"""OpenAI-compatible API client shared by the classifier and the embedder.

The default base URL targets Gemini's OpenAI-compatible endpoint; any
provider speaking the same protocol (OpenAI, a local Ollama /v1) works.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI

from newsroom.config import settings

logger = logging.getLogger(__name__)


def create_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> AsyncOpenAI:
    """Build a client for injection into LLMClassifier and Embedder.

    SDK retries are disabled: rate limits and transient errors are handled
    by the job queue, not inside a single request.
    """
    key = api_key or settings.LLM_API_KEY
    if not key:
        raise ValueError(
            "LLM_API_KEY is required for classification and embeddings. "
            "Set it in environment variables."
        )
    client = AsyncOpenAI(
        api_key=key,
        base_url=base_url or settings.LLM_BASE_URL,
        timeout=timeout or settings.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )
    logger.debug(f"Created LLM client for {client.base_url}")
    return client
