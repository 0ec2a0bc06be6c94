"""Local embedding provider served by Ollama.

Talks to Ollama's OpenAI-compatible ``/v1`` endpoint, so no API key is
needed.  The default model is ``nomic-embed-text``; any embedding model
Ollama has pulled can be configured with ``ollama_embedding_model``.

Ollama runs embedding models with a small default context, and a combined
page summary of a dense drawing easily exceeds it, so every input is cut
at a word boundary to ``ollama_embedding_max_chars`` first.  Vectors whose
length differs from the model's known dimension are rejected here instead
of reaching the embedding store.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from plansearch.config.settings import Settings
from plansearch.interfaces.embedding_provider import IEmbeddingProvider
from plansearch.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_OLLAMA_BATCH_LIMIT = 512

# Output dimensions of embedding models commonly pulled into Ollama.
_MODEL_DIMENSIONS: dict[str, int] = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "snowflake-arctic-embed": 1024,
    "bge-m3": 1024,
    "all-minilm": 384,
}


def _base_model(name: str) -> str:
    """``nomic-embed-text:latest`` -> ``nomic-embed-text``."""
    return name.split(":", 1)[0]


class NomicEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider for a model served by a local Ollama.

    An unknown model has no fixed dimension until its first vector comes
    back; that length is then pinned for the life of the provider.
    """

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # ignored by Ollama, required by the client
        )
        self._model = settings.ollama_embedding_model or "nomic-embed-text"
        self._dimension = _MODEL_DIMENSIONS.get(_base_model(self._model), 0)
        self._max_chars = settings.ollama_embedding_max_chars

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in batches of 512, truncated to the character budget.

        Raises
        ------
        EmbeddingError
            If a text is blank, Ollama fails, or a vector has the wrong
            dimension.
        """
        if not texts:
            return []
        if any(not t.strip() for t in texts):
            raise EmbeddingError(
                message="Cannot embed blank text",
                provider_name=self.get_provider_name(),
            )
        if self._max_chars > 0:
            texts = [self._truncate(t) for t in texts]

        vectors: list[list[float]] = []
        try:
            for start in range(0, len(texts), _OLLAMA_BATCH_LIMIT):
                batch = texts[start : start + _OLLAMA_BATCH_LIMIT]
                response = await self._client.embeddings.create(input=batch, model=self._model)
                vectors.extend(item.embedding for item in response.data)
                logger.debug("ollama_embedding_batch", model=self._model, batch_size=len(batch))
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Ollama embedding error for {self._model}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        for vector in vectors:
            self._check_dimension(vector)
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        if not result:
            raise EmbeddingError(
                message=f"Ollama returned no embedding for {self._model}",
                provider_name=self.get_provider_name(),
            )
        return result[0]

    def get_dimension(self) -> int:
        """Known or first observed vector length; ``0`` before any call for unknown models."""
        return self._dimension

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if Ollama answers and has the configured model pulled."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            if response.status_code != 200:
                return False
            models = response.json().get("models") or []
        except (httpx.HTTPError, ValueError):
            return False

        wanted = _base_model(self._model)
        if any(_base_model(str(m.get("name", ""))) == wanted for m in models):
            return True
        logger.warning("ollama_embedding_model_missing", model=self._model, base_url=self._base_url)
        return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_dimension(self, vector: list[float]) -> None:
        if not self._dimension:
            self._dimension = len(vector)
            return
        if len(vector) != self._dimension:
            raise EmbeddingError(
                message=(
                    f"{self._model} returned a {len(vector)}-dimensional vector; "
                    f"expected {self._dimension}"
                ),
                provider_name=self.get_provider_name(),
            )

    def _truncate(self, text: str) -> str:
        if len(text) <= self._max_chars:
            return text
        truncated = text[: self._max_chars].rsplit(" ", 1)[0]
        logger.debug(
            "truncating_embedding_input",
            original_chars=len(text),
            truncated_chars=len(truncated),
            model=self._model,
        )
        return truncated
