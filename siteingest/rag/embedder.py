"""Text embedder for crawled chunks.

Embedding providers
-------------------
``ollama`` (default)
    Calls the local Ollama REST API at ``/api/embeddings``.
    Configure via ``OLLAMA_BASE_URL`` and ``OLLAMA_EMBED_MODEL``.

``openai``
    Calls the OpenAI embeddings API.  Requires ``OPENAI_API_KEY``.
    Configure via ``OPENAI_EMBED_MODEL``.

``azure``
    Calls an Azure OpenAI embeddings deployment.  Requires
    ``AZURE_OPENAI_ENDPOINT``, ``AZURE_OPENAI_EMBED_DEPLOYMENT`` and
    ``AZURE_OPENAI_API_KEY``.

Set ``EMBEDDING_PROVIDER`` in your ``.env`` to switch providers.  Whatever
the provider, the returned vector must have ``EMBEDDING_DIM`` components
because the vector table is declared with that width.
"""

from __future__ import annotations

import os

import httpx

from siteingest.config import settings

_EMBED_TIMEOUT = 60.0


def _require_env(name: str) -> str:
    value = os.environ.get(name, "")
    if not value:
        raise EnvironmentError(
            f"{name} environment variable is not set "
            f"(EMBEDDING_PROVIDER={settings.embedding_provider!r})."
        )
    return value


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------

def _embed_ollama(text: str) -> list[float]:
    with httpx.Client(timeout=_EMBED_TIMEOUT) as client:
        response = client.post(
            f"{settings.ollama_base_url}/api/embeddings",
            json={"model": settings.ollama_embed_model, "prompt": text},
        )
        response.raise_for_status()
        return response.json()["embedding"]


def _embed_openai(text: str) -> list[float]:
    api_key = _require_env("OPENAI_API_KEY")
    with httpx.Client(timeout=_EMBED_TIMEOUT) as client:
        response = client.post(
            "https://api.openai.com/v1/embeddings",
            headers={"Authorization": f"Bearer {api_key}"},
            json={"model": settings.openai_embed_model, "input": text},
        )
        response.raise_for_status()
        return response.json()["data"][0]["embedding"]


def _embed_azure(text: str) -> list[float]:
    endpoint = _require_env("AZURE_OPENAI_ENDPOINT").rstrip("/")
    deployment = _require_env("AZURE_OPENAI_EMBED_DEPLOYMENT")
    api_key = _require_env("AZURE_OPENAI_API_KEY")
    api_version = os.environ.get("AZURE_OPENAI_API_VERSION", "2024-02-01")

    with httpx.Client(timeout=_EMBED_TIMEOUT) as client:
        response = client.post(
            f"{endpoint}/openai/deployments/{deployment}/embeddings",
            params={"api-version": api_version},
            headers={"api-key": api_key},
            json={"input": text},
        )
        response.raise_for_status()
        return response.json()["data"][0]["embedding"]


_PROVIDERS = {
    "ollama": _embed_ollama,
    "openai": _embed_openai,
    "azure": _embed_azure,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def embed_text(text: str) -> list[float]:
    """Return an embedding vector for *text*.

    Args:
        text: One chunk of page text.

    Returns:
        A list of ``settings.embedding_dim`` floats.

    Raises:
        httpx.HTTPError: If the embedding API call fails.
        EnvironmentError: If the selected provider's credentials are missing.
        ValueError: For an unknown provider or a vector of the wrong width.
    """
    provider = _PROVIDERS.get(settings.embedding_provider)
    if provider is None:
        raise ValueError(
            f"Unknown EMBEDDING_PROVIDER {settings.embedding_provider!r}; "
            f"expected one of {sorted(_PROVIDERS)}"
        )

    vector = provider(text)
    if len(vector) != settings.embedding_dim:
        raise ValueError(
            f"Embedding has {len(vector)} dimensions, expected "
            f"{settings.embedding_dim} (set EMBEDDING_DIM to match the model)"
        )
    return vector
