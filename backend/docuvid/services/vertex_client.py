"""Shared google-genai clients for Vertex AI and transient-error classification.

Credentials come from Application Default Credentials; a .env file may set
GOOGLE_APPLICATION_CREDENTIALS for local runs.
"""

import httpx
from dotenv import load_dotenv
from google import genai
from google.genai.errors import ClientError, ServerError

from docuvid.config import settings

load_dotenv()

# Image preview models only served from the global endpoint
GLOBAL_REGION_MODELS = {
    "gemini-3-pro-image-preview",
}

_clients: dict[str, genai.Client] = {}


def location_for_model(model_id: str) -> str:
    if model_id in GLOBAL_REGION_MODELS:
        return "global"
    return settings.google_cloud.location


def get_vertex_client(location: str | None = None) -> genai.Client:
    """Return the cached Vertex AI client for a location, creating it once.

    Raises:
        RuntimeError: If google_cloud.project_id is not configured.
    """
    project_id = settings.google_cloud.project_id
    if not project_id:
        raise RuntimeError(
            "Google Cloud project is not configured. "
            "Set DOCUVID_GOOGLE_CLOUD__PROJECT_ID or google_cloud.project_id in config.yaml"
        )

    location = location or settings.google_cloud.location
    client = _clients.get(location)
    if client is None:
        client = genai.Client(vertexai=True, project=project_id, location=location)
        _clients[location] = client
    return client


def is_transient_error(exc: BaseException) -> bool:
    """Classify a backend exception as retryable.

    5xx responses, HTTP 429 and connection-level failures are transient;
    any other client error is a definitive rejection. A wrapping error (such
    as a StorageError raised from an httpx failure) is judged by its cause.
    """
    if isinstance(exc, ServerError):
        return True
    if isinstance(exc, ClientError):
        return exc.code == 429
    if isinstance(exc, (ConnectionError, TimeoutError, httpx.TransportError)):
        return True
    return exc.__cause__ is not None and is_transient_error(exc.__cause__)
