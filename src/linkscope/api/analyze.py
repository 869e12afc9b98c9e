"""Same-origin analyze proxy; the OpenAI key never leaves the server."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..config import is_placeholder_secret
from ..core.analyzer import request_chat_completion
from ..core.classifier import classify
from ..core.errors import ExternalServiceError, MalformedResponseError
from ..models.link import LinkType, Platform

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.api_route("/analyze-link", methods=["GET", "PUT", "PATCH", "DELETE"])
async def analyze_link_wrong_method():
    """Only POST is accepted."""
    return _error(405, "Method not allowed")


@router.post("/analyze-link")
async def analyze_link(request: Request):
    """Forward one link to the chat-completion API and relay its JSON body.

    The caller extracts choices[0].message.content itself.
    """
    from . import runtime_config, runtime_env_settings

    api_key = runtime_env_settings.openai_api_key if runtime_env_settings else None
    if is_placeholder_secret(api_key):
        return _error(500, "OpenAI API key not configured")

    try:
        body = await request.json()
    except ValueError:
        body = None

    if not isinstance(body, dict) or not body.get("url"):
        return _error(400, "Missing url")

    url = body["url"]
    context = body.get("context")
    if not isinstance(url, str) or not (context is None or isinstance(context, str)):
        return _error(400, "url and context must be strings")

    derived_type, derived_platform = classify(url)
    try:
        link_type = LinkType(body.get("type") or derived_type)
    except (TypeError, ValueError):
        link_type = derived_type
    try:
        platform = Platform(body.get("platform") or derived_platform)
    except (TypeError, ValueError):
        platform = Platform.OTHER

    try:
        data = await request_chat_completion(
            runtime_config,
            api_key.strip(),
            url,
            context,
            link_type,
            platform,
        )
    except ExternalServiceError as e:
        if e.status_code is not None:
            return _error(e.status_code, "OpenAI API error")
        logger.error(f"Analyze proxy failed: {e}")
        return _error(500, "Failed to call OpenAI API")
    except MalformedResponseError as e:
        logger.error(f"Analyze proxy got an unreadable upstream body: {e}")
        return _error(500, "Failed to call OpenAI API")

    return JSONResponse(status_code=200, content=data)
