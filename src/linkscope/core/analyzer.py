"""AI link analysis against an OpenAI-style chat-completion endpoint."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from ..models.config import AppConfig, Session
from ..models.link import AnalysisResult, LinkType, Platform
from .errors import ExternalServiceError, LinkValidationError, MalformedResponseError

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are LinkScope AI, an expert at analyzing web content and categorizing links. "
    "You write clear summaries that capture the value of the content and pick searchable "
    "tags that are specific enough to be useful but general enough to group related "
    "content. Always respond with valid JSON only, no markdown formatting or extra text."
)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


def build_prompt(
    url: str,
    context: Optional[str],
    link_type: LinkType,
    platform: Platform,
) -> str:
    """Build the user instruction for one link."""
    kind = "video" if LinkType(link_type) == LinkType.VIDEO else "web"
    lines = [f"Analyze this {kind} link: {url}"]
    if context and context.strip():
        lines.append(f"User context: {context.strip()}")
    if platform and Platform(platform) != Platform.OTHER:
        lines.append(f"Platform: {Platform(platform).value}")

    lines.extend(
        [
            "",
            "Provide:",
            "1. summary: one clear, concise sentence describing what the link contains "
            "or what value it provides",
            "2. tags: 3-5 relevant, searchable tags; prefer broad tags (e.g. 'recipe' "
            "rather than 'pancake-recipe') and avoid generic ones like 'interesting'",
            "",
            "Respond with exactly one JSON object and nothing else:",
            '{"summary": "one-sentence-summary", "tags": ["tag1", "tag2", "tag3"]}',
        ]
    )
    return "\n".join(lines)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` or ``` ... ``` fence."""
    candidate = text.strip()
    candidate = _FENCE_OPEN.sub("", candidate, count=1)
    candidate = _FENCE_CLOSE.sub("", candidate, count=1)
    return candidate.strip()


def parse_analysis(text: str) -> AnalysisResult:
    """Parse a model reply into summary and tags.

    Extra keys are ignored. No recovery is attempted on invalid JSON.

    Raises:
        MalformedResponseError: If the reply is not a JSON object
    """
    candidate = strip_code_fences(text or "")
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Analyzer reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponseError("Analyzer reply is not a JSON object")

    summary = data.get("summary")
    tags = data.get("tags")

    return AnalysisResult(
        summary=summary if isinstance(summary, str) else "",
        tags=[str(t) for t in tags] if isinstance(tags, list) else [],
    )


def extract_reply_text(data: Dict[str, Any]) -> str:
    """Pull choices[0].message.content out of a chat-completion body.

    Raises:
        MalformedResponseError: If the body does not have that shape
    """
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponseError(f"Unexpected chat-completion shape: {e}") from e

    if not isinstance(content, str):
        raise MalformedResponseError("Chat-completion content is not text")
    return content


def _raise_for_status(service: str, response: httpx.Response) -> None:
    if 200 <= response.status_code < 300:
        return
    logger.error(f"{service} error {response.status_code}: {response.text[:500]}")
    raise ExternalServiceError(
        f"{service} returned HTTP {response.status_code}",
        status_code=response.status_code,
    )


async def request_chat_completion(
    config: AppConfig,
    api_key: str,
    url: str,
    context: Optional[str],
    link_type: LinkType,
    platform: Platform,
) -> Dict[str, Any]:
    """Send one analysis request upstream and return the raw JSON body.

    Used both by the direct analyzer and by the server-side proxy.

    Raises:
        ExternalServiceError: On non-2xx status, timeout or network failure
    """
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    body = {
        "model": config.openai_model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(url, context, link_type, platform)},
        ],
        "max_tokens": config.max_tokens,
        "temperature": config.temperature,
    }

    try:
        async with httpx.AsyncClient(timeout=config.request_timeout_seconds) as client:
            response = await client.post(config.openai_endpoint, headers=headers, json=body)
    except httpx.TimeoutException as e:
        raise ExternalServiceError("OpenAI request timed out") from e
    except httpx.HTTPError as e:
        raise ExternalServiceError(f"OpenAI request failed: {e}") from e

    _raise_for_status("OpenAI API", response)

    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponseError(f"OpenAI returned a non-JSON body: {e}") from e


class LinkAnalyzer:
    """Calls the LLM endpoint directly with the caller's own key."""

    def __init__(self, config: AppConfig, api_key: Optional[str]):
        self.config = config
        self.api_key = api_key

    async def analyze(
        self,
        url: str,
        context: Optional[str],
        link_type: LinkType,
        platform: Platform,
    ) -> AnalysisResult:
        """Return summary and tags for one link.

        Raises:
            LinkValidationError: If no API key is configured
            ExternalServiceError: If the endpoint fails
            MalformedResponseError: If the reply cannot be parsed
        """
        if not self.api_key:
            raise LinkValidationError("OpenAI API key is required")

        data = await request_chat_completion(
            self.config, self.api_key, url, context, link_type, platform
        )
        return parse_analysis(extract_reply_text(data))


class ProxyLinkAnalyzer:
    """Calls the same-origin analyze proxy; the server holds the key."""

    def __init__(self, config: AppConfig):
        self.config = config

    async def analyze(
        self,
        url: str,
        context: Optional[str],
        link_type: LinkType,
        platform: Platform,
    ) -> AnalysisResult:
        """Return summary and tags for one link via the proxy.

        Raises:
            ExternalServiceError: If the proxy answers with a non-2xx status
            MalformedResponseError: If the reply cannot be parsed
        """
        payload = {
            "url": url,
            "context": context or "",
            "type": LinkType(link_type).value,
            "platform": Platform(platform).value,
        }

        try:
            async with httpx.AsyncClient(timeout=self.config.request_timeout_seconds) as client:
                response = await client.post(
                    self.config.proxy_url,
                    headers={"Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.TimeoutException as e:
            raise ExternalServiceError("Analyze proxy timed out") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Analyze proxy request failed: {e}") from e

        _raise_for_status("Analyze proxy", response)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Analyze proxy returned a non-JSON body: {e}") from e

        return parse_analysis(extract_reply_text(data))


def create_analyzer(config: AppConfig, session: Session):
    """Pick the analyzer variant configured by analyzer_mode."""
    if config.analyzer_mode == "direct":
        return LinkAnalyzer(config, session.api_key)
    return ProxyLinkAnalyzer(config)
