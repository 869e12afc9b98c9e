"""Unit tests for AI link analysis request handling and reply parsing."""

import json as jsonlib

import httpx
import pytest

from linkscope.core.analyzer import (
    LinkAnalyzer,
    ProxyLinkAnalyzer,
    build_prompt,
    create_analyzer,
    parse_analysis,
    strip_code_fences,
)
from linkscope.core.errors import (
    ExternalServiceError,
    LinkValidationError,
    MalformedResponseError,
)
from linkscope.models.config import AppConfig, Session
from linkscope.models.link import LinkType, Platform


def _completion(content):
    return {"choices": [{"message": {"content": content}}]}


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self.status_code = status_code
        self._payload = payload
        self.text = jsonlib.dumps(payload)

    def json(self):
        return self._payload


class _FakeAsyncClient:
    def __init__(self, calls, response=None, error=None):
        self.calls = calls
        self.response = response
        self.error = error

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def post(self, endpoint, headers=None, json=None):
        self.calls.append({"endpoint": endpoint, "headers": headers, "json": json})
        if self.error is not None:
            raise self.error
        return self.response


def _patch_client(monkeypatch, calls, response=None, error=None):
    monkeypatch.setattr(
        "linkscope.core.analyzer.httpx.AsyncClient",
        lambda timeout: _FakeAsyncClient(calls, response, error),
    )


class TestParseAnalysis:
    def test_strips_json_fence(self):
        text = '```json\n{"summary":"x","tags":["a"]}\n```'
        result = parse_analysis(text)
        assert result.summary == "x"
        assert result.tags == ["a"]

    def test_strips_plain_fence(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_unfenced_passthrough(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'

    def test_extra_keys_ignored(self):
        result = parse_analysis('{"summary":"s","tags":["t"],"confidence":0.9}')
        assert result.summary == "s"
        assert result.tags == ["t"]

    def test_missing_fields_default_empty(self):
        result = parse_analysis("{}")
        assert result.summary == ""
        assert result.tags == []

    def test_invalid_json_raises(self):
        with pytest.raises(MalformedResponseError):
            parse_analysis("Sure! Here is the summary: a video.")

    def test_non_object_raises(self):
        with pytest.raises(MalformedResponseError):
            parse_analysis('["summary", "tags"]')


class TestBuildPrompt:
    def test_video_with_context_and_platform(self):
        prompt = build_prompt(
            "https://youtu.be/x", "cooking show", LinkType.VIDEO, Platform.YOUTUBE
        )
        assert "Analyze this video link: https://youtu.be/x" in prompt
        assert "User context: cooking show" in prompt
        assert "Platform: youtube" in prompt

    def test_plain_link_omits_optional_lines(self):
        prompt = build_prompt("https://a.com", None, LinkType.LINK, Platform.OTHER)
        assert "Analyze this web link: https://a.com" in prompt
        assert "User context" not in prompt
        assert "Platform:" not in prompt


class TestLinkAnalyzer:
    @pytest.mark.asyncio
    async def test_payload_and_result(self, monkeypatch):
        calls = []
        _patch_client(
            monkeypatch,
            calls,
            _FakeResponse(_completion('```json\n{"summary":"x","tags":["a"]}\n```')),
        )
        analyzer = LinkAnalyzer(AppConfig(), "sk-test")

        result = await analyzer.analyze(
            "https://youtu.be/x", None, LinkType.VIDEO, Platform.YOUTUBE
        )

        assert result.summary == "x"
        assert result.tags == ["a"]
        assert len(calls) == 1
        assert calls[0]["endpoint"] == "https://api.openai.com/v1/chat/completions"
        assert calls[0]["headers"]["Authorization"] == "Bearer sk-test"
        body = calls[0]["json"]
        assert body["model"] == "gpt-4o"
        assert body["max_tokens"] == 300
        assert body["temperature"] == 0.3
        assert [m["role"] for m in body["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_request(self, monkeypatch):
        calls = []
        _patch_client(monkeypatch, calls, _FakeResponse(_completion("{}")))

        with pytest.raises(LinkValidationError):
            await LinkAnalyzer(AppConfig(), None).analyze(
                "https://a.com", None, LinkType.LINK, Platform.OTHER
            )
        assert calls == []

    @pytest.mark.asyncio
    async def test_non_2xx_carries_status(self, monkeypatch):
        _patch_client(monkeypatch, [], _FakeResponse({"error": "quota"}, status_code=429))

        with pytest.raises(ExternalServiceError) as exc_info:
            await LinkAnalyzer(AppConfig(), "sk-test").analyze(
                "https://a.com", None, LinkType.LINK, Platform.OTHER
            )
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_timeout_has_no_status(self, monkeypatch):
        _patch_client(monkeypatch, [], error=httpx.ReadTimeout("slow"))

        with pytest.raises(ExternalServiceError) as exc_info:
            await LinkAnalyzer(AppConfig(), "sk-test").analyze(
                "https://a.com", None, LinkType.LINK, Platform.OTHER
            )
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_malformed_reply(self, monkeypatch):
        _patch_client(monkeypatch, [], _FakeResponse(_completion("not json")))

        with pytest.raises(MalformedResponseError):
            await LinkAnalyzer(AppConfig(), "sk-test").analyze(
                "https://a.com", None, LinkType.LINK, Platform.OTHER
            )

    @pytest.mark.asyncio
    async def test_unexpected_body_shape(self, monkeypatch):
        _patch_client(monkeypatch, [], _FakeResponse({"choices": []}))

        with pytest.raises(MalformedResponseError):
            await LinkAnalyzer(AppConfig(), "sk-test").analyze(
                "https://a.com", None, LinkType.LINK, Platform.OTHER
            )


class TestProxyLinkAnalyzer:
    @pytest.mark.asyncio
    async def test_posts_link_fields_to_proxy(self, monkeypatch):
        calls = []
        _patch_client(
            monkeypatch, calls, _FakeResponse(_completion('{"summary":"s","tags":["t"]}'))
        )
        config = AppConfig(proxy_url="http://localhost:9000/api/analyze-link")

        result = await ProxyLinkAnalyzer(config).analyze(
            "https://tiktok.com/@a", "dance", LinkType.VIDEO, Platform.TIKTOK
        )

        assert result.summary == "s"
        assert calls[0]["endpoint"] == "http://localhost:9000/api/analyze-link"
        assert calls[0]["json"] == {
            "url": "https://tiktok.com/@a",
            "context": "dance",
            "type": "video",
            "platform": "tiktok",
        }
        assert "Authorization" not in calls[0]["headers"]

    @pytest.mark.asyncio
    async def test_proxy_error_status(self, monkeypatch):
        _patch_client(monkeypatch, [], _FakeResponse({"error": "x"}, status_code=500))

        with pytest.raises(ExternalServiceError) as exc_info:
            await ProxyLinkAnalyzer(AppConfig()).analyze(
                "https://a.com", None, LinkType.LINK, Platform.OTHER
            )
        assert exc_info.value.status_code == 500


class TestCreateAnalyzer:
    def test_direct_mode(self):
        analyzer = create_analyzer(
            AppConfig(analyzer_mode="direct"), Session(username="a", api_key="k")
        )
        assert isinstance(analyzer, LinkAnalyzer)
        assert analyzer.api_key == "k"

    def test_proxy_mode(self):
        analyzer = create_analyzer(AppConfig(), Session(username="a"))
        assert isinstance(analyzer, ProxyLinkAnalyzer)
