"""Tests for LLM providers, prompt construction and response parsing."""

import json
from typing import Any, Dict, List

import pytest
import requests
from tenacity import wait_none

from structgraph.errors import EnrichmentError
from structgraph.llm import (
    AnthropicProvider,
    Enricher,
    GLMProvider,
    LLMEnricher,
    OllamaProvider,
    OpenAIProvider,
    build_prompt,
    clean_response,
    create_enricher,
    normalize_provider,
    parse_enrichment,
)

ANSWER = {
    "struct_description": "User service layer",
    "fields": [{"name": "repo", "description": "User repository"}],
    "methods": [{"name": "CreateUser", "description": "Creates a user"}],
}


class FakeResponse:
    def __init__(self, payload: Any, status: int = 200) -> None:
        self.payload = payload
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        return self.payload


class FakePost:
    """Stands in for ``requests.post``; replays queued replies, repeating the last."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.replies: List[Any] = []

    def __call__(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def fake_post(monkeypatch) -> FakePost:
    post = FakePost()
    monkeypatch.setattr(requests, "post", post)
    for cls in (AnthropicProvider, GLMProvider, OpenAIProvider, OllamaProvider):
        monkeypatch.setattr(cls, "wait", wait_none())
    return post


class TestProviders:
    """Request shapes and response extraction per backend."""

    def test_anthropic(self, fake_post: FakePost):
        fake_post.replies.append(FakeResponse({"content": [{"type": "text", "text": "hello"}]}))
        provider = AnthropicProvider(api_key="sk-ant")

        assert provider.generate("prompt") == "hello"
        call = fake_post.calls[0]
        assert call["url"] == "https://api.anthropic.com/v1/messages"
        assert call["headers"]["x-api-key"] == "sk-ant"
        assert call["headers"]["anthropic-version"] == "2023-06-01"
        assert call["json"]["model"] == "claude-sonnet-4-20250514"
        assert call["json"]["messages"] == [{"role": "user", "content": "prompt"}]
        assert call["timeout"] == 60

    def test_glm(self, fake_post: FakePost):
        fake_post.replies.append(FakeResponse({"choices": [{"message": {"content": "hi"}}]}))
        provider = GLMProvider(api_key="glm-key", model="glm-4-plus")

        assert provider.generate("prompt") == "hi"
        call = fake_post.calls[0]
        assert call["url"] == "https://open.bigmodel.cn/api/paas/v4/chat/completions"
        assert call["headers"]["Authorization"] == "Bearer glm-key"
        assert call["json"]["model"] == "glm-4-plus"

    def test_glm_error_payload(self, fake_post: FakePost):
        fake_post.replies.append(FakeResponse({"error": {"code": "1113", "message": "quota"}}))
        with pytest.raises(EnrichmentError, match="quota"):
            GLMProvider(api_key="k").generate("prompt")
        assert len(fake_post.calls) == 1

    def test_glm_error_string(self, fake_post: FakePost):
        fake_post.replies.append(FakeResponse({"error": "quota exceeded"}))
        with pytest.raises(EnrichmentError, match="quota exceeded"):
            GLMProvider(api_key="k").generate("prompt")

    def test_openai_custom_endpoint(self, fake_post: FakePost):
        fake_post.replies.append(FakeResponse({"choices": [{"message": {"content": "ok"}}]}))
        provider = OpenAIProvider(api_key="k", endpoint="http://localhost:8000/v1/chat/completions")
        assert provider.generate("prompt") == "ok"
        assert fake_post.calls[0]["url"] == "http://localhost:8000/v1/chat/completions"

    def test_ollama_needs_no_key(self, fake_post: FakePost):
        fake_post.replies.append(FakeResponse({"response": "local"}))
        provider = OllamaProvider()
        assert provider.is_configured()
        assert provider.generate("prompt") == "local"
        assert fake_post.calls[0]["json"]["stream"] is False

    def test_not_configured(self, fake_post: FakePost):
        with pytest.raises(EnrichmentError):
            GLMProvider().generate("prompt")
        assert fake_post.calls == []


class TestRetries:
    """Transport failures are retried, then surface as EnrichmentError."""

    def test_recovers(self, fake_post: FakePost):
        fake_post.replies.extend([
            requests.ConnectionError("refused"),
            requests.Timeout("slow"),
            FakeResponse({"response": "finally"}),
        ])
        assert OllamaProvider().generate("prompt") == "finally"
        assert len(fake_post.calls) == 3

    def test_gives_up_after_three_attempts(self, fake_post: FakePost):
        fake_post.replies.append(requests.ConnectionError("refused"))
        with pytest.raises(EnrichmentError, match="3 attempts"):
            OllamaProvider().generate("prompt")
        assert len(fake_post.calls) == 3

    def test_http_status_is_retried(self, fake_post: FakePost):
        fake_post.replies.append(FakeResponse({}, status=503))
        with pytest.raises(EnrichmentError):
            OpenAIProvider(api_key="k").generate("prompt")
        assert len(fake_post.calls) == 3

    def test_malformed_response_is_not_retried(self, fake_post: FakePost):
        fake_post.replies.append(FakeResponse({"content": []}))
        with pytest.raises(EnrichmentError, match="unexpected"):
            AnthropicProvider(api_key="k").generate("prompt")
        assert len(fake_post.calls) == 1


class TestResponseParsing:
    """Cleaning and decoding model answers."""

    @pytest.mark.parametrize("raw", [
        json.dumps(ANSWER),
        "```json\n" + json.dumps(ANSWER) + "\n```",
        "```\n" + json.dumps(ANSWER) + "\n```",
        "Here is the analysis:\n" + json.dumps(ANSWER) + "\nHope it helps.",
    ])
    def test_clean_and_parse(self, raw: str):
        enrichment = parse_enrichment(raw)
        assert enrichment.summary == "User service layer"
        assert enrichment.fields == {"repo": "User repository"}
        assert enrichment.methods == {"CreateUser": "Creates a user"}

    def test_clean_response_plain(self):
        assert clean_response('  {"a": 1}  ') == '{"a": 1}'

    def test_wrongly_shaped_lists_are_ignored(self):
        enrichment = parse_enrichment('{"struct_description": "ok", "fields": 5}')
        assert enrichment.summary == "ok"
        assert enrichment.fields == {}

    def test_summary_key_accepted(self):
        assert parse_enrichment('{"summary": "short"}').summary == "short"

    @pytest.mark.parametrize("raw", ["", "not json at all", "[1, 2, 3]", "{broken"])
    def test_invalid(self, raw: str):
        with pytest.raises(EnrichmentError):
            parse_enrichment(raw)


class TestPrompt:
    def test_contains_inputs(self):
        prompt = build_prompt("UserService", "service", "type UserService struct{}", "func (s *UserService) A() {}")
        assert "Struct name: UserService" in prompt
        assert "Package: service" in prompt
        assert "type UserService struct{}" in prompt
        assert "func (s *UserService) A() {}" in prompt
        assert '"struct_description"' in prompt

    def test_no_methods_placeholder(self):
        assert "// no methods" in build_prompt("A", "p", "type A struct{}", "")


class TestEnricher:
    """Factory and end-to-end enrichment."""

    def test_analyze(self, fake_post: FakePost):
        fenced = "```json\n" + json.dumps(ANSWER) + "\n```"
        fake_post.replies.append(FakeResponse({"choices": [{"message": {"content": fenced}}]}))
        enricher = create_enricher("glm", api_key="k")

        enrichment = enricher.analyze("UserService", "service", "type UserService struct{}", "")

        assert enrichment.summary == "User service layer"
        prompt = fake_post.calls[0]["json"]["messages"][0]["content"]
        assert "UserService" in prompt

    def test_factory_defaults(self):
        enricher = create_enricher("zhipu", api_key="k")
        assert isinstance(enricher, LLMEnricher)
        assert isinstance(enricher, Enricher)
        assert enricher.name == "glm"
        assert enricher.model == "glm-4-flash"
        assert enricher.provider_id == "glm:glm-4-flash"
        assert enricher.is_configured()

    def test_factory_model_override(self):
        enricher = create_enricher("claude", api_key="k", model="claude-opus")
        assert enricher.provider_id == "anthropic:claude-opus"

    def test_unconfigured(self):
        assert not create_enricher("openai").is_configured()

    @pytest.mark.parametrize("alias, expected", [
        ("claude", "anthropic"),
        ("Anthropic", "anthropic"),
        ("zhipu", "glm"),
        (" GLM ", "glm"),
        ("openai", "openai"),
        ("ollama", "ollama"),
    ])
    def test_normalize_provider(self, alias: str, expected: str):
        assert normalize_provider(alias) == expected

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="unsupported LLM provider"):
            create_enricher("bard")
