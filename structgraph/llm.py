"""LLM-backed enrichment: Anthropic Claude, Zhipu GLM, OpenAI-compatible and Ollama."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import EnrichmentError
from .models import Enrichment

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60
MAX_ATTEMPTS = 3
MAX_TOKENS = 2048

DEFAULT_MODELS = {
    "glm": "glm-4-flash",
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o-mini",
    "ollama": "qwen2.5-coder:7b",
}

PROVIDER_ALIASES = {
    "claude": "anthropic",
    "anthropic": "anthropic",
    "glm": "glm",
    "zhipu": "glm",
    "openai": "openai",
    "ollama": "ollama",
}


@runtime_checkable
class Enricher(Protocol):
    """Anything that can describe a struct; must be safe to call from threads."""

    name: str
    model: str

    @property
    def provider_id(self) -> str: ...

    def is_configured(self) -> bool: ...

    def analyze(self, symbol_name: str, package: str, declaration: str, methods_source: str) -> Enrichment: ...


# ===================================================================
# Providers
# ===================================================================

class LLMProvider:
    """Base class for LLM providers."""

    name = "base"
    default_endpoint = ""
    wait = wait_exponential(multiplier=1, min=1, max=10)

    def __init__(self, model: str = "", api_key: str = "", endpoint: str = "") -> None:
        self.model = model or DEFAULT_MODELS.get(self.name, "")
        self.api_key = api_key
        self.endpoint = endpoint or self.default_endpoint

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate(self, prompt: str) -> str:
        """Send ``prompt`` and return the completion text.

        Transport errors are retried with exponential backoff; the last
        failure surfaces as :class:`EnrichmentError`.
        """
        if not self.is_configured():
            raise EnrichmentError(f"{self.name} provider is not configured")
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(MAX_ATTEMPTS),
                wait=self.wait,
                retry=retry_if_exception_type(requests.RequestException),
                reraise=True,
            ):
                with attempt:
                    return self._request(prompt)
        except requests.RequestException as exc:
            raise EnrichmentError(f"{self.name} request failed after {MAX_ATTEMPTS} attempts: {exc}") from exc
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as exc:
            raise EnrichmentError(f"unexpected {self.name} response: {exc}") from exc
        raise EnrichmentError(f"{self.name} returned no response")

    def _request(self, prompt: str) -> str:
        raise NotImplementedError

    def _post(self, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(
            self.endpoint,
            headers={"Content-Type": "application/json", **headers},
            json=payload,
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        return response.json()


class AnthropicProvider(LLMProvider):
    """Anthropic Claude messages API."""

    name = "anthropic"
    default_endpoint = "https://api.anthropic.com/v1/messages"

    def _request(self, prompt: str) -> str:
        parsed = self._post(
            {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
            {
                "model": self.model,
                "max_tokens": MAX_TOKENS,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        return parsed["content"][0]["text"]


class GLMProvider(LLMProvider):
    """Zhipu GLM chat completions API."""

    name = "glm"
    default_endpoint = "https://open.bigmodel.cn/api/paas/v4/chat/completions"

    def _request(self, prompt: str) -> str:
        parsed = self._post(
            {"Authorization": f"Bearer {self.api_key}"},
            {
                "model": self.model,
                "max_tokens": MAX_TOKENS,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        error = parsed.get("error")
        if isinstance(error, dict):
            raise EnrichmentError(f"GLM API error {error.get('code', '')}: {error.get('message', '')}")
        if error:
            raise EnrichmentError(f"GLM API error: {error}")
        return parsed["choices"][0]["message"]["content"]


class OpenAIProvider(LLMProvider):
    """OpenAI API provider (also works with other OpenAI-compatible APIs)."""

    name = "openai"
    default_endpoint = "https://api.openai.com/v1/chat/completions"

    def _request(self, prompt: str) -> str:
        parsed = self._post(
            {"Authorization": f"Bearer {self.api_key}"},
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0.1,
                "max_tokens": MAX_TOKENS,
            },
        )
        return parsed["choices"][0]["message"]["content"]


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider."""

    name = "ollama"
    default_endpoint = "http://127.0.0.1:11434/api/generate"

    def is_configured(self) -> bool:
        return bool(self.endpoint)

    def _request(self, prompt: str) -> str:
        parsed = self._post({}, {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.1},
        })
        return parsed["response"]


PROVIDERS = {
    "anthropic": AnthropicProvider,
    "glm": GLMProvider,
    "openai": OpenAIProvider,
    "ollama": OllamaProvider,
}


# ===================================================================
# Prompt and response handling
# ===================================================================

PROMPT_TEMPLATE = """You are an expert Go code reviewer. Describe the following struct concisely.

Struct name: {name}
Package: {package}

Struct definition:
```go
{declaration}
```

Method implementations:
```go
{methods}
```

Return the analysis as JSON with:
1. struct_description: one or two sentences saying what the struct is for
2. fields: an array of objects with name and description (what the field holds)
3. methods: an array of objects with name and description (what the method does)

Requirements:
- keep every description short, under 20 words
- say what it does, not how
- no code snippets
- return only the JSON object, without Markdown or any other text

Example:
{{
  "struct_description": "User service layer handling registration and lookup",
  "fields": [
    {{"name": "repo", "description": "User repository used for persistence"}}
  ],
  "methods": [
    {{"name": "CreateUser", "description": "Validates and stores a new user"}}
  ]
}}"""


def build_prompt(name: str, package: str, declaration: str, methods_source: str) -> str:
    return PROMPT_TEMPLATE.format(
        name=name,
        package=package,
        declaration=declaration,
        methods=methods_source or "// no methods",
    )


def clean_response(text: str) -> str:
    """Strip Markdown fences and isolate the outermost JSON object."""
    text = text.strip()
    if text.startswith("```json"):
        text = text[len("```json"):]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]
    return text


def parse_enrichment(text: str) -> Enrichment:
    cleaned = clean_response(text or "")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise EnrichmentError(f"failed to parse JSON response: {exc}") from exc
    if not isinstance(payload, dict):
        raise EnrichmentError("LLM response is not a JSON object")
    try:
        return Enrichment.from_dict(payload)
    except (AttributeError, TypeError, ValueError) as exc:
        raise EnrichmentError(f"unexpected response shape: {exc}") from exc


# ===================================================================
# Enricher
# ===================================================================

class LLMEnricher:
    """Describes structs by prompting an :class:`LLMProvider`."""

    def __init__(self, provider: LLMProvider) -> None:
        self.provider = provider

    @property
    def name(self) -> str:
        return self.provider.name

    @property
    def model(self) -> str:
        return self.provider.model

    @property
    def provider_id(self) -> str:
        return f"{self.name}:{self.model}"

    def is_configured(self) -> bool:
        return self.provider.is_configured()

    def analyze(self, symbol_name: str, package: str, declaration: str, methods_source: str) -> Enrichment:
        logger.debug("Requesting %s description for %s", self.provider_id, symbol_name)
        prompt = build_prompt(symbol_name, package, declaration, methods_source)
        return parse_enrichment(self.provider.generate(prompt))


def normalize_provider(provider: str) -> str:
    key = (provider or "").strip().lower()
    if key not in PROVIDER_ALIASES:
        raise ValueError(
            f"unsupported LLM provider '{provider}', choose one of: {', '.join(sorted(PROVIDER_ALIASES))}"
        )
    return PROVIDER_ALIASES[key]


def create_enricher(
    provider: str,
    api_key: str = "",
    model: str = "",
    endpoint: Optional[str] = None,
) -> LLMEnricher:
    key = normalize_provider(provider)
    return LLMEnricher(PROVIDERS[key](model=model, api_key=api_key, endpoint=endpoint or ""))
