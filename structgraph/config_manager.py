"""LLM settings from the TOML user config and the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config
from .llm import DEFAULT_MODELS, normalize_provider

logger = logging.getLogger(__name__)


@dataclass
class LLMSettings:
    provider: str = ""
    model: str = ""
    api_key: str = ""
    endpoint: str = ""
    api_key_source: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.provider) and (bool(self.api_key) or self.provider == "ollama")


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config; a missing or broken file yields ``{}``."""
    path = path or config.CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Return the ``[llm]`` section of the user config."""
    section = load_full_config(path).get("llm", {})
    return section if isinstance(section, dict) else {}


def resolve_llm_settings(
    provider: str = "",
    api_key: str = "",
    model: str = "",
    endpoint: str = "",
    path: Optional[Path] = None,
) -> LLMSettings:
    """Merge explicit options, environment and TOML config.

    Explicit arguments win.  The API key falls back to
    ``STRUCTGRAPH_API_KEY``, then the provider-specific variable, then the
    ``[llm]`` section.  The TOML section only supplies a key or model for the
    provider it names.
    """
    file_config = load_config(path)
    provider = provider or str(file_config.get("provider", ""))
    if not provider:
        return LLMSettings()
    provider = normalize_provider(provider)

    same_provider = False
    if file_config.get("provider"):
        same_provider = normalize_provider(str(file_config["provider"])) == provider

    settings = LLMSettings(provider=provider)
    if api_key:
        settings.api_key, settings.api_key_source = api_key, "option"
    elif os.environ.get(config.API_KEY_ENV):
        settings.api_key, settings.api_key_source = os.environ[config.API_KEY_ENV], config.API_KEY_ENV
    elif provider in config.PROVIDER_KEY_ENV and os.environ.get(config.PROVIDER_KEY_ENV[provider]):
        env_name = config.PROVIDER_KEY_ENV[provider]
        settings.api_key, settings.api_key_source = os.environ[env_name], env_name
    elif same_provider and file_config.get("api_key"):
        settings.api_key, settings.api_key_source = str(file_config["api_key"]), "config"

    file_model = str(file_config.get("model", "")) if same_provider else ""
    settings.model = model or file_model or DEFAULT_MODELS[provider]
    file_endpoint = str(file_config.get("endpoint", "")) if same_provider else ""
    settings.endpoint = endpoint or file_endpoint
    return settings


def mask_key(api_key: str) -> str:
    if not api_key:
        return "(not set)"
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"
