"""Configuration paths and defaults for structgraph."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("STRUCTGRAPH_HOME", str(Path.home() / ".structgraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

DEFAULT_DEPTH = 2

# API key environment variables, in order of precedence.
API_KEY_ENV = "STRUCTGRAPH_API_KEY"
PROVIDER_KEY_ENV = {
    "glm": "GLM_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}
