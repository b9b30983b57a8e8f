"""Configuration paths and defaults for DocGraph."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("DOCGRAPH_HOME", str(Path.home() / ".docgraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
SUPPORTED_EXTENSIONS = {".py", ".js", ".mjs", ".cjs", ".jsx", ".ts", ".mts", ".tsx"}

# Generation defaults; override in the [generation] section of config.toml
DEFAULT_PROVIDER = "anthropic"
DEFAULT_MAX_OUTPUT_TOKENS = 4096
DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_RELATED_DEPTH = 2
DEFAULT_WORKERS = 1

# Environment variables consulted when no api_key is configured
GENERIC_API_KEY_ENV = "DOCGRAPH_API_KEY"
PROVIDER_API_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "groq": "GROQ_API_KEY",
}
