"""Configuration manager for DocGraph using TOML files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import toml

from .config import (
    CONFIG_FILE,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_PROVIDER,
    DEFAULT_RELATED_DEPTH,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_WORKERS,
    GENERIC_API_KEY_ENV,
    PROVIDER_API_KEY_ENV,
)

logger = logging.getLogger(__name__)


# Default configurations for each provider
DEFAULT_CONFIGS: Dict[str, Dict[str, str]] = {
    "anthropic": {
        "provider": "anthropic",
        "model": "claude-3-5-sonnet-20241022",
        "endpoint": "https://api.anthropic.com/v1/messages",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o",
        "endpoint": "https://api.openai.com/v1/chat/completions",
    },
    "openrouter": {
        "provider": "openrouter",
        "model": "anthropic/claude-sonnet-4",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "endpoint": "https://api.groq.com/openai/v1/chat/completions",
    },
    "ollama": {
        "provider": "ollama",
        "model": "qwen2.5-coder:7b",
        "endpoint": "http://127.0.0.1:11434/api/generate",
    },
}


@dataclass
class Settings:
    """Resolved settings for one process."""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_CONFIGS[DEFAULT_PROVIDER]["model"]
    api_key: str = ""
    endpoint: str = DEFAULT_CONFIGS[DEFAULT_PROVIDER]["endpoint"]
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    related_depth: int = DEFAULT_RELATED_DEPTH
    workers: int = DEFAULT_WORKERS


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    try:
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.error("Could not write config %s: %s", CONFIG_FILE, exc)
        return False


def get_provider_config(provider: str) -> Dict[str, str]:
    """Default configuration for *provider* (Anthropic when unknown)."""
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS[DEFAULT_PROVIDER]).copy()


def load_config() -> Dict[str, Any]:
    """Load the ``[llm]`` section merged over the provider defaults."""
    llm = load_full_config().get("llm", {})
    provider = str(llm.get("provider", DEFAULT_PROVIDER)).lower()
    merged: Dict[str, Any] = get_provider_config(provider)
    merged.update({k: v for k, v in llm.items() if v not in (None, "")})
    merged["provider"] = provider
    return merged


def load_generation_config() -> Dict[str, Any]:
    """Load the ``[generation]`` section, or an empty dict."""
    return load_full_config().get("generation", {})


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Save LLM configuration to TOML file.

    Preserves other sections (e.g. ``[generation]``) in the file.
    """
    config = load_full_config()
    config["llm"] = {
        "provider": provider,
        "model": model,
    }
    if api_key:
        config["llm"]["api_key"] = api_key
    if endpoint:
        config["llm"]["endpoint"] = endpoint
    return _save_full_config(config)


def clear_config() -> bool:
    """Remove the ``[llm]`` section, returning to defaults."""
    config = load_full_config()
    config.pop("llm", None)
    return _save_full_config(config)


def api_key_from_env(provider: str) -> str:
    for var in (GENERIC_API_KEY_ENV, PROVIDER_API_KEY_ENV.get(provider, "")):
        if var and os.environ.get(var):
            return os.environ[var]
    return ""


def load_settings(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    endpoint: Optional[str] = None,
    max_output_tokens: Optional[int] = None,
) -> Settings:
    """Resolve settings: explicit arguments, then config.toml, then environment."""
    llm = load_config()
    if provider and provider.lower() != llm["provider"]:
        # A different provider than configured: start from its defaults
        llm = get_provider_config(provider.lower())
        llm["provider"] = provider.lower()
    generation = load_generation_config()

    resolved_provider = llm["provider"]
    return Settings(
        provider=resolved_provider,
        model=model or llm.get("model", ""),
        api_key=api_key or llm.get("api_key", "") or api_key_from_env(resolved_provider),
        endpoint=endpoint or llm.get("endpoint", ""),
        max_output_tokens=int(max_output_tokens or generation.get("max_output_tokens", DEFAULT_MAX_OUTPUT_TOKENS)),
        timeout=float(generation.get("timeout", DEFAULT_TIMEOUT_SECONDS)),
        related_depth=int(generation.get("related_depth", DEFAULT_RELATED_DEPTH)),
        workers=int(generation.get("workers", DEFAULT_WORKERS)),
    )
