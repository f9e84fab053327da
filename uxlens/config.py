"""
Configuration Management

Loads configuration from .env files, an optional JSON config file and
environment variables, and provides a typed LensConfig object.

The library itself never reads the environment: load_config() is called by
the CLI (or by a test script) and the resulting LensConfig is passed to the
Analyzer explicitly.
"""

import json
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import LensConfig, UserPersona


DEFAULT_MODELS = {
    "openrouter": "openai/gpt-4o",
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-20241022",
    "local": "llava",
}

PROVIDER_KEY_VARS = {
    "openrouter": "OPENROUTER_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

CONFIG_FILE_NAMES = ("uxlens.config.json", ".uxlensrc.json")

DEFAULT_PERSONAS = {
    "business-user": UserPersona(
        name="Business Professional",
        expertise="intermediate",
        device="desktop-primary",
        urgency="medium",
        goals=["efficiency", "accuracy", "professional-appearance"],
        pain_points=["complex interfaces", "slow loading", "unclear navigation"],
        context="Professional work environment, needs reliable tools",
    ),
    "mobile-consumer": UserPersona(
        name="Mobile Consumer",
        expertise="novice",
        device="mobile-primary",
        urgency="high",
        goals=["speed", "simplicity", "trust"],
        pain_points=["small touch targets", "slow loading", "complex forms"],
        context="On-the-go usage, limited attention, thumb navigation",
    ),
    "power-user": UserPersona(
        name="Power User",
        expertise="expert",
        device="mixed",
        urgency="low",
        goals=["customization", "advanced-features", "keyboard-shortcuts"],
        pain_points=["lack of shortcuts", "limited customization"],
        context="Daily heavy usage, values efficiency over simplicity",
    ),
    "accessibility-user": UserPersona(
        name="Accessibility User",
        expertise="intermediate",
        device="desktop-primary",
        urgency="medium",
        goals=["screen-reader-compatibility", "keyboard-navigation", "high-contrast"],
        pain_points=["poor alt text", "keyboard traps", "low contrast"],
        context="Uses assistive technologies, relies on semantic HTML",
    ),
    "first-time-visitor": UserPersona(
        name="First-Time Visitor",
        expertise="novice",
        device="mixed",
        urgency="high",
        goals=["understand-value", "quick-trial", "low-commitment"],
        pain_points=["unclear value prop", "complex signup", "information overload"],
        context="Evaluating product, high bounce risk, needs immediate value",
    ),
}


def load_config(
    env_file: Optional[Path] = None,
    config_file: Optional[Path] = None,
    provider: Optional[str] = None
) -> LensConfig:
    """
    Load configuration from .env file, JSON config file and environment.

    Searches for .env file in:
    1. Provided env_file path
    2. Current directory
    3. User's home directory

    The JSON config file is either the provided config_file or the first of
    uxlens.config.json / .uxlensrc.json found in the current directory.
    Environment variables override values from the JSON file.

    Args:
        env_file: Optional path to .env file
        config_file: Optional path to JSON config file
        provider: Provider name overriding UXLENS_PROVIDER (used by the CLI)

    Returns:
        LensConfig with all settings

    Raises:
        ConfigurationError: If the config file is unreadable or any value
                            fails validation

    Example:
        config = load_config()
        analyzer = Analyzer(config)
    """
    # Load .env file
    if env_file and env_file.exists():
        load_dotenv(env_file)
    elif Path(".env").exists():
        load_dotenv(".env")
    elif (Path.home() / ".env").exists():
        load_dotenv(Path.home() / ".env")

    data = _read_config_file(config_file)
    ai = dict(data.get("ai") or {})
    analysis = dict(data.get("analysis") or {})

    provider = provider or os.getenv("UXLENS_PROVIDER") or ai.get("provider") or "openrouter"
    ai["provider"] = provider

    api_key = os.getenv("UXLENS_API_KEY")
    if not api_key and provider in PROVIDER_KEY_VARS:
        api_key = os.getenv(PROVIDER_KEY_VARS[provider])
    if api_key:
        ai["api_key"] = api_key

    env_overrides = {
        "model": os.getenv("UXLENS_MODEL"),
        "fallback_model": os.getenv("UXLENS_FALLBACK_MODEL"),
        "fallback_api_key": os.getenv("UXLENS_FALLBACK_API_KEY"),
        "base_url": os.getenv("UXLENS_BASE_URL"),
        "max_tokens": os.getenv("UXLENS_MAX_TOKENS"),
        "temperature": os.getenv("UXLENS_TEMPERATURE"),
        "ollama_host": os.getenv("OLLAMA_HOST"),
    }
    ai.update({key: value for key, value in env_overrides.items() if value})
    ai.setdefault("model", DEFAULT_MODELS.get(provider, DEFAULT_MODELS["openrouter"]))

    if os.getenv("UXLENS_DEPTH"):
        analysis["depth"] = os.getenv("UXLENS_DEPTH")
    if os.getenv("UXLENS_ANALYSIS_TYPES"):
        analysis["types"] = [
            t.strip() for t in os.environ["UXLENS_ANALYSIS_TYPES"].split(",") if t.strip()
        ]

    personas = {**DEFAULT_PERSONAS, **(data.get("personas") or {})}

    try:
        return LensConfig(ai=ai, analysis=analysis, personas=personas)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _read_config_file(config_file: Optional[Path]) -> dict:
    """Read the JSON config file, or return {} when none exists"""
    if config_file is None:
        config_file = next(
            (Path(name) for name in CONFIG_FILE_NAMES if Path(name).exists()),
            None
        )
        if config_file is None:
            return {}

    try:
        data = json.loads(Path(config_file).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to load config from {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a JSON object")
    return data
