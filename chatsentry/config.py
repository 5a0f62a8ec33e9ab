"""
chatsentry/config.py
Config persisted to chatsentry_config.json, merged over DEFAULT_CONFIG.
The OpenAI key is read from OPENAI_API_KEY only and never written here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from chatsentry.llm.base import LLMAdapter
from chatsentry.llm.ollama_adapter import OllamaAdapter
from chatsentry.llm.openai_adapter import OpenAIAdapter

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "chatsentry_config.json"

PROVIDERS = ("ollama", "openai", "none")

DEFAULT_CONFIG = {
    "provider": "ollama",
    "model": "llama3.1:8b",
    "ollama_host": "http://localhost:11434",
    "openai_model": "gpt-4o-mini",
    "openai_base_url": None,
    "timeout_sec": 120,
    "temperature": 0.3,
    "keyword_only_default": False,
    "redact_generic": True,
    "stalking_call_threshold": 50,
    "excessive_call_threshold": 10,
    "stalking_risk_floor": 95,
    "self_tokens": ["me", "i", "you", "myself"],
    "max_workers": 4,
}


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from chatsentry_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return {**DEFAULT_CONFIG, **data}
            logger.warning("Config file is not a JSON object; using defaults")
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to chatsentry_config.json. Unknown keys are dropped."""
    path = _config_path(project_root)
    clean = {k: config.get(k, v) for k, v in DEFAULT_CONFIG.items()}
    path.write_text(json.dumps(clean, indent=2), encoding="utf-8")
    return path


def ensure_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config, writing the defaults out on first run."""
    path = _config_path(project_root)
    config = load_config(project_root)
    if not path.exists():
        try:
            save_config(config, project_root)
            logger.info(f"Wrote default config to {path}")
        except OSError as e:
            logger.warning(f"Could not write default config: {e}")
    return config


@dataclass(frozen=True)
class AnalysisSettings:
    """The slice of config the orchestrator reads."""
    self_tokens:              Tuple[str, ...] = ("me", "i", "you", "myself")
    redact_generic:           bool            = True
    stalking_call_threshold:  int             = 50
    excessive_call_threshold: int             = 10
    stalking_risk_floor:      int             = 95
    max_workers:              int             = 4

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "AnalysisSettings":
        merged = {**DEFAULT_CONFIG, **(config or {})}
        return cls(
            self_tokens              = tuple(str(t).lower() for t in merged["self_tokens"]),
            redact_generic           = bool(merged["redact_generic"]),
            stalking_call_threshold  = int(merged["stalking_call_threshold"]),
            excessive_call_threshold = int(merged["excessive_call_threshold"]),
            stalking_risk_floor      = int(merged["stalking_risk_floor"]),
            max_workers              = max(1, int(merged["max_workers"])),
        )


def build_llm(config: Dict[str, Any]) -> Optional[LLMAdapter]:
    """Construct the configured completion backend, or None for keyword-only."""
    merged = {**DEFAULT_CONFIG, **(config or {})}
    provider = str(merged["provider"]).lower()

    if merged["keyword_only_default"] or provider == "none":
        return None
    if provider == "ollama":
        return OllamaAdapter(
            model       = merged["model"],
            host        = merged["ollama_host"],
            timeout_sec = int(merged["timeout_sec"]),
            temperature = float(merged["temperature"]),
        )
    if provider == "openai":
        return OpenAIAdapter(
            model       = merged["openai_model"],
            base_url    = merged["openai_base_url"],
            timeout_sec = float(merged["timeout_sec"]),
            temperature = float(merged["temperature"]),
        )
    raise ValueError(f"Unknown provider {provider!r} (expected one of {', '.join(PROVIDERS)})")
