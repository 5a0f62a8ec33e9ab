"""
chatsentry/llm/ollama_adapter.py
Ollama backend adapter. Ollama runs locally, so transcripts never
leave the device when this backend is selected.
Supports any model pulled via `ollama pull <model>`.

RECOMMENDED MODELS (by RAM):
  4-8GB RAM: mistral:7b, llama3:8b
  8GB+ RAM:  llama3.1:8b (default)
"""

import json
import logging
import urllib.error
import urllib.request
from typing import List, Optional

from chatsentry.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


class OllamaAdapter(LLMAdapter):

    def __init__(
        self,
        model:       str   = 'llama3.1:8b',
        host:        str   = 'http://localhost:11434',
        timeout_sec: int   = 120,
        temperature: float = 0.3,
        num_predict: int   = 1500,
    ):
        self.model       = model
        self.model_name  = model
        self.host        = host.rstrip('/')
        self.timeout_sec = timeout_sec
        self.temperature = temperature
        self.num_predict = num_predict

    # ── AVAILABILITY CHECK ───────────────────────────────────
    def is_available(self) -> bool:
        """Ping Ollama and confirm the configured model is pulled."""
        try:
            models = self.list_available_models(raise_errors=True)
        except urllib.error.URLError:
            logger.warning(
                "Ollama not reachable at " + self.host +
                ". Start Ollama or check if it's running."
            )
            return False
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Ollama availability check failed: {e}")
            return False

        # Exact match or family prefix ("llama3" matches "llama3:8b")
        available = any(
            m == self.model or m.startswith(self.model.split(':')[0])
            for m in models
        )
        if not available:
            logger.warning(
                f"Model '{self.model}' not found in Ollama. "
                f"Available: {models}. "
                f"Run: ollama pull {self.model}"
            )
        return available

    # ── COMPLETION ───────────────────────────────────────────
    def complete(self, prompt: str) -> Optional[str]:
        payload = json.dumps({
            'model':  self.model,
            'prompt': prompt,
            'stream': False,
            'options': {
                'temperature': self.temperature,
                'num_predict': self.num_predict,
            },
            'format': 'json',   # Ollama JSON mode
        }).encode('utf-8')

        try:
            req = urllib.request.Request(
                f"{self.host}/api/generate",
                data    = payload,
                headers = {'Content-Type': 'application/json'},
                method  = 'POST',
            )
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                data = json.loads(resp.read().decode('utf-8'))
            return str(data.get('response', '')).strip() or None

        except urllib.error.URLError as e:
            logger.error(f"Ollama request failed: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"JSON decode failed in Ollama envelope: {e}")
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Ollama complete error: {e}")
            return None

    # ── MODEL MANAGEMENT HELPERS ─────────────────────────────
    def list_available_models(self, raise_errors: bool = False) -> List[str]:
        """Return list of locally available Ollama model names."""
        try:
            req = urllib.request.Request(f"{self.host}/api/tags", method='GET')
            with urllib.request.urlopen(req, timeout=5) as resp:
                data = json.loads(resp.read().decode())
            return [m['name'] for m in data.get('models', [])]
        except (OSError, ValueError, KeyError):
            if raise_errors:
                raise
            return []
