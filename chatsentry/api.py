"""
chatsentry/api.py
─────────────────────────────────────────────────────────────────────────────
Chat Sentry: dual-mode API layer

TWO USAGE MODES:
  1. Importable module:
         from chatsentry.api import ChatSentryAPI
         api = ChatSentryAPI()
         report = api.analyze(text, role_identifier="Sam")

  2. FastAPI HTTP server:
         python -m chatsentry.api                 # default: port 8766
         python -m chatsentry.api --port 9000
         uvicorn chatsentry.api:app --port 8766

ENDPOINTS:
  POST /analyze   normalize + analyze a transcript, return the flat report
  GET  /health    server status and configured backend
  GET  /config    current config
  POST /config    update and persist config

RESPONSES:
  200  report body, or {"needsRoleIdentifier": true, "candidateSenders": [...]}
  400  input errors (no usable messages, bad platform hint, bad messages)
  500  anything unexpected

CORS: localhost-only. The server binds to 127.0.0.1 by default.

PRIVACY NOTE:
  With the ollama provider nothing leaves the device. With the openai
  provider the transcript is sent to the configured endpoint.
  Message content is never logged.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from chatsentry.config import AnalysisSettings, build_llm, load_config, save_config
from chatsentry.errors import NoUsableMessagesError
from chatsentry.llm.base import LLMAdapter
from chatsentry.models.record import Message, Role, RoleDisambiguation
from chatsentry.orchestrator import analyze_conversation
from chatsentry.parsers.normalizer import Transcript
from chatsentry.report import disambiguation_to_dict, result_to_dict

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

_UNSET = object()


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class ChatSentryAPI:
    """
    Pure-Python wrapper around the analysis pipeline.
    No HTTP layer required: import and call directly.

    Usage:
        api = ChatSentryAPI(project_root=Path("."))
        report = api.analyze(open("chat.txt").read(), role_identifier="Sam")
        if report.get("needsRoleIdentifier"):
            ...ask the user which sender they are...
    """

    def __init__(
        self,
        project_root: Optional[Path] = None,
        llm: Any = _UNSET,
    ):
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._llm = llm

    # ── INTERNAL ──────────────────────────────────────────────────────────

    def _backend(self, config: Dict[str, Any], keyword_only: bool) -> Optional[LLMAdapter]:
        if keyword_only:
            return None
        if self._llm is not _UNSET:
            return self._llm
        return build_llm(config)

    # ── ANALYSIS ──────────────────────────────────────────────────────────

    def analyze(
        self,
        transcript: Transcript,
        role_identifier: Optional[str] = None,
        platform_hint: Optional[str] = None,
        keyword_only: bool = False,
    ) -> Dict[str, Any]:
        """
        Analyze one conversation and return the flat JSON-ready report,
        or the disambiguation signal when a role identifier is needed.

        Raises NoUsableMessagesError / ValueError on bad input.
        """
        config = self.get_config()
        outcome = analyze_conversation(
            transcript,
            role_identifier = role_identifier,
            platform_hint   = platform_hint,
            llm             = self._backend(config, keyword_only),
            settings        = AnalysisSettings.from_config(config),
        )
        if isinstance(outcome, RoleDisambiguation):
            return disambiguation_to_dict(outcome)
        return result_to_dict(outcome)

    # ── CONFIG ────────────────────────────────────────────────────────────

    def get_config(self) -> Dict[str, Any]:
        return load_config(self.project_root)

    def update_config(self, update: Dict[str, Any]) -> Dict[str, Any]:
        config = self.get_config()
        config.update(update or {})
        AnalysisSettings.from_config(config)    # rejects malformed values early
        save_config(config, self.project_root)
        return self.get_config()


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI APP
# ═══════════════════════════════════════════════════════════════════════════

class MessageIn(BaseModel):
    id: str = Field(min_length=1)
    role: Literal["self", "other"]
    content: str
    timestamp: datetime


class AnalyzeRequest(BaseModel):
    transcript: Union[str, List[MessageIn]]
    role_identifier: Optional[str] = Field(default=None, alias="roleIdentifier")
    platform_hint: Optional[Literal["generic", "dated-log"]] = Field(default=None, alias="platformHint")
    keyword_only: bool = Field(default=False, alias="keywordOnly")

    model_config = {"populate_by_name": True}


def _to_messages(items: Sequence[MessageIn]) -> List[Message]:
    return [
        Message(id=m.id, role=Role(m.role), content=m.content, timestamp=m.timestamp)
        for m in items
    ]


def _build_app(api: Optional[ChatSentryAPI] = None) -> FastAPI:
    """Build and return the FastAPI application instance."""
    _api = api or ChatSentryAPI()

    _app = FastAPI(
        title       = "Chat Sentry API",
        description = "Conversation safety analysis (local API)",
        version     = API_VERSION,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = [
            "http://localhost",
            "http://localhost:8766",
            "http://127.0.0.1",
            "http://127.0.0.1:8766",
            "null",   # file:// origin
        ],
        allow_methods     = ["GET", "POST", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )

    # ── ENDPOINTS ───────────────────────────────────────────────────────

    @_app.post("/analyze", summary="Analyze a conversation")
    def analyze(req: AnalyzeRequest):
        """
        Returns the full report, or {needsRoleIdentifier, candidateSenders}
        when a dated-log export names several senders and no roleIdentifier
        was given. Re-send with one of the candidates.

        NOTE: Flags are inferences, not conclusions about anyone.
        """
        transcript = req.transcript
        if not isinstance(transcript, str):
            transcript = _to_messages(transcript)
        try:
            return _api.analyze(
                transcript,
                role_identifier = req.role_identifier,
                platform_hint   = req.platform_hint,
                keyword_only    = req.keyword_only,
            )
        except (NoUsableMessagesError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error(f"Analyze endpoint error: {type(exc).__name__}", exc_info=True)
            raise HTTPException(status_code=500, detail="Analysis failed")

    @_app.get("/config", summary="Get config")
    def get_config():
        return {"config": _api.get_config()}

    @_app.post("/config", summary="Save config")
    def save_config_endpoint(update: Dict[str, Any] = Body(...)):
        """Persist config. Unknown keys are ignored."""
        try:
            return {"status": "ok", "config": _api.update_config(update)}
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except OSError as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @_app.get("/health", summary="Health check")
    def health():
        config = _api.get_config()
        return {
            "status":   "ok",
            "provider": config.get("provider"),
            "version":  API_VERSION,
        }

    return _app


# Module-level app instance, used by uvicorn chatsentry.api:app
app = _build_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT: python -m chatsentry.api
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(
        prog        = "chatsentry.api",
        description = "Chat Sentry API Server",
    )
    parser.add_argument("--port", type=int, default=8766,
                        help="Port to bind (default: 8766)")
    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="Host to bind. DO NOT change to 0.0.0.0 on shared networks")
    args = parser.parse_args()

    print(f"""
+--------------------------------------------------+
|   Chat Sentry API Server v{API_VERSION}                  |
+--------------------------------------------------+
|  Local:    http://{args.host}:{args.port}
|  Docs:     http://{args.host}:{args.port}/docs
|  Health:   http://{args.host}:{args.port}/health
+--------------------------------------------------+
""")

    uvicorn.run(
        _build_app(),
        host      = args.host,
        port      = args.port,
        log_level = "info",
    )
