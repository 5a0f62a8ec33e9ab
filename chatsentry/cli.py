"""
chatsentry/cli.py
Command-line interface for Chat Sentry.

USAGE:
  chat-sentry chat.txt
  chat-sentry export.txt --role Sam --output report.json
  chat-sentry - --platform generic --keyword-only < chat.txt
  chat-sentry --list-models

EXIT CODES:
  0  analysis complete
  1  input error (unreadable file, no usable messages, bad options)
  2  dated-log export names several senders; re-run with --role NAME
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from chatsentry.config import AnalysisSettings, build_llm, ensure_config
from chatsentry.errors import NoUsableMessagesError
from chatsentry.models.record import AnalysisResult, Polarity, RoleDisambiguation
from chatsentry.orchestrator import analyze_conversation
from chatsentry.report import export_to_json

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'

EXIT_OK             = 0
EXIT_INPUT_ERROR    = 1
EXIT_NEEDS_IDENTITY = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'chat-sentry',
        description = 'Chat Sentry: conversation safety analyzer',
        formatter_class = argparse.RawDescriptionHelpFormatter,
        epilog = """
NOTE:
  Flags are probabilistic inferences about behaviour in one conversation,
  not conclusions about a person.
        """
    )
    parser.add_argument(
        'transcript',
        nargs   = '?',
        help    = "Transcript file, or '-' for stdin",
    )
    parser.add_argument(
        '--role', '-r',
        default = None,
        help    = 'Your sender name in a dated-log export',
    )
    parser.add_argument(
        '--platform', '-p',
        choices = ['generic', 'dated-log'],
        default = None,
        help    = 'Input format (default: auto-detect)',
    )
    parser.add_argument(
        '--keyword-only', '-k',
        action  = 'store_true',
        help    = 'Skip the model, heuristic passes only',
    )
    parser.add_argument(
        '--output', '-o',
        type    = Path,
        default = None,
        help    = 'Write the hashed JSON export here',
    )
    parser.add_argument(
        '--config-dir',
        type    = Path,
        default = None,
        help    = 'Directory holding chatsentry_config.json (default: cwd)',
    )
    parser.add_argument(
        '--list-models',
        action  = 'store_true',
        help    = 'List locally available Ollama models and exit',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    logging.basicConfig(
        level   = logging.DEBUG if args.verbose else logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config = ensure_config(args.config_dir)

    # ── LIST MODELS ──────────────────────────────────────────
    if args.list_models:
        from chatsentry.llm.ollama_adapter import OllamaAdapter
        models = OllamaAdapter(host=config['ollama_host']).list_available_models()
        if models:
            _print(f"\n{BOLD}Available Ollama models:{RESET}")
            for m in models:
                _print(f"  • {m}")
        else:
            _print(f"{YELLOW}No models found. Is Ollama running?{RESET}")
        return EXIT_OK

    if not args.transcript:
        _print(f"{RED}Error: a transcript file (or '-') is required{RESET}")
        return EXIT_INPUT_ERROR

    # ── READ INPUT ───────────────────────────────────────────
    try:
        text = _read_transcript(args.transcript)
    except (OSError, UnicodeDecodeError) as e:
        _print(f"{RED}Error: cannot read {args.transcript}: {e}{RESET}")
        return EXIT_INPUT_ERROR

    try:
        llm = None if args.keyword_only else build_llm(config)
        settings = AnalysisSettings.from_config(config)
    except (TypeError, ValueError) as e:
        _print(f"{RED}Config error: {e}{RESET}")
        return EXIT_INPUT_ERROR

    _print(f"Detection mode   : {CYAN}{'Heuristic only' if llm is None else 'Model: ' + llm.model_name}{RESET}")

    # ── ANALYZE ──────────────────────────────────────────────
    t0 = time.time()
    try:
        outcome = analyze_conversation(
            text,
            role_identifier = args.role,
            platform_hint   = args.platform,
            llm             = llm,
            settings        = settings,
        )
    except (NoUsableMessagesError, ValueError) as e:
        _print(f"{RED}Error: {e}{RESET}")
        return EXIT_INPUT_ERROR

    if isinstance(outcome, RoleDisambiguation):
        _print(f"\n{YELLOW}Which sender are you? Re-run with --role NAME.{RESET}")
        for name in outcome.candidate_senders:
            _print(f"  • {name}")
        return EXIT_NEEDS_IDENTITY

    _summary(outcome, _elapsed(t0))

    if args.output:
        args.output.write_text(
            export_to_json(outcome, analysis_parameters={
                'platform':     outcome.metadata.platform,
                'keyword_only': llm is None,
                'provenance':   dict(outcome.provenance),
            }),
            encoding='utf-8',
        )
        _ok(f"Report written to {args.output}")

    return EXIT_OK


def _read_transcript(source: str) -> str:
    if source == '-':
        return sys.stdin.read()
    return Path(source).read_text(encoding='utf-8')


# ── PRINT HELPERS ────────────────────────────────────────────

def _summary(result: AnalysisResult, elapsed: str) -> None:
    red   = [f for f in result.flags if f.polarity is Polarity.RED]
    green = [f for f in result.flags if f.polarity is Polarity.GREEN]

    _print(f"\n{BOLD}{GREEN}✓ Complete{RESET} in {elapsed}")
    _print(f"  Messages    : {len(result.messages):,}")
    _print(f"  Risk        : {_colored_score(result.risk_score)}")
    _print(f"  Trust       : {result.trust_score}")
    _print(f"  Escalation  : {result.escalation_index}")
    _print(f"  Balance     : {result.reciprocity.balance_score}")
    _print(f"  Stability   : {result.consistency.stability_index}")
    _print(f"  Flags       : {len(red)} red / {len(green)} green")

    for flag in red:
        _print(f"    🔴 {flag.severity.value.upper():<8} {flag.category.value}: {flag.summary}")
    for flag in green:
        _print(f"    🟢 {flag.category.value}: {flag.summary}")

    heuristic = sorted(k for k, v in result.provenance.items() if v != 'model')
    if heuristic:
        _print(f"\n  {YELLOW}Heuristic fallback used for: {', '.join(heuristic)}{RESET}")


def _colored_score(score: int) -> str:
    color = RED if score >= 70 else YELLOW if score >= 40 else GREEN
    return f"{color}{score}{RESET}"


def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)

def _elapsed(t0: float) -> str:
    s = time.time() - t0
    return f"{s:.1f}s" if s < 60 else f"{int(s//60)}m {int(s%60)}s"


if __name__ == '__main__':
    sys.exit(main())
