"""
Interactive terminal driver for the clarification loop.

    metaintent [--session-id ID] [--config PATH] [--offline] [--verbose]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from .adapters import AdapterFactory, LLMAdapter
from .config import MetaIntentConfig
from .errors import LLMServiceUnavailableError, MetaIntentError
from .generator import format_specification
from .metaloop import MetaLoopEngine
from .replay import build_replay
from .types import LLMBackend, LLMConfig, LLMResponse, SessionStatus


class OfflineAdapter(LLMAdapter):
    """Backend that is never reachable, so every component takes its deterministic path."""

    def __init__(self, backend: LLMBackend):
        self.backend = backend

    async def invoke(self, prompt: str, config: LLMConfig) -> LLMResponse:
        raise LLMServiceUnavailableError(f"{self.backend.value} disabled in offline mode")


def build_engine(config: MetaIntentConfig, offline: bool = False) -> MetaLoopEngine:
    factory = AdapterFactory(config.backend)
    if offline:
        for backend in LLMBackend:
            factory.register(backend, OfflineAdapter(backend))
        config.retry.max_attempts = 1
    return MetaLoopEngine.from_config(config, factory=factory)


def render(console: Console, text: str, title: str = "MetaIntent") -> None:
    console.print(Panel(Markdown(text), title=title, border_style="cyan", padding=(1, 2)))


async def run_session(
    engine: MetaLoopEngine, session_id: str, console: Console
) -> None:
    request = Prompt.ask("[bold cyan]What would you like to build?[/]", console=console)
    result = await engine.start_session(session_id, request)
    render(console, result.response)

    while result.state.status not in (SessionStatus.READY, SessionStatus.COMPLETED):
        if not result.needs_clarification:
            break
        reply = Prompt.ask("[bold cyan]>[/]", console=console)
        if not reply.strip():
            continue
        result = await engine.continue_session(session_id, reply)
        render(console, result.response)

    if result.state.status == SessionStatus.READY and Confirm.ask(
        "Generate the agent specification?", console=console, default=True
    ):
        spec = await engine.generate(session_id)
        render(console, format_specification(spec), title=spec.name)

    replay = build_replay(result.state)
    if replay.key_moments:
        console.print("[bold]Session replay[/]")
        for line in replay.summary_lines():
            console.print(f"  {line}")


def configure_logging(config: MetaIntentConfig, verbose: bool = False) -> int:
    """Root log level from configuration; ``--verbose`` forces DEBUG."""
    level = logging.DEBUG if verbose else config.logging.level_number()
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    logging.getLogger().setLevel(level)
    return level


async def _main(args: argparse.Namespace, config: MetaIntentConfig, console: Console) -> int:
    engine = build_engine(config, offline=args.offline)
    try:
        await run_session(engine, args.session_id or str(uuid.uuid4()), console)
    finally:
        await engine.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Clarify what you want before building it")
    parser.add_argument("--session-id", help="Resume or name a session")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    parser.add_argument(
        "--offline", action="store_true", help="Never call a backend; use heuristics only"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    console = Console()
    try:
        config = MetaIntentConfig.from_env(MetaIntentConfig.load(args.config))
    except MetaIntentError as e:
        console.print(f"[red]✗ {e.message}[/]")
        return 1

    configure_logging(config, verbose=args.verbose)

    try:
        return asyncio.run(_main(args, config, console))
    except (KeyboardInterrupt, EOFError):
        console.print("\n[dim]Session ended.[/]")
        return 130
    except MetaIntentError as e:
        console.print(f"[red]✗ {e.message}[/]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
