# src/vibe_agent/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.bootstrap import AppRuntime
from ..cli.commands import registry as command_registry
from ..core.events import Event, EventType

logger = logging.getLogger(__name__)

_ECHOED_EVENTS = (
    EventType.TASK_CREATED,
    EventType.TASK_STATUS_CHANGED,
    EventType.BOARD_WARNING,
    EventType.PERSISTENCE_ERROR,
)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def format_event(event: Event) -> str | None:
    p = event.payload
    task = str(p.get("task_id") or "")[:8]
    if event.type == EventType.TASK_CREATED:
        return f"[task] {task} created ({p.get('actor_type')})"
    if event.type == EventType.TASK_STATUS_CHANGED:
        line = f"[task] {task} -> {p.get('status')}"
        if p.get("error"):
            line += f": {p['error']}"
        return line
    if event.type == EventType.BOARD_WARNING:
        return f"[board] warning ({p.get('kind')}): {p.get('message')}"
    if event.type == EventType.PERSISTENCE_ERROR:
        return f"[board] storage failure: {p.get('message')}"
    return None


def run_console_loop(runtime: AppRuntime) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Type a query to run it, or use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Feedback from the loop thread (progress, background run results).
        _print_ts(text)

    def on_event(event: Event) -> None:
        line = format_event(event)
        if line:
            emit(line)

    sub_id = runtime.session.events.subscribe(on_event, _ECHOED_EVENTS)

    try:
        while True:
            try:
                user_input = input(">>> You: ").strip()
                _rewrite_prev_line(f"[{_ts_local()}] >>> You: {user_input}")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            # Plain text is a query.
            line = user_input if user_input.startswith("/") else f"/ask {user_input}"

            try:
                response = command_registry.handle(runtime, line, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is not None:
                _print_ts(response)
    finally:
        runtime.session.events.unsubscribe(sub_id)

    logger.info("Console connector finished.")
