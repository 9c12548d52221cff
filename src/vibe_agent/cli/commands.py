# src/vibe_agent/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from typing import Any, cast

from ..actors.defaults import ACTOR_DESCRIPTIONS
from ..actors.prompts import result_text
from ..errors import VibeError
from ..llm.client import friendly_llm_error_message
from ..tasks.task_models import ActorType, Task, TaskStatus
from .bootstrap import AppRuntime

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppRuntime, list[str]], str]
CommandHandler3 = Callable[[AppRuntime, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /ask, /stop, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, runtime: Any, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(runtime, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(runtime, args)
        except VibeError as e:
            return f"Error: {e.message}"
        except ValueError as e:
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _short(task_id: str) -> str:
    return task_id[:8]


def _format_task_line(t: Task) -> str:
    deps = ", ".join(_short(d) for d in t.dependencies) or "-"
    line = f"  {_short(t.id)} [{t.status.value:<11}] {t.actor_type.value:<10} {t.title} (deps: {deps})"
    if t.status == TaskStatus.FAILED and t.error:
        line += f"\n      error: {t.error}"
    return line


def _find_task(rt: AppRuntime, prefix: str) -> Task | None:
    for t in rt.controller.list_tasks():
        if t.id.startswith(prefix):
            return t
    return None


async def _call(fn: Callable[[], Any]) -> Any:
    """Run a plain function on the loop thread (lifecycle state is only touched there)."""
    return fn()


def _report_when_done(fut, emit: CommandEmitter | None, label: str) -> None:
    def _done(f) -> None:
        if emit is None:
            return
        try:
            report = f.result()
        except Exception as e:
            msg = friendly_llm_error_message(e)
            with contextlib.suppress(Exception):
                emit(f"[{label}] failed: {msg}")
            return
        if report is None:
            return
        with contextlib.suppress(Exception):
            emit(
                f"[{label}] finished ({report.reason.value}): "
                f"{len(report.completed)} completed, {len(report.failed)} failed."
            )

    fut.add_done_callback(_done)


def cmd_help(rt: AppRuntime, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(rt: AppRuntime, args: list[str]) -> str:
    s = rt.session.settings
    board_id = rt.session.board_id
    tasks = rt.controller.list_tasks()
    counts = {st: 0 for st in TaskStatus}
    for t in tasks:
        counts[t.status] += 1
    executor = rt.session.executor
    running = executor is not None and executor.running and not executor.disposed
    models = ", ".join(list(getattr(s, "llm_models", []) or []))
    return (
        "Status:\n"
        f"  Board: {board_id or '(none)'}\n"
        f"  Tasks: {len(tasks)} ("
        + ", ".join(f"{st.value}={n}" for st, n in counts.items())
        + ")\n"
        f"  Executor: {'running' if running else 'idle'}\n"
        f"  Provider: {getattr(s, 'provider_id', '?')} | Models (priority -> fallback): {models}\n"
        f"  Max concurrency: {getattr(s, 'max_concurrency', '?')} | "
        f"Failed dependency policy: {getattr(s, 'failed_dependency_policy', '?')}"
    )


def cmd_new(rt: AppRuntime, args: list[str]) -> str:
    title = " ".join(args).strip() or None
    existed = rt.session.board_id
    board_id = rt.run(rt.controller.create_new_vibe_agent(title))
    if existed == board_id:
        return f"Board already exists: {board_id}"
    return f"Board created: {board_id}"


def cmd_ask(rt: AppRuntime, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /ask <query> -> create a board if needed, seed the baseline tasks and run them.
    Runs in the background; use /tasks to watch progress and /stop to cancel.
    """
    query = " ".join(args).strip()
    if not query:
        return "Usage: /ask <query>"
    if rt.busy():
        return "Execution is already running. Use /stop first."

    rt.session.query_input = query
    rt.run(rt.controller.create_new_vibe_agent(query))
    fut = rt.submit(rt.controller.submit_query())
    _report_when_done(fut, emit, "run")
    return f"Query submitted on board {rt.session.board_id}."


def cmd_start(rt: AppRuntime, args: list[str], emit: CommandEmitter | None = None) -> str:
    if rt.busy():
        return "Execution is already running."
    if not rt.session.board_id:
        return "No board. Use /new or /ask first."
    fut = rt.submit(rt.controller.manually_start_execution())
    _report_when_done(fut, emit, "run")
    return "Execution started."


def cmd_stop(rt: AppRuntime, args: list[str]) -> str:
    if not rt.session.board_id:
        return "No board."
    n = rt.run(_call(rt.controller.stop_execution))
    if n == 0:
        return "Nothing running."
    return f"Stopped {n} task(s)."


def cmd_restart(rt: AppRuntime, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not rt.session.board_id:
        return "No board."
    tasks = rt.run(rt.controller.restart_agent())
    fut = rt.submit(rt.controller.wait_idle())
    _report_when_done(fut, emit, "restart")
    return f"Restarted with {len(tasks)} new task(s)."


def cmd_delete(rt: AppRuntime, args: list[str]) -> str:
    board_id = rt.session.board_id
    if not board_id:
        return "No board."
    rt.run(rt.controller.delete_agent())
    return f"Board {board_id} deleted."


def cmd_tasks(rt: AppRuntime, args: list[str]) -> str:
    tasks = rt.controller.list_tasks()
    if not tasks:
        return "No tasks."
    return "Tasks:\n" + "\n".join(_format_task_line(t) for t in tasks)


def cmd_task(rt: AppRuntime, args: list[str]) -> str:
    if not args:
        return "Usage: /task <id-prefix>"
    t = _find_task(rt, args[0])
    if t is None:
        return f"No task matching {args[0]}."
    lines = [
        f"Task {t.id}",
        f"  Title: {t.title}",
        f"  Actor: {t.actor_type.value}" + (f" ({t.custom_actor_id})" if t.custom_actor_id else ""),
        f"  Status: {t.status.value} | Priority: {t.priority.value}",
        f"  Dependencies: {', '.join(t.dependencies) or '-'}",
        f"  Description: {t.description}",
    ]
    if t.error:
        lines.append(f"  Error: {t.error}")
    if t.result is not None:
        lines.append("  Result:\n" + result_text(t.result))
    return "\n".join(lines)


def cmd_actors(rt: AppRuntime, args: list[str]) -> str:
    store = rt.session.store
    lines = ["Built-in actors:"]
    for a in ActorType:
        if a == ActorType.CUSTOM:
            continue
        cfg = store.get_actor_config(a)
        state = "on" if cfg.enabled else "off"
        lines.append(f"  {a.value:<10} [{state}] {ACTOR_DESCRIPTIONS[a]}")
    customs = store.list_custom_actors()
    lines.append("Custom actors:" if customs else "Custom actors: none")
    for ca in customs:
        lines.append(f"  {ca.id} {ca.name}: {ca.description}")
    return "\n".join(lines)


def cmd_actor(rt: AppRuntime, args: list[str]) -> str:
    """
    /actor add <name> | <description>  -> create a custom actor
    /actor instr <id> <text>           -> replace its instruction template
    /actor reset                       -> restore built-in actor defaults
    """
    usage = "Usage: /actor add <name> | <description>  |  /actor instr <id> <text>  |  /actor reset"
    if not args:
        return usage

    sub = args[0].lower()
    if sub == "add":
        rest = " ".join(args[1:])
        name, _, description = rest.partition("|")
        name = name.strip()
        if not name:
            return usage
        actor_id = rt.session.store.create_custom_actor(name=name, description=description.strip())
        return f"Custom actor created: {actor_id}"

    if sub == "instr":
        if len(args) < 3:
            return usage
        actor_id, text = args[1], " ".join(args[2:])
        ok = rt.session.registry.update_instructions(actor_id, text)
        return "Instructions updated." if ok else f"Could not update custom actor {actor_id}."

    if sub == "reset":
        rt.session.store.restore_actor_defaults()
        return "Built-in actors restored to defaults."

    return usage


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show board, executor and model settings.")
registry.register("new", cmd_new, help_text="Create the session board: /new [title].")
registry.register("ask", cmd_ask, help_text="Submit a query and run it: /ask <query>.")
registry.register("start", cmd_start, help_text="Run pending tasks on the current board.")
registry.register("stop", cmd_stop, help_text="Stop running tasks.")
registry.register("restart", cmd_restart, help_text="Fail all tasks and start over from the board title.")
registry.register("delete", cmd_delete, help_text="Delete the board and all its tasks.")
registry.register("tasks", cmd_tasks, help_text="List tasks on the current board.")
registry.register("task", cmd_task, help_text="Show one task: /task <id-prefix>.")
registry.register("actors", cmd_actors, help_text="List built-in and custom actors.")
registry.register(
    "actor", cmd_actor, help_text="Actors: /actor add <name> | <desc>, /actor instr <id> <text>, /actor reset."
)
