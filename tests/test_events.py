# tests/test_events.py

from __future__ import annotations

from vibe_agent.core.events import EventBus, EventType


def test_subscribers_filtered_by_type() -> None:
    bus = EventBus()
    everything: list[str] = []
    created: list[str] = []

    bus.subscribe(lambda e: everything.append(e.type.value))
    bus.subscribe(lambda e: created.append(e.payload["task_id"]), [EventType.TASK_CREATED])

    bus.emit(EventType.BOARD_CREATED, "b1", title="t")
    bus.emit(EventType.TASK_CREATED, "b1", task_id="t1")

    assert everything == ["board_created", "task_created"]
    assert created == ["t1"]


def test_failing_handler_does_not_stop_delivery() -> None:
    bus = EventBus()
    seen: list[str] = []

    def broken(event):
        raise RuntimeError("listener bug")

    bus.subscribe(broken)
    bus.subscribe(lambda e: seen.append(e.board_id))

    bus.emit(EventType.BOARD_DELETED, "b1")

    assert seen == ["b1"]


def test_unsubscribe_and_history() -> None:
    bus = EventBus(history_size=2)
    seen: list[EventType] = []
    sub = bus.subscribe(lambda e: seen.append(e.type))

    bus.emit(EventType.EXECUTION_STARTED, "b1")
    assert bus.unsubscribe(sub)
    assert not bus.unsubscribe(sub)
    bus.emit(EventType.EXECUTION_STOPPED, "b1", reason="idle")
    bus.emit(EventType.BOARD_WARNING, "b1", kind="cycle")

    assert seen == [EventType.EXECUTION_STARTED]
    assert [e.type for e in bus.history()] == [EventType.EXECUTION_STOPPED, EventType.BOARD_WARNING]
    assert bus.history(EventType.BOARD_WARNING)[0].payload == {"kind": "cycle"}
