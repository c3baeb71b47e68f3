"""
Structured diagnostics emitted by the pipeline and retriever.

The core does not own a logging subsystem. Each operation reports a
DiagnosticEvent to a caller-supplied sink; LoggingSink forwards events to the
standard logging module for callers that just want log lines.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosticEvent:
    """One timed operation: name, duration and input/output sizes."""

    operation: str
    duration_ms: float
    input_size: int = 0
    output_size: int = 0
    details: dict[str, Any] = field(default_factory=dict)


class DiagnosticsSink(Protocol):
    """Anything with an emit(event) method."""

    def emit(self, event: DiagnosticEvent) -> None: ...


class NullSink:
    """Discards every event."""

    def emit(self, event: DiagnosticEvent) -> None:
        return None


class ListSink:
    """Collects events in memory; handy in tests and notebooks."""

    def __init__(self) -> None:
        self.events: list[DiagnosticEvent] = []

    def emit(self, event: DiagnosticEvent) -> None:
        self.events.append(event)

    def operations(self) -> list[str]:
        return [event.operation for event in self.events]

    def clear(self) -> None:
        self.events.clear()


class LoggingSink:
    """Forwards events to a logger at a fixed level."""

    def __init__(self, target: logging.Logger | None = None, level: int = logging.DEBUG):
        self.logger = target or logger
        self.level = level

    def emit(self, event: DiagnosticEvent) -> None:
        self.logger.log(
            self.level,
            "%s took %.2fms (input=%d, output=%d) %s",
            event.operation,
            event.duration_ms,
            event.input_size,
            event.output_size,
            event.details,
        )


class OperationTimer:
    """Mutable handle yielded by timed_operation; set sizes/details before exit."""

    def __init__(self, operation: str, input_size: int):
        self.operation = operation
        self.input_size = input_size
        self.output_size = 0
        self.details: dict[str, Any] = {}
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0

    def to_event(self) -> DiagnosticEvent:
        return DiagnosticEvent(
            operation=self.operation,
            duration_ms=self.elapsed_ms,
            input_size=self.input_size,
            output_size=self.output_size,
            details=dict(self.details),
        )


@contextmanager
def timed_operation(
    sink: DiagnosticsSink | None,
    operation: str,
    input_size: int = 0,
) -> Iterator[OperationTimer]:
    """
    Time a block and emit one DiagnosticEvent when it finishes.

    The event is emitted even if the block raises, with details["failed"]
    set, and the exception propagates unchanged.

    Example:
        with timed_operation(sink, "rank", input_size=len(query)) as timer:
            results = ...
            timer.output_size = len(results)
    """
    timer = OperationTimer(operation, input_size)
    try:
        yield timer
    except BaseException:
        timer.details["failed"] = True
        raise
    finally:
        if sink is not None:
            sink.emit(timer.to_event())


__all__ = [
    "DiagnosticEvent",
    "DiagnosticsSink",
    "ListSink",
    "LoggingSink",
    "NullSink",
    "OperationTimer",
    "timed_operation",
]
