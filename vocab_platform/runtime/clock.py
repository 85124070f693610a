"""Timestamp and id generation shared by both backends."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

from contracts.v1.schemas import TIMESTAMP_FORMAT

_ONE_TICK = timedelta(microseconds=1)


def format_timestamp(moment: datetime) -> str:
    """Serialise *moment* to the fixed-width UTC form used in storage."""
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def new_id() -> str:
    return uuid4().hex


class Clock:
    """Strictly increasing UTC timestamps.

    Successive calls never return the same value, and ``now(not_before=...)``
    never returns a value at or before a row's previous timestamp, even if the
    wall clock moved backwards.
    """

    def __init__(self, source: Callable[[], datetime] | None = None):
        self._source = source or (lambda: datetime.now(timezone.utc))
        self._last: datetime | None = None

    def now(self, not_before: str | None = None) -> str:
        current = self._source().astimezone(timezone.utc)
        floor = self._last
        if not_before:
            try:
                previous = parse_timestamp(not_before)
            except ValueError:
                previous = None
            if previous is not None and (floor is None or previous > floor):
                floor = previous
        if floor is not None and current <= floor:
            current = floor + _ONE_TICK
        self._last = current
        return format_timestamp(current)


__all__ = ["Clock", "format_timestamp", "parse_timestamp", "new_id"]
