"""Observable sync state.

    Idle ──► Syncing ──► Success(timestamp)
                    └──► Failure(error)

``Success`` and ``Failure`` only leave through a new ``Syncing``; nothing
times them back to ``Idle``.  The coordinator is the single writer; any
number of readers follow changes through ``StateFlow.subscribe()``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Generic, TypeVar, Union

from flexinsight.core.errors import ApiError

logger = logging.getLogger("flexinsight.sync.state")

T = TypeVar("T")


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Syncing:
    pass


@dataclass(frozen=True)
class Success:
    timestamp: int  # epoch ms of completion


@dataclass(frozen=True)
class Failure:
    error: ApiError


SyncState = Union[Idle, Syncing, Success, Failure]


class StateFlow(Generic[T]):
    """A value cell that pushes every change to its subscribers.

    Setting a value equal to the current one is a no-op, so subscribers never
    see two identical consecutive values.

    Usage::

        flow = StateFlow(Idle())
        async for state in flow.subscribe():   # current value first
            render(state)
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._subscribers: set[asyncio.Queue[T]] = set()

    @property
    def value(self) -> T:
        return self._value

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def set(self, value: T) -> bool:
        """Replace the value and notify subscribers.

        Returns:
            True if the value changed.
        """
        if value == self._value:
            return False
        self._value = value
        for queue in self._subscribers:
            queue.put_nowait(value)
        return True

    async def subscribe(self) -> AsyncIterator[T]:
        """Yield the current value, then every subsequent change."""
        queue: asyncio.Queue[T] = asyncio.Queue()
        self._subscribers.add(queue)
        try:
            yield self._value
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)
