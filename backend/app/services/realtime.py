"""In-process change feed and the live SOP checklist viewer.

Writers queue `ChangeEvent`s on the session while they work and publish
them only after the transaction commits (`commit_and_publish`), so a
subscriber never hears about a change it cannot read back yet.

Subscribers listen on `(table, key)` topics, e.g. ("sop_tasks", <sop id>).
Delivery is at-most-once to whoever is subscribed at publish time; a
viewer that needs the current picture refetches it.

LiveChecklist
    Holds the latest snapshot of one activated SOP.  Every change event
    triggers a full refetch.  Refetches may overlap; each is stamped with
    a ticket when it starts and a result is applied only if its ticket is
    newer than the last applied one, so a slow early fetch can never
    overwrite a later one.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger("civildefence.realtime")

Topic = tuple[str, str]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    key: str
    row_id: str
    action: str  # insert | update | delete


class Subscription:
    def __init__(self, feed: "ChangeFeed", topics: tuple[Topic, ...]) -> None:
        self._feed = feed
        self.topics = topics
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.closed = False

    def _deliver(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> ChangeEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed._remove(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()


class ChangeFeed:
    def __init__(self) -> None:
        self._subs: dict[Topic, set[Subscription]] = defaultdict(set)

    def subscribe(self, *topics: Topic) -> Subscription:
        sub = Subscription(self, topics)
        for topic in topics:
            self._subs[topic].add(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        for topic in sub.topics:
            subs = self._subs.get(topic)
            if subs is None:
                continue
            subs.discard(sub)
            if not subs:
                del self._subs[topic]

    def publish(self, event: ChangeEvent) -> int:
        """Deliver to current subscribers; returns how many received it."""
        subs = list(self._subs.get((event.table, event.key), ()))
        for sub in subs:
            sub._deliver(event)
        return len(subs)

    def subscriber_count(self, table: str, key: str) -> int:
        return len(self._subs.get((table, key), ()))


_feed: ChangeFeed | None = None


def get_change_feed() -> ChangeFeed:
    global _feed
    if _feed is None:
        _feed = ChangeFeed()
    return _feed


# ── Publishing from a unit of work ──────────────────────────

_PENDING_KEY = "pending_changes"


def queue_change(db: AsyncSession, table: str, key: str, row_id: str, action: str) -> None:
    db.info.setdefault(_PENDING_KEY, []).append(ChangeEvent(table, key, row_id, action))


async def commit_and_publish(db: AsyncSession, feed: ChangeFeed | None = None) -> int:
    """Commit the session, then publish whatever it queued."""
    await db.commit()
    events: list[ChangeEvent] = db.info.pop(_PENDING_KEY, [])
    feed = feed or get_change_feed()
    for event in events:
        feed.publish(event)
    if events:
        logger.debug("Published %d change events", len(events))
    return len(events)


# ── Live checklist ──────────────────────────────────────────

class LiveChecklist:
    def __init__(
        self,
        feed: ChangeFeed,
        sop_id: str,
        fetch: Callable[[], Awaitable[Any]],
        on_snapshot: Callable[[Any], Awaitable[None]] | None = None,
    ) -> None:
        self._feed = feed
        self.sop_id = sop_id
        self._fetch = fetch
        self._on_snapshot = on_snapshot
        self.snapshot: Any = None
        self._issued = 0
        self._applied = 0
        self._tasks: set[asyncio.Task] = set()
        self._sub: Subscription | None = None

    @property
    def topics(self) -> tuple[Topic, ...]:
        return (("activated_sops", self.sop_id), ("sop_tasks", self.sop_id))

    async def refresh(self) -> bool:
        """Refetch everything; returns False if the result was stale."""
        self._issued += 1
        ticket = self._issued
        result = await self._fetch()
        if ticket <= self._applied:
            logger.debug("Discarding stale checklist refetch %d (applied %d)", ticket, self._applied)
            return False
        self._applied = ticket
        self.snapshot = result
        if self._on_snapshot is not None:
            await self._on_snapshot(result)
        return True

    def _spawn_refresh(self) -> asyncio.Task:
        task = asyncio.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_failed_refresh)
        return task

    def _log_failed_refresh(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Checklist refetch for SOP %s failed: %s", self.sop_id, exc, exc_info=exc)

    async def run(self) -> None:
        """Initial fetch, then one refetch per change event until closed."""
        self._sub = self._feed.subscribe(*self.topics)
        try:
            await self.refresh()
            async for _event in self._sub:
                self._spawn_refresh()
        finally:
            self.close()

    def close(self) -> None:
        if self._sub is not None:
            self._sub.close()
        for task in list(self._tasks):
            task.cancel()
