"""Change feed, publish-after-commit and the live checklist viewer."""

import asyncio
import logging

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.realtime import (
    ChangeEvent,
    ChangeFeed,
    LiveChecklist,
    commit_and_publish,
    queue_change,
)


@pytest.mark.unit
@pytest.mark.asyncio
class TestChangeFeed:
    async def test_delivers_only_to_matching_topic(self):
        feed = ChangeFeed()
        tasks_a = feed.subscribe(("sop_tasks", "a"))
        tasks_b = feed.subscribe(("sop_tasks", "b"))

        delivered = feed.publish(ChangeEvent("sop_tasks", "a", "t1", "update"))

        assert delivered == 1
        assert tasks_a.pending() == 1
        assert tasks_b.pending() == 0
        assert (await tasks_a.get()).row_id == "t1"

    async def test_close_unsubscribes(self):
        feed = ChangeFeed()
        sub = feed.subscribe(("sop_tasks", "a"), ("activated_sops", "a"))
        assert feed.subscriber_count("sop_tasks", "a") == 1
        sub.close()
        sub.close()
        assert feed.subscriber_count("sop_tasks", "a") == 0
        assert feed.publish(ChangeEvent("activated_sops", "a", "a", "update")) == 0

    async def test_publish_after_commit(self, db_session: AsyncSession):
        feed = ChangeFeed()
        sub = feed.subscribe(("sop_tasks", "sop-1"))
        queue_change(db_session, "sop_tasks", "sop-1", "t1", "update")
        queue_change(db_session, "sop_tasks", "sop-1", "t2", "insert")

        # Nothing is visible until the commit
        assert sub.pending() == 0

        published = await commit_and_publish(db_session, feed)
        assert published == 2
        assert [(await sub.get()).row_id for _ in range(2)] == ["t1", "t2"]
        assert "pending_changes" not in db_session.info

    async def test_nothing_published_when_commit_fails(self, db_session: AsyncSession, monkeypatch):
        feed = ChangeFeed()
        sub = feed.subscribe(("sop_tasks", "sop-1"))
        queue_change(db_session, "sop_tasks", "sop-1", "t1", "update")

        async def failing_commit():
            raise RuntimeError("commit failed")

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(RuntimeError):
            await commit_and_publish(db_session, feed)
        assert sub.pending() == 0


@pytest.mark.unit
@pytest.mark.asyncio
class TestLiveChecklist:
    async def test_stale_refetch_is_discarded(self):
        """A slow early fetch finishing after a later one must not win."""
        gates = [asyncio.Event(), asyncio.Event()]
        results = iter(["old", "new"])
        order = iter(gates)
        applied = []

        async def fetch():
            gate = next(order)
            value = next(results)
            await gate.wait()
            return value

        async def on_snapshot(snapshot):
            applied.append(snapshot)

        live = LiveChecklist(ChangeFeed(), "sop-1", fetch, on_snapshot)
        first = asyncio.create_task(live.refresh())
        second = asyncio.create_task(live.refresh())
        await asyncio.sleep(0)

        gates[1].set()
        assert await second is True
        gates[0].set()
        assert await first is False

        assert live.snapshot == "new"
        assert applied == ["new"]

    async def test_refetches_on_change(self):
        feed = ChangeFeed()
        counter = {"n": 0}
        snapshots = asyncio.Queue()

        async def fetch():
            counter["n"] += 1
            return counter["n"]

        async def on_snapshot(snapshot):
            await snapshots.put(snapshot)

        live = LiveChecklist(feed, "sop-1", fetch, on_snapshot)
        runner = asyncio.create_task(live.run())

        assert await asyncio.wait_for(snapshots.get(), 1) == 1
        feed.publish(ChangeEvent("sop_tasks", "sop-1", "t1", "update"))
        assert await asyncio.wait_for(snapshots.get(), 1) == 2
        feed.publish(ChangeEvent("activated_sops", "sop-1", "sop-1", "update"))
        assert await asyncio.wait_for(snapshots.get(), 1) == 3

        # Other SOPs are ignored
        feed.publish(ChangeEvent("sop_tasks", "sop-2", "t9", "update"))
        await asyncio.sleep(0.01)
        assert snapshots.empty()

        runner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await runner
        assert feed.subscriber_count("sop_tasks", "sop-1") == 0

    async def test_failed_refetch_is_logged_and_viewer_keeps_running(self, caplog):
        feed = ChangeFeed()
        calls = {"n": 0}
        snapshots = asyncio.Queue()

        async def fetch():
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("database went away")
            return calls["n"]

        async def on_snapshot(snapshot):
            await snapshots.put(snapshot)

        live = LiveChecklist(feed, "sop-1", fetch, on_snapshot)
        runner = asyncio.create_task(live.run())
        assert await asyncio.wait_for(snapshots.get(), 1) == 1

        with caplog.at_level(logging.WARNING, logger="civildefence.realtime"):
            feed.publish(ChangeEvent("sop_tasks", "sop-1", "t1", "update"))
            await asyncio.sleep(0.01)
        failures = [r for r in caplog.records if "refetch for SOP sop-1 failed" in r.getMessage()]
        assert len(failures) == 1
        assert "database went away" in failures[0].getMessage()

        feed.publish(ChangeEvent("sop_tasks", "sop-1", "t1", "update"))
        assert await asyncio.wait_for(snapshots.get(), 1) == 3
        assert live.snapshot == 3

        runner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await runner
