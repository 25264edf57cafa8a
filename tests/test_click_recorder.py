"""
Tests for click recording and statistics aggregation.
"""
import asyncio
from datetime import timedelta

import pytest

from shortlink_app.exceptions import StatisticsConflict, StorageFailure
from shortlink_app.queue.strategies import InMemoryQueue
from shortlink_app.schemas.records import ClickInfo
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.statistics_service import StatisticsService, normalize_referrer

BASE_URL = "http://sho.rt"


@pytest.fixture
def record(url_service):
    return asyncio.run(url_service.shorten("https://example.com/page", BASE_URL))


def labels(entries):
    return {entry.label: entry.count for entry in entries}


class TestNormalizeReferrer:

    @pytest.mark.parametrize("referrer", [None, "", "   "])
    def test_empty_is_direct(self, referrer):
        assert normalize_referrer(referrer) == "Direct"

    def test_url_reduced_to_host(self):
        assert normalize_referrer("https://x.com/some/post?id=1") == "x.com"

    def test_bare_value_kept(self):
        assert normalize_referrer("newsletter") == "newsletter"


class TestRecordClick:
    """Test in-process click recording"""

    def test_example_scenario(self, recorder, statistics_service, url_service, clock):
        """One-day link for u1: two direct visits and one from x.com"""
        record = asyncio.run(url_service.shorten(
            "https://example.com/page", BASE_URL, expiration_days=1, owner_id="u1"
        ))
        assert len(record.short_code) == 6
        assert record.expires_at == clock.now() + timedelta(days=1)

        asyncio.run(recorder.record_click(record.short_code, ClickInfo()))
        asyncio.run(recorder.record_click(record.short_code, ClickInfo()))
        asyncio.run(recorder.record_click(record.short_code, ClickInfo(referrer="https://x.com/post")))

        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))

        assert stats.total_clicks == 3
        assert labels(stats.referrers) == {"Direct": 2, "x.com": 1}
        assert [(d.date, d.count) for d in stats.clicks_by_day] == [("2025-01-15", 3)]
        assert asyncio.run(url_service.resolve(record.short_code)).click_count == 3

    def test_every_dimension_sums_to_total(self, recorder, statistics_service, record):
        clicks = [
            ClickInfo(referrer="https://news.ycombinator.com/", browser_name="Firefox", country_code="DE"),
            ClickInfo(browser_name="Chrome", country_code="US"),
            ClickInfo(browser_name="Chrome"),
            ClickInfo(referrer="https://x.com/a", country_code="US"),
            ClickInfo(),
        ]
        for click in clicks:
            assert asyncio.run(recorder.record_click(record.short_code, click)) is True

        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))

        assert stats.total_clicks == len(clicks)
        for dimension in (stats.clicks_by_day, stats.referrers, stats.browsers, stats.countries):
            assert sum(entry.count for entry in dimension) == len(clicks)
        assert labels(stats.browsers) == {"Firefox": 1, "Chrome": 2, "Unknown": 2}
        assert labels(stats.countries) == {"DE": 1, "US": 2, "Unknown": 2}

    def test_clicks_bucketed_by_utc_day(self, recorder, statistics_service, record, clock):
        asyncio.run(recorder.record_click(record.short_code))
        clock.advance(days=1)
        asyncio.run(recorder.record_click(record.short_code))
        asyncio.run(recorder.record_click(record.short_code))

        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))

        assert [(d.date, d.count) for d in stats.clicks_by_day] == [("2025-01-15", 1), ("2025-01-16", 2)]

    def test_concurrent_clicks_are_not_lost(self, recorder, statistics_service, record):
        async def burst():
            return await asyncio.gather(*[recorder.record_click(record.short_code) for _ in range(20)])

        assert all(asyncio.run(burst()))

        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))
        assert stats.total_clicks == 20

    def test_missing_statistics_are_seeded_on_first_click(self, recorder, statistics_service, stats_store, record):
        asyncio.run(stats_store.delete_one({"url_id": record.id}))

        assert asyncio.run(recorder.record_click(record.short_code)) is True

        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))
        assert stats.url_id == record.id
        assert stats.total_clicks == 1

    def test_leftover_statistics_of_a_reused_code_stay_untouched(
        self, recorder, statistics_service, stats_store, url_service
    ):
        """Statistics left by an earlier holder of the code never take the new holder's clicks"""
        asyncio.run(statistics_service.seed(999, "reused"))
        record = asyncio.run(url_service.shorten("https://example.com/new", BASE_URL, custom_slug="reused"))
        asyncio.run(stats_store.delete_one({"url_id": record.id}))

        assert asyncio.run(recorder.record_click("reused")) is True

        stats = asyncio.run(statistics_service.get_by_short_code("reused"))
        assert stats.url_id == record.id
        assert stats.total_clicks == 1
        assert asyncio.run(statistics_service.get_by_url_id(999)).total_clicks == 0

    def test_click_bucketed_by_when_it_happened(self, recorder, statistics_service, record, clock):
        happened = clock.now()
        clock.advance(days=1)

        asyncio.run(recorder.record_click(record.short_code, ClickInfo(occurred_at=happened)))

        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))
        assert [(d.date, d.count) for d in stats.clicks_by_day] == [("2025-01-15", 1)]

    def test_orphan_click_is_dropped(self, recorder, stats_store):
        assert asyncio.run(recorder.record_click("nope")) is False

        assert asyncio.run(stats_store.count({})) == 0

    def test_storage_failure_is_contained(self, recorder, stats_store, record, monkeypatch):
        async def failing_find_one(filter):
            raise StorageFailure()

        monkeypatch.setattr(stats_store, "find_one", failing_find_one)

        assert asyncio.run(recorder.record_click(record.short_code)) is False


class TestCompareAndSwap:
    """Test optimistic concurrency on statistics documents"""

    def test_lost_race_is_retried(self, recorder, statistics_service, stats_store, record, monkeypatch):
        """Another writer lands between read and write; both increments survive"""
        real_update = stats_store.update_one
        calls = []

        async def interleaved_update(filter, patch):
            calls.append(filter)
            if len(calls) == 1:
                await real_update(
                    {"id": filter["id"]},
                    {"total_clicks": 5, "version": filter["version"] + 1},
                )
            return await real_update(filter, patch)

        monkeypatch.setattr(stats_store, "update_one", interleaved_update)

        assert asyncio.run(recorder.record_click(record.short_code)) is True

        assert len(calls) == 2
        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))
        assert stats.total_clicks == 6

    def test_conflict_after_retries(self, url_store, stats_store, clock, record, monkeypatch):
        service = StatisticsService(statistics=stats_store, urls=url_store, clock=clock, cas_retries=3)

        async def always_stale(filter, patch):
            return None

        monkeypatch.setattr(stats_store, "update_one", always_stale)

        with pytest.raises(StatisticsConflict):
            asyncio.run(service.apply_click(record.short_code, ClickInfo()))

        recorder = ClickRecorder(statistics_service=service, urls=url_store)
        assert asyncio.run(recorder.record_click(record.short_code)) is False


class TestDispatch:
    """Test fire-and-forget submission"""

    def test_submit_and_drain(self, recorder, statistics_service, record):
        async def follow_links():
            for _ in range(5):
                recorder.submit(record.short_code, ClickInfo(country_code="FR"))
            await recorder.drain()
            return recorder.pending

        assert asyncio.run(follow_links()) == 0

        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))
        assert stats.total_clicks == 5
        assert labels(stats.countries) == {"FR": 5}

    def test_submitted_orphan_does_not_raise(self, recorder):
        async def follow():
            task = recorder.submit("nope")
            return await task

        assert asyncio.run(follow()) is False

    def test_dispatch_publishes_when_queue_configured(self, statistics_service, url_store, record):
        queue = InMemoryQueue()
        recorder = ClickRecorder(statistics_service=statistics_service, urls=url_store, queue=queue)

        published = asyncio.run(recorder.dispatch(record.short_code, ClickInfo(referrer="https://x.com/")))

        assert published is True
        assert asyncio.run(queue.get_queue_length("url_clicks")) == 1
        stats = asyncio.run(statistics_service.get_by_short_code(record.short_code))
        assert stats.total_clicks == 0

    def test_published_event_keeps_click_time(self, statistics_service, url_store, record, clock):
        queue = InMemoryQueue()
        recorder = ClickRecorder(statistics_service=statistics_service, urls=url_store, queue=queue)

        asyncio.run(recorder.dispatch(record.short_code, ClickInfo(occurred_at=clock.now(), country_code="NL")))

        event = asyncio.run(queue.consume("url_clicks"))[0]
        assert event.timestamp == clock.now()
        assert event.country_code == "NL"


class TestOwnerStatistics:

    def test_statistics_by_owner(self, url_service, statistics_service, recorder):
        first = asyncio.run(url_service.shorten("https://a.example.com", BASE_URL, owner_id="alice"))
        second = asyncio.run(url_service.shorten("https://b.example.com", BASE_URL, owner_id="alice"))
        asyncio.run(url_service.shorten("https://c.example.com", BASE_URL, owner_id="bob"))
        asyncio.run(recorder.record_click(second.short_code))

        stats = asyncio.run(statistics_service.get_by_owner("alice"))

        assert {s.short_code: s.total_clicks for s in stats} == {first.short_code: 0, second.short_code: 1}

    def test_owner_without_urls(self, statistics_service):
        assert asyncio.run(statistics_service.get_by_owner("nobody")) == []
