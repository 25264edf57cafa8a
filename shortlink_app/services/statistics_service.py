"""
Statistics service: lifecycle and aggregation of per-URL click counters.

A statistics document is seeded (zeroed) when its URL is created, renamed
with it, deleted with it, and otherwise written only by click aggregation.

Aggregation is a read-modify-write of one document. Instead of
last-write-wins, every write is a compare-and-swap on ``version``: a writer
that lost the race re-reads and re-applies its click, so concurrent clicks
on the same code never lose increments.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from shortlink_app.clock import Clock, SystemClock
from shortlink_app.exceptions import DuplicateKey, NotFound, OrphanClick, StatisticsConflict
from shortlink_app.logging_config import get_logger
from shortlink_app.schemas.records import ClickInfo, StatisticsRecord
from shortlink_app.storage.strategies import DocumentStore

logger = get_logger(__name__)

DEFAULT_REFERRER = "Direct"
DEFAULT_BROWSER = "Unknown"
DEFAULT_COUNTRY = "Unknown"


def normalize_referrer(referrer: Optional[str]) -> str:
    """Reduce a referrer URL to its host; empty means a direct visit"""
    if not referrer or not referrer.strip():
        return DEFAULT_REFERRER
    referrer = referrer.strip()
    host = urlsplit(referrer).hostname
    return host or referrer


def bump(entries: List[Dict], key: str, label: str) -> List[Dict]:
    """Find-or-append ``label`` in a counter list and increment it"""
    for entry in entries:
        if entry[key] == label:
            entry["count"] += 1
            return entries
    entries.append({key: label, "count": 1})
    return entries


class StatisticsService:
    """
    Statistics lifecycle over a document store.

    Args:
        statistics: Store for statistics documents (unique on url_id)
        urls: Store for URL records, used to self-heal a missing seed
        clock: Time source for bucket dates and timestamps
        cas_retries: Compare-and-swap attempts per click
    """

    def __init__(
        self,
        statistics: DocumentStore,
        urls: DocumentStore,
        clock: Optional[Clock] = None,
        cas_retries: int = 5,
    ):
        self.statistics = statistics
        self.urls = urls
        self.clock = clock or SystemClock()
        self.cas_retries = cas_retries

    def _zeroed(self, url_id: int, short_code: str) -> Dict:
        now = self.clock.now()
        return {
            "url_id": url_id,
            "short_code": short_code,
            "total_clicks": 0,
            "clicks_by_day": [],
            "referrers": [],
            "browsers": [],
            "countries": [],
            "version": 0,
            "created_at": now,
            "updated_at": now,
        }

    async def seed(self, url_id: int, short_code: str) -> StatisticsRecord:
        """
        Create the zeroed statistics for a new URL.

        If another writer seeded it first (lazy seed racing a click), the
        existing document is returned.
        """
        return StatisticsRecord(**await self._insert_seed(url_id, short_code))

    async def _insert_seed(self, url_id: int, short_code: str) -> Dict:
        try:
            return await self.statistics.insert_unique(self._zeroed(url_id, short_code))
        except DuplicateKey:
            document = await self.statistics.find_one({"url_id": url_id})
            if document is None:
                raise
            return document

    async def get_by_url_id(self, url_id: int) -> StatisticsRecord:
        document = await self.statistics.find_one({"url_id": url_id})
        if document is None:
            raise NotFound(f"No statistics found for URL {url_id}")
        return StatisticsRecord(**document)

    async def get_by_short_code(self, short_code: str) -> StatisticsRecord:
        """
        Statistics of the URL holding ``short_code``.

        Only ``url_id`` is unique on statistics, so the code is resolved to
        its URL first; leftovers of an earlier holder are never returned.
        """
        url = await self.urls.find_one({"short_code": short_code})
        if url is None:
            raise NotFound(f"No statistics found for '{short_code}'")
        return await self.get_by_url_id(url["id"])

    async def get_by_url_ids(self, url_ids: List[int]) -> List[StatisticsRecord]:
        """Statistics for the given URLs in order; URLs without statistics are omitted"""
        if not url_ids:
            return []
        documents = await self.statistics.find({"url_id__in": url_ids})
        by_url = {d["url_id"]: d for d in documents}
        return [StatisticsRecord(**by_url[url_id]) for url_id in url_ids if url_id in by_url]

    async def get_by_owner(self, owner_id: str) -> List[StatisticsRecord]:
        """
        Statistics for every URL the owner holds.

        Codes whose statistics are missing (seed failed, not clicked yet) are
        left out rather than reported as errors.
        """
        urls = await self.urls.find({"owner_id": owner_id}, sort=["-created_at"])
        return await self.get_by_url_ids([u["id"] for u in urls])

    async def rename(self, url_id: int, new_short_code: str) -> bool:
        """Point the statistics of ``url_id`` at a new short code"""
        updated = await self.statistics.update_one(
            {"url_id": url_id},
            {"short_code": new_short_code, "updated_at": self.clock.now()},
        )
        return updated is not None

    async def delete_for_url(self, url_id: int) -> bool:
        return await self.statistics.delete_one({"url_id": url_id})

    async def _find_url(self, short_code: str) -> Dict:
        url = await self.urls.find_one({"short_code": short_code})
        if url is None:
            raise OrphanClick(f"No URL for short code '{short_code}'")
        return url

    async def _load_or_heal(self, url: Dict) -> Dict:
        document = await self.statistics.find_one({"url_id": url["id"]})
        if document is not None:
            return document

        # Seed missing: rebuild from the authoritative URL record
        logger.info("Seeding missing statistics for '%s' on first click", url["short_code"])
        return await self._insert_seed(url["id"], url["short_code"])

    async def apply_click(self, short_code: str, click: ClickInfo) -> StatisticsRecord:
        """
        Add one click to every dimension of the code's statistics.

        Raises:
            OrphanClick: no URL holds the code
            StatisticsConflict: lost the compare-and-swap race too often
        """
        now = self.clock.now()
        # Queued clicks are bucketed by when they happened, not when processed
        today = self.bucket_date(click.occurred_at or now)
        referrer = normalize_referrer(click.referrer)
        browser = click.browser_name or DEFAULT_BROWSER
        country = click.country_code or DEFAULT_COUNTRY

        url = await self._find_url(short_code)
        for attempt in range(self.cas_retries):
            document = await self._load_or_heal(url)
            version = document.get("version", 0)

            patch = {
                "total_clicks": document["total_clicks"] + 1,
                "clicks_by_day": bump(list(document["clicks_by_day"]), "date", today),
                "referrers": bump(list(document["referrers"]), "label", referrer),
                "browsers": bump(list(document["browsers"]), "label", browser),
                "countries": bump(list(document["countries"]), "label", country),
                "version": version + 1,
                "updated_at": now,
            }

            updated = await self.statistics.update_one(
                {"id": document["id"], "version": version},
                patch,
            )
            if updated is not None:
                return StatisticsRecord(**updated)

            logger.debug("Statistics CAS miss for '%s' (attempt %d)", short_code, attempt + 1)

        raise StatisticsConflict(
            f"Statistics for '{short_code}' changed concurrently {self.cas_retries} times"
        )

    def bucket_date(self, when: Optional[datetime] = None) -> str:
        """UTC calendar day used for clicks_by_day"""
        when = when or self.clock.now()
        if when.tzinfo is not None:
            when = when.astimezone(timezone.utc)
        return when.date().isoformat()
