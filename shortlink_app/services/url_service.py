import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Union

from shortlink_app.cache.strategies import CacheStrategy
from shortlink_app.clock import Clock
from shortlink_app.config import settings
from shortlink_app.exceptions import (
    AuthenticationRequired,
    DuplicateKey,
    Forbidden,
    GenerationExhausted,
    InvalidDate,
    InvalidInput,
    NoFieldsProvided,
    NotFound,
    PartialWriteFailure,
    QuotaExceeded,
    ShortenerError,
    SlugTaken,
)
from shortlink_app.logging_config import get_logger
from shortlink_app.schemas.records import ClickInfo, StatisticsRecord, URLPatch, UrlRecord
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.qr_renderer import QRRenderer, SegnoQRRenderer
from shortlink_app.services.quota import QuotaPolicy, UnlimitedQuotaPolicy
from shortlink_app.services.short_code_factory import ShortCodeFactory
from shortlink_app.services.short_code_strategies import ShortCodeStrategy
from shortlink_app.services.statistics_service import StatisticsService
from shortlink_app.storage.strategies import DocumentStore

logger = get_logger(__name__)


class URLService:
    """
    Shortener engine: creates, resolves, mutates and retires URL records.

    Dependencies are injected (stores, cache, recorder, renderer, quota
    policy, clock), so tests swap any of them without touching this code.

    Expiry is lazy: every read filters on ``active AND expires_at > now``,
    so an expired record is invisible even before anything deletes it.
    """

    def __init__(
        self,
        urls: DocumentStore,
        statistics_service: StatisticsService,
        recorder: Optional[ClickRecorder] = None,
        cache: Optional[CacheStrategy] = None,
        short_code_strategy: Optional[ShortCodeStrategy] = None,
        qr_renderer: Optional[QRRenderer] = None,
        quota_policy: Optional[QuotaPolicy] = None,
        clock: Optional[Clock] = None,
        code_length: int = settings.short_code_length,
        max_retries: int = settings.max_retries,
        cache_ttl: int = settings.cache_ttl,
        max_description_length: int = settings.max_description_length,
    ):
        """
        Args:
            urls: Store for URL records (unique on short_code)
            statistics_service: Seeds, renames and deletes statistics
            recorder: Click recorder used by ``redirect`` (optional)
            cache: Redirect cache (optional, for performance)
            short_code_strategy: Code generator; default from settings
            qr_renderer: Renders the QR image stored on each record
            quota_policy: Per-owner URL limits; unmetered by default
            clock: Time source for expiry and timestamps
        """
        self.urls = urls
        self.statistics_service = statistics_service
        self.recorder = recorder
        self.cache = cache
        self.short_code_strategy = short_code_strategy or ShortCodeFactory.create_strategy()
        self.qr_renderer = qr_renderer or SegnoQRRenderer()
        self.quota_policy = quota_policy or UnlimitedQuotaPolicy()
        self.clock = clock or statistics_service.clock
        self.code_length = code_length
        self.max_retries = max_retries
        self.cache_ttl = cache_ttl
        self.max_description_length = max_description_length

    @staticmethod
    def _live(now: datetime) -> Dict:
        """Filter for records visible to reads"""
        return {"active": True, "expires_at__gt": now}

    @staticmethod
    def _cache_key(short_code: str) -> str:
        return f"url:{short_code}"

    async def _invalidate(self, short_code: str) -> None:
        if self.cache:
            await self.cache.delete(self._cache_key(short_code))

    @staticmethod
    def _validate_days(days) -> None:
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise InvalidDate("Valid expiration days required (positive integer)")

    def _validate_description(self, description: Optional[str]) -> None:
        if description is not None and len(description) > self.max_description_length:
            raise InvalidInput(
                f"Description cannot exceed {self.max_description_length} characters"
            )

    @staticmethod
    def _parse_expiry(value: Union[datetime, str]) -> datetime:
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            except ValueError as e:
                raise InvalidDate(f"Malformed expiration date: {value!r}") from e
        if not isinstance(value, datetime):
            raise InvalidDate(f"Malformed expiration date: {value!r}")
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    @staticmethod
    def _authorize(record: UrlRecord, caller_id: Optional[str]) -> None:
        """Owned records may only be changed by their owner"""
        if record.owner_id is None:
            return
        if caller_id is None:
            raise AuthenticationRequired("Authentication required to modify this URL")
        if caller_id != record.owner_id:
            raise Forbidden()

    async def _get_owned(self, short_code: str, caller_id: Optional[str]) -> UrlRecord:
        record = await self.resolve(short_code)
        self._authorize(record, caller_id)
        return record

    async def _check_quota(self, owner_id: str, now: datetime) -> None:
        limit = self.quota_policy.limit_for(owner_id)
        if limit is None:
            return
        # Only live records count: expired ones no longer hold a code
        used = await self.urls.count({"owner_id": owner_id, **self._live(now)})
        if used >= limit:
            raise QuotaExceeded(f"URL limit reached ({used}/{limit})")

    async def _retire(self, document: Dict) -> None:
        """
        Physically remove a URL record and then its statistics.

        Raises:
            PartialWriteFailure: the URL is gone but its statistics remain
        """
        await self.urls.delete_one({"id": document["id"]})
        await self._invalidate(document["short_code"])
        try:
            await self.statistics_service.delete_for_url(document["id"])
        except ShortenerError as e:
            logger.error(
                "Deleted URL '%s' but not its statistics: %s", document["short_code"], e
            )
            raise PartialWriteFailure(
                f"URL '{document['short_code']}' deleted but its statistics were not",
                completed=["url"],
                failed=["statistics"],
            ) from e

    async def _release_stale_slug(self, slug: str, now: datetime) -> None:
        """
        Make ``slug`` available, or raise SlugTaken if a live record holds it.

        An expired or inactive record still occupies the unique index; it is
        purged so the slug can be reused.
        """
        existing = await self.urls.find_one({"short_code": slug})
        if existing is None:
            return
        if existing["active"] and existing["expires_at"] > now:
            raise SlugTaken(f"Custom slug '{slug}' is already in use")

        logger.info("Purging stale record holding slug '%s'", slug)
        await self._retire(existing)

    def _render_qr(self, base_url: str, short_code: str) -> bytes:
        return self.qr_renderer.render(f"{base_url.rstrip('/')}/{short_code}")

    async def _insert_with_slug(self, document: Dict, slug: str, base_url: str, now: datetime) -> UrlRecord:
        await self._release_stale_slug(slug, now)
        qr_image = self._render_qr(base_url, slug)
        try:
            stored = await self.urls.insert_unique({**document, "short_code": slug, "qr_image": qr_image})
        except DuplicateKey as e:
            # Lost the race to a concurrent creator
            raise SlugTaken(f"Custom slug '{slug}' is already in use") from e
        return UrlRecord(**stored)

    async def _insert_generated(self, document: Dict, base_url: str) -> UrlRecord:
        for attempt in range(1, self.max_retries + 1):
            short_code = self.short_code_strategy.generate(self.code_length)
            qr_image = self._render_qr(base_url, short_code)
            try:
                stored = await self.urls.insert_unique(
                    {**document, "short_code": short_code, "qr_image": qr_image}
                )
                return UrlRecord(**stored)
            except DuplicateKey:
                logger.warning(
                    "Short code collision on '%s' (attempt %d/%d)", short_code, attempt, self.max_retries
                )

        raise GenerationExhausted(
            f"Could not generate unique short code after {self.max_retries} attempts"
        )

    async def _seed_statistics(self, record: UrlRecord) -> None:
        # The URL stays even if this fails; the first click re-seeds
        try:
            await self.statistics_service.seed(record.id, record.short_code)
        except ShortenerError as e:
            logger.warning("Statistics seed failed for '%s': %s", record.short_code, e)

    async def shorten(
        self,
        original_url: str,
        base_url: str,
        expiration_days: int = 7,
        description: Optional[str] = None,
        domain: Optional[str] = None,
        owner_id: Optional[str] = None,
        custom_slug: Optional[str] = None,
    ) -> UrlRecord:
        """
        Create a short URL, or return the owner's existing one for the same target.

        Process:
        1. Owned requests: return the live record for (original_url, owner) if any
        2. Owned requests: enforce the plan quota
        3. Custom domains require an owner
        4. Use the custom slug, or generate (regenerating on collision)
        5. Render the QR image and persist the record
        6. Seed zeroed statistics (failure here is logged, not raised)

        Raises:
            QuotaExceeded, AuthenticationRequired, SlugTaken, GenerationExhausted,
            InvalidDate, InvalidInput, RenderFailure, StorageFailure
        """
        now = self.clock.now()

        if owner_id is not None:
            existing = await self.urls.find_one(
                {"original_url": original_url, "owner_id": owner_id, **self._live(now)}
            )
            if existing is not None:
                logger.debug("Re-shorten of %s by %s returns '%s'", original_url, owner_id, existing["short_code"])
                return UrlRecord(**existing)

            await self._check_quota(owner_id, now)

        if domain and owner_id is None:
            raise AuthenticationRequired("Authentication required to use custom domains")

        self._validate_days(expiration_days)
        self._validate_description(description)

        document = {
            "original_url": original_url,
            "owner_id": owner_id,
            "custom_domain": domain,
            "description": description,
            "click_count": 0,
            "active": True,
            "expires_at": now + timedelta(days=expiration_days),
            "created_at": now,
            "updated_at": now,
        }

        if custom_slug:
            record = await self._insert_with_slug(document, custom_slug, base_url, now)
        else:
            record = await self._insert_generated(document, base_url)

        await self._seed_statistics(record)
        logger.info("Created short code '%s' -> %s", record.short_code, record.original_url)
        return record

    async def resolve(self, short_code: str) -> UrlRecord:
        """
        Live record for a short code.

        Raises:
            NotFound: absent, inactive, or expired
        """
        document = await self.urls.find_one({"short_code": short_code, **self._live(self.clock.now())})
        if document is None:
            raise NotFound()
        return UrlRecord(**document)

    async def resolve_target(self, short_code: str) -> str:
        """
        Target URL for a redirect, using the Cache-Aside pattern.

        Cache entries carry the record's expiry and are re-checked against
        the clock, so a cached entry can never outlive its record.
        """
        now = self.clock.now()
        cache_key = self._cache_key(short_code)

        if self.cache:
            cached = await self.cache.get(cache_key)
            if cached:
                try:
                    entry = json.loads(cached)
                    if datetime.fromisoformat(entry["expires_at"]) > now:
                        return entry["original_url"]
                except (ValueError, KeyError, TypeError):
                    logger.warning("Discarding malformed cache entry for '%s'", short_code)
                await self.cache.delete(cache_key)

        record = await self.resolve(short_code)

        if self.cache:
            ttl = min(self.cache_ttl, int((record.expires_at - now).total_seconds()))
            if ttl > 0:
                entry = {"original_url": record.original_url, "expires_at": record.expires_at.isoformat()}
                await self.cache.set(cache_key, json.dumps(entry), ttl=ttl)

        return record.original_url

    async def redirect(self, short_code: str, click: Optional[ClickInfo] = None) -> str:
        """
        Resolve for a redirect and record the click without waiting for it.

        The click is submitted as a detached task; its outcome never affects
        the returned target.
        """
        target = await self.resolve_target(short_code)
        if self.recorder is not None:
            self.recorder.submit(short_code, click)
        return target

    async def list_for_owner(self, owner_id: str) -> List[UrlRecord]:
        """Owner's live records, newest first"""
        documents = await self.urls.find(
            {"owner_id": owner_id, **self._live(self.clock.now())},
            sort=["-created_at"],
        )
        return [UrlRecord(**d) for d in documents]

    async def get_qr_image(self, short_code: str) -> bytes:
        record = await self.resolve(short_code)
        if not record.qr_image:
            raise NotFound(f"No QR code stored for '{short_code}'")
        return record.qr_image

    async def get_statistics(self, short_code: str, caller_id: Optional[str] = None) -> StatisticsRecord:
        """Statistics of a live record, restricted to its owner when it has one"""
        record = await self._get_owned(short_code, caller_id)
        return await self.statistics_service.get_by_url_id(record.id)

    async def update_expiration(self, short_code: str, days: int, caller_id: Optional[str] = None) -> UrlRecord:
        """Set expires_at to now + days on a live record"""
        self._validate_days(days)
        record = await self._get_owned(short_code, caller_id)

        now = self.clock.now()
        updated = await self.urls.update_one(
            {"id": record.id, **self._live(now)},
            {"expires_at": now + timedelta(days=days), "updated_at": now},
        )
        if updated is None:
            raise NotFound()

        await self._invalidate(short_code)
        return UrlRecord(**updated)

    async def update(
        self,
        short_code: str,
        patch: Union[URLPatch, Dict],
        caller_id: Optional[str] = None,
    ) -> UrlRecord:
        """
        Partial update of expires_at, description and custom_slug.

        A new custom_slug renames the record: the old code stops resolving,
        the new one resolves to the same target, and the statistics follow
        the rename so counters carry over.

        Raises:
            NoFieldsProvided, InvalidDate, InvalidInput, SlugTaken, NotFound,
            Forbidden, AuthenticationRequired, PartialWriteFailure
        """
        if isinstance(patch, dict):
            patch = URLPatch(**patch)
        fields = patch.model_dump(exclude_none=True)
        if not fields:
            raise NoFieldsProvided()

        changes: Dict = {}
        if "expires_at" in fields:
            changes["expires_at"] = self._parse_expiry(fields["expires_at"])
        if "description" in fields:
            self._validate_description(fields["description"])
            changes["description"] = fields["description"]

        record = await self._get_owned(short_code, caller_id)
        now = self.clock.now()

        new_code = fields.get("custom_slug")
        if new_code and new_code != record.short_code:
            await self._release_stale_slug(new_code, now)
            changes["short_code"] = new_code

        changes["updated_at"] = now
        try:
            updated = await self.urls.update_one(
                {"id": record.id, "short_code": record.short_code},
                changes,
            )
        except DuplicateKey as e:
            raise SlugTaken(f"Custom slug '{new_code}' is already in use") from e
        if updated is None:
            # Deleted or renamed by someone else in the meantime
            raise NotFound()

        await self._invalidate(record.short_code)

        if "short_code" in changes:
            try:
                renamed = await self.statistics_service.rename(record.id, new_code)
            except ShortenerError as e:
                raise PartialWriteFailure(
                    f"URL renamed to '{new_code}' but statistics still use '{record.short_code}'",
                    completed=["url"],
                    failed=["statistics"],
                ) from e
            if not renamed:
                logger.info("No statistics to rename for '%s'; first click will seed them", new_code)
            logger.info("Renamed '%s' -> '%s'", record.short_code, new_code)

        return UrlRecord(**updated)

    async def delete(self, short_code: str, caller_id: Optional[str] = None) -> None:
        """
        Remove a URL record and its statistics.

        Raises:
            NotFound, Forbidden, AuthenticationRequired
            PartialWriteFailure: URL removed, statistics left behind
        """
        record = await self._get_owned(short_code, caller_id)
        await self._retire({"id": record.id, "short_code": record.short_code})
        logger.info("Deleted short code '%s'", short_code)

    async def purge_expired(self) -> int:
        """
        Physically remove expired and inactive records with their statistics.

        Optional housekeeping: reads already ignore these records.

        Returns:
            Number of URL records removed
        """
        now = self.clock.now()
        stale = await self.urls.find({"expires_at__lte": now})
        stale += await self.urls.find({"active": False, "expires_at__gt": now})

        for document in stale:
            await self._retire(document)

        if stale:
            logger.info("Purged %d stale URL records", len(stale))
        return len(stale)
