"""
Domain records returned by the services.

Stores hand back plain dicts; services wrap them in these models. Field
names match the persisted columns, and ``by_alias`` serialization yields
the camelCase contract (``shortCode``, ``originalUrl``, ...).
"""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RecordModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UrlRecord(RecordModel):
    id: int
    short_code: str
    original_url: str
    owner_id: Optional[str] = None
    custom_domain: Optional[str] = None
    description: Optional[str] = None
    qr_image: Optional[bytes] = Field(default=None, exclude=True)
    click_count: int = 0
    active: bool = True
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    def is_live(self, now: datetime) -> bool:
        """Active and not yet expired"""
        return self.active and self.expires_at > now


class DayCount(RecordModel):
    date: str  # YYYY-MM-DD, UTC
    count: int = 0


class LabelCount(RecordModel):
    label: str
    count: int = 0


class StatisticsRecord(RecordModel):
    id: int
    url_id: int
    short_code: str
    total_clicks: int = 0
    clicks_by_day: List[DayCount] = Field(default_factory=list)
    referrers: List[LabelCount] = Field(default_factory=list)
    browsers: List[LabelCount] = Field(default_factory=list)
    countries: List[LabelCount] = Field(default_factory=list)
    version: int = Field(default=0, exclude=True)
    created_at: datetime
    updated_at: datetime


class ClickInfo(BaseModel):
    """Request metadata for one click; missing values get defaults when recorded"""
    referrer: Optional[str] = None
    browser_name: Optional[str] = None
    country_code: Optional[str] = None
    occurred_at: Optional[datetime] = None  # None means "now" when recorded


class URLPatch(BaseModel):
    """Partial update; unset fields are left untouched"""
    expires_at: Optional[Union[datetime, str]] = None
    description: Optional[str] = None
    custom_slug: Optional[str] = None
