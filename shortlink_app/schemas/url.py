from pydantic import AnyUrl, BaseModel, Field, UrlConstraints, computed_field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Optional
from datetime import datetime
from shortlink_app.config import settings
from shortlink_app.schemas.records import DayCount, LabelCount

TargetUrl = Annotated[AnyUrl, UrlConstraints(max_length=2048, allowed_schemes=["http", "https"])]


class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase, serializes as camelCase"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class URLCreate(CamelModel):
    original_url: TargetUrl = Field(..., description="The original URL to be shortened")
    expiration_days: int = Field(settings.default_expiration_days, gt=0)
    description: Optional[str] = Field(None, max_length=settings.max_description_length)
    domain: Optional[str] = Field(None, max_length=255)
    custom_slug: Optional[str] = Field(None, min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")


class ExpirationUpdate(CamelModel):
    expiration_days: int = Field(..., gt=0)


class URLUpdate(CamelModel):
    expires_at: Optional[str] = Field(None, description="ISO-8601 timestamp")
    description: Optional[str] = Field(None, max_length=settings.max_description_length)
    custom_slug: Optional[str] = Field(None, min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")


class URLResponse(CamelModel):
    """Serializes a UrlRecord for clients (the QR payload has its own endpoint)"""
    short_code: str
    original_url: str
    owner_id: Optional[str] = None
    custom_domain: Optional[str] = None
    description: Optional[str] = None
    click_count: int
    active: bool
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def short_url(self) -> str:
        """Computed field - automatically generated from short_code"""
        return f"{settings.base_url}/{self.short_code}"

    @computed_field
    @property
    def qr_url(self) -> str:
        return f"{settings.base_url}/api/v1/urls/{self.short_code}/qr"


class StatisticsResponse(CamelModel):
    short_code: str
    total_clicks: int
    clicks_by_day: List[DayCount]
    referrers: List[LabelCount]
    browsers: List[LabelCount]
    countries: List[LabelCount]
    created_at: datetime
    updated_at: datetime


class ErrorResponse(BaseModel):
    detail: str
    kind: str
