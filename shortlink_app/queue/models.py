"""
Data models for queue messages.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from typing import Optional

from shortlink_app.schemas.records import ClickInfo


class ClickEvent(BaseModel):
    """
    Event model for click tracking.

    Published when a short URL is followed and the click dispatch is set to
    "queue". Carries exactly what the click recorder needs.
    """

    short_code: str = Field(..., description="The short code that was accessed")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the click occurred",
    )
    referrer: Optional[str] = Field(None, description="HTTP referer")
    browser_name: Optional[str] = Field(None, description="Browser name parsed from the user agent")
    country_code: Optional[str] = Field(None, description="Country code (e.g., US, GB)")

    # Set by backends that need acknowledgment (Redis Streams)
    message_id: Optional[str] = Field(None, exclude=True)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "short_code": "aZ3_x9",
                "timestamp": "2025-10-29T10:30:00Z",
                "referrer": "https://twitter.com",
                "browser_name": "Chrome",
                "country_code": "US",
            }
        }
    )

    @property
    def click(self) -> ClickInfo:
        return ClickInfo(
            referrer=self.referrer,
            browser_name=self.browser_name,
            country_code=self.country_code,
            occurred_at=self.timestamp,
        )
