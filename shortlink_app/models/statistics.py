from sqlalchemy import JSON, Column, Integer, String

from shortlink_app.database.connection import Base, UTCDateTime


class Statistics(Base):
    """
    Per-URL click counters.

    Breakdowns are JSON lists of ``{"date"|"label": ..., "count": n}`` kept
    in first-seen order. ``version`` guards compare-and-swap writes.
    """
    __tablename__ = "statistics"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    url_id = Column(Integer, nullable=False, unique=True, index=True)
    short_code = Column(String(64), nullable=False, index=True)
    total_clicks = Column(Integer, nullable=False, default=0)
    clicks_by_day = Column(JSON, nullable=False, default=list)
    referrers = Column(JSON, nullable=False, default=list)
    browsers = Column(JSON, nullable=False, default=list)
    countries = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
