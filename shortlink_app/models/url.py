from sqlalchemy import Boolean, Column, Integer, LargeBinary, String, Text

from shortlink_app.database.connection import Base, UTCDateTime


class URL(Base):
    """
    URL record: the redirect hot path only ever touches this table.

    Click breakdowns live in ``Statistics`` (linked by id and short_code),
    so aggregation never rewrites the row the redirect reads.
    """
    __tablename__ = "urls"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    # unique=True is the atomic uniqueness check for concurrent creators
    short_code = Column(String(64), unique=True, nullable=False, index=True)
    original_url = Column(Text, nullable=False)
    owner_id = Column(String(128), nullable=True, index=True)
    custom_domain = Column(String(255), nullable=True)
    description = Column(String(500), nullable=True)
    qr_image = Column(LargeBinary, nullable=True)
    click_count = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(UTCDateTime, nullable=False, index=True)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
