from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from storefront.data.database import Base


class ProcessedEventModel(Base):
    """Provider callbacks already applied. The primary key makes redelivery detectable."""

    __tablename__ = "processed_events"

    provider_event_id = Column(String(255), primary_key=True)
    provider_session_id = Column(String(255), nullable=True)
    outcome = Column(String(20), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
