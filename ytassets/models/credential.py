import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, LargeBinary, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ytassets.db.base import Base


class ProviderCredential(Base):
    """An API credential for one generation provider (whisk, imagefx, elevenlabs)."""

    __tablename__ = "provider_credentials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    secret_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)  # Fernet
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    # Selection order is least-recently-used first, so this is never NULL
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
