import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pixelgate.models.base import Base


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # public identifier sent in signed URLs as ?key=
    public_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # optional for display/debug (no secret)
    key_prefix: Mapped[str] = mapped_column(String(16), nullable=False)

    # HMAC signing secret; only returned to the caller when the key is created
    secret_key: Mapped[str] = mapped_column(String(255), nullable=False)

    rate_limit_per_minute: Mapped[int | None] = mapped_column(Integer, nullable=True, default=60)
    rate_limit_per_day: Mapped[int | None] = mapped_column(Integer, nullable=True, default=10_000)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    project = relationship("Project")
