from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, JSON, DateTime, func
from .authz import Base


class MaintenanceVendor(Base):
    __tablename__ = 'maintenance_vendors'
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_INACTIVE = 'INACTIVE'
    ALL_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True, unique=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(150), nullable=True, index=True)
    # Access tiers granted to the vendor, e.g. ["tier_1", "marketplace"]
    tiers: Mapped[List[str]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_ACTIVE, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def has_tier(self, tier: str) -> bool:
        return tier in (self.tiers or [])

__all__ = ["MaintenanceVendor"]
