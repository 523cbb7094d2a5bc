from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, ForeignKey, DateTime, func
from fixmarket.models.authz import Base
from fixmarket.utils.dates import utcnow


class Ticket(Base):
    __tablename__ = 'tickets'
    STATUS_OPEN = 'open'
    STATUS_ACCEPTED = 'accepted'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_RETURN_NEEDED = 'return_needed'
    STATUS_COMPLETED = 'completed'
    STATUS_REJECTED = 'rejected'
    ALL_STATUSES = (STATUS_OPEN, STATUS_ACCEPTED, STATUS_IN_PROGRESS, STATUS_RETURN_NEEDED, STATUS_COMPLETED, STATUS_REJECTED)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_REJECTED)

    PRIORITY_LOW = 'low'
    PRIORITY_MEDIUM = 'medium'
    PRIORITY_HIGH = 'high'
    ALL_PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=PRIORITY_MEDIUM)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_OPEN, index=True)
    reporter_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    # Direct assignment (vendor and/or its technician) and marketplace mode are mutually exclusive
    maintenance_vendor_id: Mapped[Optional[int]] = mapped_column(ForeignKey('maintenance_vendors.id'), nullable=True, index=True)
    assignee_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    is_marketplace: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scheduled_start: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    scheduled_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    estimated_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_directly_assigned(self) -> bool:
        return self.maintenance_vendor_id is not None or self.assignee_id is not None

# Status flow: open -> accepted -> in-progress -> completed | return_needed (-> in-progress again);
# open -> rejected. completed and rejected are terminal.
