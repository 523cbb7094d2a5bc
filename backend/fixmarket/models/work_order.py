from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Numeric, ForeignKey, JSON, DateTime
from .authz import Base
from fixmarket.utils.dates import utcnow


class WorkOrder(Base):
    __tablename__ = 'work_orders'
    STATUS_COMPLETED = 'completed'
    STATUS_RETURN_NEEDED = 'return_needed'
    ALL_STATUSES = (STATUS_COMPLETED, STATUS_RETURN_NEEDED)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    technician_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    technician_name: Mapped[str] = mapped_column(String(128), nullable=False)
    work_description: Mapped[str] = mapped_column(Text, nullable=False)
    completion_status: Mapped[str] = mapped_column(String(16), nullable=False)
    hours_worked: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=0)
    hourly_rate_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Versioned line-item envelopes, see services.line_items
    parts: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    other_charges: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    # Derived from the fields above at write time; recomputed, never trusted from input
    labor_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parts_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    other_charges_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    images: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

__all__ = ["WorkOrder"]
