from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, Numeric, ForeignKey, JSON, DateTime, Index, func, text
from .authz import Base
from fixmarket.utils.dates import utcnow


class MarketplaceBid(Base):
    """One immutable version of a vendor's offer on a marketplace ticket.

    Updating a bid never rewrites amounts: it marks this row superseded and inserts a
    new version whose ``previous_bid_id`` points back here. Only the linkage fields
    (``is_superseded``, ``superseded_by_bid_id``) and the decision fields change after
    insert.
    """
    __tablename__ = 'marketplace_bids'
    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_REJECTED = 'rejected'
    STATUS_COUNTER = 'counter'
    ALL_STATUSES = (STATUS_PENDING, STATUS_ACCEPTED, STATUS_REJECTED, STATUS_COUNTER)
    OPEN_STATUSES = (STATUS_PENDING, STATUS_COUNTER)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    maintenance_vendor_id: Mapped[int] = mapped_column(ForeignKey('maintenance_vendors.id'), nullable=False, index=True)
    submitted_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    hourly_rate_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    estimated_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    response_time: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    parts: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    additional_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    counter_offer_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    counter_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    decided_by: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_by: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_superseded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    superseded_by_bid_id: Mapped[Optional[int]] = mapped_column(ForeignKey('marketplace_bids.id'), nullable=True)
    previous_bid_id: Mapped[Optional[int]] = mapped_column(ForeignKey('marketplace_bids.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # At most one live version per (ticket, vendor)
        Index(
            'uq_marketplace_bids_active_version',
            'ticket_id', 'maintenance_vendor_id',
            unique=True,
            sqlite_where=text('is_superseded = 0'),
            postgresql_where=text('NOT is_superseded'),
        ),
    )

__all__ = ["MarketplaceBid"]
