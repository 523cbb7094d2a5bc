from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, Numeric, ForeignKey, DateTime, event, func
from .authz import Base
from fixmarket.utils.dates import utcnow


class Part(Base):
    __tablename__ = 'parts'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    maintenance_vendor_id: Mapped[int] = mapped_column(ForeignKey('maintenance_vendors.id'), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    markup_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False, default=0)
    round_to_ninety_nine: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PartPriceHistory(Base):
    """Append-only log of pricing changes; rows are never updated or deleted."""
    __tablename__ = 'part_price_history'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    part_id: Mapped[int] = mapped_column(ForeignKey('parts.id'), nullable=False, index=True)
    old_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    new_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    old_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    new_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    markup_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)
    round_to_ninety_nine: Mapped[bool] = mapped_column(Boolean, nullable=False)
    changed_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


@event.listens_for(PartPriceHistory, 'before_update')
def _refuse_history_update(mapper, connection, target):
    raise ValueError('part price history is append-only')


@event.listens_for(PartPriceHistory, 'before_delete')
def _refuse_history_delete(mapper, connection, target):
    raise ValueError('part price history is append-only')

__all__ = ["Part", "PartPriceHistory"]
