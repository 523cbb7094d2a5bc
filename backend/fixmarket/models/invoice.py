from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Numeric, ForeignKey, JSON, Date, DateTime, func
from .authz import Base
from fixmarket.utils.dates import utcnow


class Invoice(Base):
    __tablename__ = 'invoices'
    # Status lifecycle: sent -> paid (terminal). "overdue" is derived at read time.
    STATUS_SENT = 'sent'
    STATUS_PAID = 'paid'
    ALL_STATUSES = (STATUS_SENT, STATUS_PAID)
    STATUS_OVERDUE = 'overdue'

    PAYMENT_CREDIT_CARD = 'credit_card'
    PAYMENT_ACH = 'ach'
    PAYMENT_EXTERNAL = 'external'
    ALL_PAYMENT_METHODS = (PAYMENT_CREDIT_CARD, PAYMENT_ACH, PAYMENT_EXTERNAL)
    EXTERNAL_PAYMENT_TYPES = ('check', 'cash', 'other')

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), nullable=False, index=True)
    maintenance_vendor_id: Mapped[Optional[int]] = mapped_column(ForeignKey('maintenance_vendors.id'), nullable=True, index=True)
    work_order_ids: Mapped[List[int]] = mapped_column(JSON, default=list)
    # Flat assembled record (per work order pricing + additional items) for PDF rendering
    lines: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_scope: Mapped[str] = mapped_column(String(16), nullable=False)
    tax_percentage: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=0)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    net_days: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_terms: Mapped[str] = mapped_column(String(32), nullable=False)
    issued_on: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_SENT, index=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payment_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    check_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def effective_status(self, today: date) -> str:
        if self.status == self.STATUS_SENT and self.due_date < today:
            return self.STATUS_OVERDUE
        return self.status

__all__ = ["Invoice"]
