from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, JSON, DateTime, func
from typing import Optional, List

Base = declarative_base()


class Organization(Base):
    __tablename__ = 'organizations'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(150))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class User(Base):
    """Directory entry for anyone acting in the marketplace.

    Organization users carry ``organization_id``; vendor staff (maintenance admins and
    technicians) carry ``maintenance_vendor_id``. ``tiers`` holds explicit grants such
    as ``marketplace``.
    """
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    role: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(ForeignKey('organizations.id'), nullable=True, index=True)
    maintenance_vendor_id: Mapped[Optional[int]] = mapped_column(ForeignKey('maintenance_vendors.id'), nullable=True, index=True)
    tiers: Mapped[List[str]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
