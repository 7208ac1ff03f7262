"""Sector, service catalogue and GTC point models."""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Sector(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "sectors"

    name: str = Field(nullable=False, unique=True, index=True)


class Service(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "services"

    code: str = Field(nullable=False, unique=True, index=True)
    name: str = Field(nullable=False)
    # Services can be moved between sectors after onboarding selections are made
    sector_id: uuid.UUID = Field(foreign_key="sectors.id", nullable=False, index=True)


class GtcPoint(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "gtc_points"

    name: str = Field(nullable=False)
    email: str = Field(nullable=False, unique=True, index=True)
    sector_id: uuid.UUID = Field(foreign_key="sectors.id", nullable=False, index=True)


class GtcPointService(TimestampMixin, SQLModel, table=True):
    """Link between a point and a service, unique on (point, service)."""

    __tablename__ = "gtc_point_services"

    gtc_point_id: uuid.UUID = Field(foreign_key="gtc_points.id", primary_key=True)
    service_id: uuid.UUID = Field(foreign_key="services.id", primary_key=True)
    status: str = Field(nullable=False, default="PENDING_REQUEST")  # ENABLED | DISABLED | PENDING_REQUEST
