from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.database import Base
from src.models.base import TimestampMixin

if TYPE_CHECKING:
    from src.models.user import User


class AssetCategory(enum.Enum):
    laptop = "Laptop"
    desktop = "Desktop"
    server = "Server"
    mobile = "Mobile"
    software = "Software"
    other = "Other"


class AssetStatus(enum.Enum):
    available = "Available"
    in_use = "In Use"
    under_maintenance = "Under Maintenance"
    retired = "Retired"


class Asset(Base, TimestampMixin):
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(primary_key=True)
    asset_tag: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)  # INV-1001
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[AssetCategory] = mapped_column(
        Enum(AssetCategory), nullable=False, default=AssetCategory.other
    )
    status: Mapped[AssetStatus] = mapped_column(
        Enum(AssetStatus), nullable=False, default=AssetStatus.available
    )
    purchase_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    next_maintenance: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_maintenance: Mapped[Optional[datetime]] = mapped_column(DateTime)
    maintenance_interval: Mapped[Optional[int]] = mapped_column(Integer)  # days
    warranty_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime)
    license_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    serial_number: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    assigned_to_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))

    assigned_to: Mapped[Optional["User"]] = relationship()

    def __repr__(self) -> str:
        return f"<Asset {self.asset_tag}:{self.name}>"
