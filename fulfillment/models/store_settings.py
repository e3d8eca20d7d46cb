"""Store settings model (singleton store configuration)."""
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import Column, String, Text, Float, Numeric, DateTime
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin


@dataclass(frozen=True)
class StoreConfig:
    """Resolved store configuration with every default applied."""
    store_latitude: float = -34.6037
    store_longitude: float = -58.3816
    local_base_fee: Decimal = Decimal('5')
    local_per_km_fee: Decimal = Decimal('1.5')
    local_max_km: Decimal = Decimal('4')
    national_flat_fee: Decimal = Decimal('30')
    international_flat_fee: Decimal = Decimal('245')
    fx_rate: Decimal = Decimal('8.5')  # secondary currency units per base unit

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoreConfig':
        """Build from a partial mapping; missing or null values use defaults."""
        values = {}
        for field in fields(cls):
            raw = data.get(field.name)
            if raw is None:
                continue
            values[field.name] = float(raw) if field.type is float else Decimal(str(raw))
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {field.name: getattr(self, field.name) for field in fields(self)}


# Column name on StoreSettings -> StoreConfig field
_CONFIG_COLUMNS = {
    'store_latitude': 'store_latitude',
    'store_longitude': 'store_longitude',
    'delivery_base_fee': 'local_base_fee',
    'delivery_per_km': 'local_per_km_fee',
    'delivery_max_km': 'local_max_km',
    'national_flat_fee': 'national_flat_fee',
    'international_flat_fee': 'international_flat_fee',
    'fx_rate': 'fx_rate',
}


class StoreSettings(EntityMixin, Base):
    """Singleton row; null columns fall back to StoreConfig defaults."""

    __tablename__ = 'store_settings'

    store_name = Column(String(200), nullable=True)
    store_address = Column(Text, nullable=True)
    store_latitude = Column(Float, nullable=True)
    store_longitude = Column(Float, nullable=True)
    delivery_base_fee = Column(Numeric(10, 2), nullable=True)
    delivery_per_km = Column(Numeric(10, 2), nullable=True)
    delivery_max_km = Column(Numeric(8, 2), nullable=True)
    national_flat_fee = Column(Numeric(10, 2), nullable=True)
    international_flat_fee = Column(Numeric(10, 2), nullable=True)
    fx_rate = Column(Numeric(10, 4), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    EDITABLE_COLUMNS = ('store_name', 'store_address') + tuple(_CONFIG_COLUMNS)

    def to_config(self) -> StoreConfig:
        return StoreConfig.from_dict({
            field: getattr(self, column) for column, field in _CONFIG_COLUMNS.items()
        })

    def __repr__(self):
        return f"<StoreSettings(id={self.id}, store_name='{self.store_name}')>"
