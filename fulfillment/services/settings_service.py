"""
Store settings service.

Settings and shipping tiers are store configuration that can change at any
time; reads go through the cache and every write invalidates it.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from fulfillment.exceptions import ValidationError
from fulfillment.models import ShippingTier, StoreConfig, StoreSettings
from fulfillment.services.cache_service import CacheService, get_cache
from fulfillment.services.tariff_service import TierRate, sort_tiers
from fulfillment.utils.geo import is_valid_coordinate
from fulfillment.utils.formatters import to_decimal

logger = logging.getLogger(__name__)

CACHE_MODULE = 'settings'

# Numeric settings that must be strictly positive
_POSITIVE = {'delivery_max_km', 'fx_rate'}
_NON_NEGATIVE = {'delivery_base_fee', 'delivery_per_km', 'national_flat_fee', 'international_flat_fee'}


class SettingsService:
    """Load and update StoreSettings / ShippingTier through a unit of work."""

    def __init__(self, uow, cache: Optional[CacheService] = None, ttl: int = 300):
        self.uow = uow
        self.cache = cache or get_cache()
        self.ttl = ttl

    def _snapshot(self) -> Dict[str, Any]:
        row = self.uow.settings.get_settings()
        config = row.to_config() if row else StoreConfig()
        return {
            'config': config.to_dict(),
            'tiers': [t.to_dict() for t in sort_tiers(self.uow.settings.list_tiers())],
        }

    def load(self) -> Tuple[StoreConfig, List[TierRate]]:
        """Resolved configuration and tiers sorted ascending by max weight."""
        data = self.cache.memoize(CACHE_MODULE, 'snapshot', self._snapshot, ttl=self.ttl)
        config = StoreConfig.from_dict(data['config'])
        tiers = [TierRate(t['max_weight_kg'], t['price'], t.get('dimensions', '')) for t in data['tiers']]
        return config, tiers

    def describe(self) -> Dict[str, Any]:
        """Raw settings row (null means default) plus the resolved values."""
        row = self.uow.settings.get_settings()
        config, tiers = self.load()
        raw = {column: getattr(row, column) if row else None for column in StoreSettings.EDITABLE_COLUMNS}
        return {
            'settings': raw,
            'resolved': config.to_dict(),
            'shipping_tiers': [t._asdict() for t in tiers],
        }

    def update_settings(self, values: Dict[str, Any]) -> StoreSettings:
        unknown = set(values) - set(StoreSettings.EDITABLE_COLUMNS)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        cleaned = {}
        for key, value in values.items():
            if value is None or key in ('store_name', 'store_address'):
                cleaned[key] = value
                continue
            number = to_decimal(value)
            if number is None:
                raise ValidationError(f'{key} must be a number')
            if key in ('store_latitude', 'store_longitude'):
                cleaned[key] = float(number)
                continue
            if key in _POSITIVE and number <= 0:
                raise ValidationError(f'{key} must be greater than 0')
            if key in _NON_NEGATIVE and number < 0:
                raise ValidationError(f'{key} cannot be negative')
            cleaned[key] = number

        row = self.uow.settings.get_settings() or StoreSettings()
        latitude = cleaned.get('store_latitude', row.store_latitude)
        longitude = cleaned.get('store_longitude', row.store_longitude)
        if latitude is not None or longitude is not None:
            if not is_valid_coordinate(latitude, longitude):
                raise ValidationError('Store coordinates are invalid')
        for key, value in cleaned.items():
            setattr(row, key, value)

        try:
            self.uow.settings.save_settings(row)
            self.uow.commit()
        except Exception:
            self.uow.rollback()
            raise
        self.cache.invalidate_module(CACHE_MODULE)
        logger.info(f"Store settings updated: {sorted(cleaned)}")
        return row

    def replace_tiers(self, tiers: List[Dict[str, Any]]) -> List[ShippingTier]:
        if not isinstance(tiers, list):
            raise ValidationError('shipping_tiers must be a list')

        rows = []
        seen = set()
        for raw in tiers:
            weight = to_decimal((raw or {}).get('max_weight_kg'))
            price = to_decimal((raw or {}).get('price'))
            if weight is None or weight <= 0:
                raise ValidationError('max_weight_kg must be greater than 0')
            if price is None or price < 0:
                raise ValidationError('price cannot be negative')
            if weight in seen:
                raise ValidationError(f'Duplicate tier for {weight}kg')
            seen.add(weight)
            rows.append(ShippingTier(max_weight_kg=weight, price=price, dimensions=raw.get('dimensions') or ''))

        try:
            self.uow.settings.replace_tiers(rows)
            self.uow.commit()
        except Exception:
            self.uow.rollback()
            raise
        self.cache.invalidate_module(CACHE_MODULE)
        logger.info(f"Shipping tiers replaced ({len(rows)} tiers)")
        return sort_tiers(rows)

    def ensure_defaults(self) -> StoreSettings:
        """Create the singleton row when missing (all columns null = defaults)."""
        row = self.uow.settings.get_settings()
        if row is None:
            row = self.uow.settings.save_settings(StoreSettings())
            self.uow.commit()
        return row
