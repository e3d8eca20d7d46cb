"""
Tariff resolver.

Prices a shipping method for a cart:

- pickup: free, only when the cart has a pickup-enabled product
- local: base fee + km fee, capped distance; beyond the cap it is unavailable
- national_flat: configured constant
- international_tiered: weight bracket price in the secondary currency
"""
import logging
from collections import namedtuple
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from fulfillment.exceptions import ValidationError
from fulfillment.models import ShippingMethod, StoreConfig
from fulfillment.utils.formatters import quantize_money, to_decimal

logger = logging.getLogger(__name__)

BASE = 'BASE'
SECONDARY = 'SECONDARY'

TierRate = namedtuple('TierRate', ['max_weight_kg', 'price', 'dimensions'])

TariffQuote = namedtuple('TariffQuote', ['method', 'fee', 'currency', 'available', 'reason'])


def parse_shipping_method(value) -> ShippingMethod:
    try:
        return ShippingMethod(value)
    except ValueError:
        raise ValidationError('Invalid shipping method')


def sort_tiers(tiers: Iterable) -> List:
    """Ascending by max weight, whatever the storage order."""
    return sorted(tiers, key=lambda t: Decimal(str(t.max_weight_kg)))


def select_tier(tiers: Sequence, weight_kg: Decimal):
    """
    First tier whose max weight covers the parcel, else the highest tier.

    Returns None only when no tiers are configured.
    """
    ordered = sort_tiers(tiers)
    if not ordered:
        return None
    for tier in ordered:
        if weight_kg <= Decimal(str(tier.max_weight_kg)):
            return tier
    return ordered[-1]


def local_fee(distance_km: Decimal, config: StoreConfig) -> Decimal:
    chargeable = min(distance_km, config.local_max_km)
    return quantize_money(config.local_base_fee + chargeable * config.local_per_km_fee)


def resolve_tariff(
    method,
    config: StoreConfig,
    tiers: Sequence = (),
    distance_km=0,
    total_weight_kg=0,
    pickup_eligible: bool = False,
) -> TariffQuote:
    """Fee, currency and availability of one shipping method."""
    method = parse_shipping_method(method)
    distance = to_decimal(distance_km, Decimal('0'))
    weight = to_decimal(total_weight_kg, Decimal('0'))

    if method is ShippingMethod.PICKUP:
        reason = None if pickup_eligible else 'No product in the cart can be picked up at the store'
        return TariffQuote(method.value, Decimal('0.00'), BASE, pickup_eligible, reason)

    if method is ShippingMethod.LOCAL:
        # The cap is both a price clamp and an eligibility gate
        fee = local_fee(distance, config)
        if distance > config.local_max_km:
            reason = (
                f'Local delivery only available within {config.local_max_km}km. '
                f'Distance: {distance:.1f}km'
            )
            return TariffQuote(method.value, fee, BASE, False, reason)
        return TariffQuote(method.value, fee, BASE, True, None)

    if method is ShippingMethod.NATIONAL_FLAT:
        return TariffQuote(method.value, quantize_money(config.national_flat_fee), BASE, True, None)

    tier = select_tier(tiers, weight)
    if tier is None:
        fee = config.international_flat_fee
    else:
        fee = Decimal(str(tier.price))
    logger.debug(f"International tier selected: weight={weight} tier={tier} fee={fee}")
    return TariffQuote(method.value, quantize_money(fee), SECONDARY, True, None)


def to_base_currency(quote: TariffQuote, config: StoreConfig) -> Decimal:
    """Fee in the store's base currency."""
    if quote.currency == SECONDARY:
        return quantize_money(quote.fee / config.fx_rate)
    return quote.fee


def shipping_options(
    config: StoreConfig,
    tiers: Sequence = (),
    distance_km: Optional[float] = None,
    total_weight_kg=0,
    pickup_eligible: bool = False,
) -> List[dict]:
    """
    Every method with its quote, for a checkout screen.

    ``distance_km`` of None (no location yet) marks local delivery unavailable.
    """
    options = []
    for method in ShippingMethod:
        if method is ShippingMethod.LOCAL and distance_km is None:
            options.append({
                'method': method.value,
                'fee': None,
                'fee_base_currency': None,
                'currency': BASE,
                'available': False,
                'reason': 'Location required for local delivery',
            })
            continue
        quote = resolve_tariff(
            method, config, tiers,
            distance_km=distance_km or 0,
            total_weight_kg=total_weight_kg,
            pickup_eligible=pickup_eligible,
        )
        options.append({
            'method': quote.method,
            'fee': quote.fee,
            'fee_base_currency': to_base_currency(quote, config),
            'currency': quote.currency,
            'available': quote.available,
            'reason': quote.reason,
        })
    return options
