"""
Pricing and stock validation.
Prices a cart from stored product data only; client prices are never read.
"""
import logging
from collections import namedtuple
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fulfillment.exceptions import (
    ValidationError, UnknownProductError, ProductUnavailableError, InsufficientStockError
)
from fulfillment.utils.formatters import quantize_money

logger = logging.getLogger(__name__)

PricedLine = namedtuple('PricedLine', [
    'product_id', 'variant_id', 'product_name', 'quantity', 'unit_price', 'subtotal', 'weight_kg',
])

PricingResult = namedtuple('PricingResult', ['lines', 'subtotal', 'total_weight_kg', 'pickup_eligible'])


def _line_name(product, variant) -> str:
    if variant is None:
        return product.name
    return f'{product.name} ({variant.label})'


def price_cart(items: List[Dict[str, Any]], products_repo) -> PricingResult:
    """
    Validate every line against stored data and compute subtotal and weight.

    Read-only; stock is checked here and decremented later under a
    conditional write.
    """
    products = products_repo.get_many(str(item['product_id']) for item in items)

    lines = []
    subtotal = Decimal('0.00')
    total_weight = Decimal('0')
    pickup_eligible = False

    for item in items:
        product_id = str(item['product_id'])
        quantity = int(item['quantity'])
        variant_id: Optional[str] = item.get('variant_id') or None

        product = products.get(product_id)
        if product is None:
            raise UnknownProductError(product_id)
        if not product.active:
            raise ProductUnavailableError(product.name)

        variant = None
        if variant_id:
            variant = products_repo.get_variant(str(variant_id))
            if variant is None or variant.product_id != product.id or not variant.active:
                raise ProductUnavailableError(product.name)
            available = variant.stock
            unit_price = Decimal(str(product.price)) + variant.adjustment
        else:
            if product.active_variants:
                raise ValidationError(f'Select a variant for {product.name}')
            available = product.stock
            unit_price = Decimal(str(product.price))

        name = _line_name(product, variant)
        if quantity > available:
            raise InsufficientStockError(name, quantity, available)

        unit_price = quantize_money(unit_price)
        line_subtotal = quantize_money(unit_price * quantity)
        weight = product.effective_weight_kg * quantity

        lines.append(PricedLine(product.id, variant.id if variant else None, name,
                                quantity, unit_price, line_subtotal, weight))
        subtotal += line_subtotal
        total_weight += weight
        pickup_eligible = pickup_eligible or bool(product.pickup_enabled)

    logger.debug(f"Cart priced: {len(lines)} lines, subtotal={subtotal}, weight={total_weight}kg")
    return PricingResult(lines, quantize_money(subtotal), total_weight, pickup_eligible)
