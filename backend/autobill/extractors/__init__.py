"""
AI reply parsers
Supports: line items (JSON array), customer (JSON object)

Both accept raw model text (may be wrapped in ```json fences) and return
validated pydantic models from ..models.schemas.
"""
from .items import (
    parse_items_reply,
    validate_items,
    parse_quantity,
    parse_unit_price,
)
from .customer import parse_customer_reply, validate_customer

__all__ = [
    'parse_items_reply',
    'validate_items',
    'parse_quantity',
    'parse_unit_price',
    'parse_customer_reply',
    'validate_customer',
]
