# backend/autobill/services/product_service.py
"""
Product / service catalog (per company)

- product_code: PRD-001, PRD-002 ... when not given (count of the company's products + 1)
- list: newest first, optionally active only
- delete is a hard delete (line items keep their own copy of description / price)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..models.schemas import ProductData
from ..utils.validators import optional_text
from .supabase_store import ProductStore, utc_now_iso

logger = logging.getLogger(__name__)

PRODUCT_CODE_PREFIX = "PRD"
OPTIONAL_TEXT_FIELDS = ("name_en", "description", "category")


def generate_product_code(existing_count: int) -> str:
    return f"{PRODUCT_CODE_PREFIX}-{max(existing_count, 0) + 1:03d}"


def _db_value(v: Any) -> Any:
    # numeric columns go over JSON as numbers
    if isinstance(v, Decimal):
        return float(v)
    return v


def new_product_row(company_id: str, data: ProductData, product_code: str) -> Dict[str, Any]:
    return {
        "company_id": company_id,
        "product_code": product_code,
        "name": data.name,
        "name_en": optional_text(data.name_en),
        "description": optional_text(data.description),
        "product_type": data.product_type,
        "category": optional_text(data.category),
        "unit": data.unit,
        "unit_price": float(data.unit_price),
        "cost_price": _db_value(data.cost_price),
        "is_vat_inclusive": data.is_vat_inclusive,
        "vat_rate": float(data.vat_rate),
        "is_active": data.is_active,
    }


class ProductService:
    def __init__(self, store: ProductStore) -> None:
        self.store = store

    def list_products(self, company_id: str, active_only: bool = False) -> List[Dict[str, Any]]:
        return self.store.list_for_company(company_id, active_only=active_only)

    def create_product(self, company_id: str, data: ProductData) -> Dict[str, Any]:
        code = optional_text(data.product_code)
        if code is None:
            code = generate_product_code(self.store.count(company_id))
        created = self.store.insert(new_product_row(company_id, data, code))
        logger.info("Product created: company=%s code=%s", company_id, code)
        return created

    def update_product(self, company_id: str, product_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = {k: _db_value(v) for k, v in fields.items() if k not in ("id", "company_id")}
        for key in OPTIONAL_TEXT_FIELDS:
            if key in payload:
                payload[key] = optional_text(payload[key])
        payload["updated_at"] = utc_now_iso()
        return self.store.update(company_id, product_id, payload)

    def delete_product(self, company_id: str, product_id: str) -> bool:
        deleted = self.store.delete(company_id, product_id)
        if deleted:
            logger.info("Product deleted: company=%s id=%s", company_id, product_id)
        return deleted


__all__ = ["ProductService", "generate_product_code", "new_product_row"]
