# backend/autobill/services/customer_service.py
"""
Customer service (ลูกค้า)

find_or_create() is called every time a quotation / invoice is saved so the
customer book fills itself from documents:

1) tax_id given -> match (tax_id, branch_code)   [same company, other branch = other record]
2) else / not found -> match (name, branch_code)
3) else -> insert

On a match, incoming non-empty values win and blanks keep what is stored.
branch_code is never updated (it is part of the key).
If nothing changed, the stored row is returned without a write.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..models.schemas import CustomerData
from ..utils.validators import HEAD_OFFICE_BRANCH, optional_text
from .supabase_store import CustomerStore, utc_now_iso

logger = logging.getLogger(__name__)

# fields compared / merged on each match path (ไม่รวม branch_code เพราะเป็น key)
TAX_PATH_FIELDS = ("name", "address", "contact_name", "phone", "email")
NAME_PATH_FIELDS = ("tax_id", "address", "contact_name", "phone", "email")

DEFAULT_COUNTRY = "TH"
DEFAULT_PAYMENT_TERMS = 30


def _norm(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip()


def merge_fields(existing: Dict[str, Any], incoming: Dict[str, Any], fields: Sequence[str]) -> Dict[str, Optional[str]]:
    """Incoming non-empty value wins, otherwise keep the stored one."""
    out: Dict[str, Optional[str]] = {}
    for f in fields:
        out[f] = optional_text(incoming.get(f)) or optional_text(existing.get(f))
    return out


def has_changes(existing: Dict[str, Any], merged: Dict[str, Any], fields: Sequence[str]) -> bool:
    return any(_norm(existing.get(f)) != _norm(merged.get(f)) for f in fields)


def new_customer_row(company_id: str, data: CustomerData) -> Dict[str, Any]:
    return {
        "company_id": company_id,
        "customer_type": data.customer_type or "company",
        "name": data.name.strip(),
        "tax_id": optional_text(data.tax_id),
        "branch_code": data.branch_or_head_office,
        "address": optional_text(data.address),
        "contact_name": optional_text(data.contact_name),
        "phone": optional_text(data.phone),
        "email": optional_text(data.email),
        "country": DEFAULT_COUNTRY,
        "payment_terms": DEFAULT_PAYMENT_TERMS,
        "is_active": True,
    }


class CustomerService:
    def __init__(self, store: CustomerStore) -> None:
        self.store = store

    # -------------------------
    # CRUD
    # -------------------------
    def list_customers(self, company_id: str) -> List[Dict[str, Any]]:
        return self.store.list_active(company_id)

    def create_customer(self, company_id: str, data: CustomerData) -> Dict[str, Any]:
        created = self.store.insert(new_customer_row(company_id, data))
        logger.info("Customer created: company=%s id=%s", company_id, created.get("id"))
        return created

    def update_customer(self, company_id: str, customer_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = dict(fields)
        payload.pop("id", None)
        payload.pop("company_id", None)
        payload["updated_at"] = utc_now_iso()
        return self.store.update(company_id, customer_id, payload)

    def delete_customer(self, company_id: str, customer_id: str) -> bool:
        # soft delete
        updated = self.store.update(
            company_id,
            customer_id,
            {"is_active": False, "updated_at": utc_now_iso()},
        )
        return updated is not None

    # -------------------------
    # Find-or-create
    # -------------------------
    def find_or_create(self, company_id: str, data: CustomerData) -> Optional[Dict[str, Any]]:
        name = _norm(data.name)
        if not name:
            return None

        incoming = data.model_dump()
        incoming["name"] = name
        branch = data.branch_code or HEAD_OFFICE_BRANCH

        tax_id = _norm(data.tax_id)
        if tax_id:
            existing = self.store.find_active_by_tax_branch(company_id, tax_id, branch)
            if existing:
                merged = merge_fields(existing, incoming, TAX_PATH_FIELDS)
                if not has_changes(existing, merged, TAX_PATH_FIELDS):
                    return existing
                logger.info("Customer matched by tax_id, updating: id=%s", existing.get("id"))
                return self.update_customer(company_id, existing["id"], merged)

        existing = self.store.find_active_by_name_branch(company_id, name, branch)
        if existing:
            merged = merge_fields(existing, incoming, NAME_PATH_FIELDS)
            if not has_changes(existing, merged, NAME_PATH_FIELDS):
                return existing
            logger.info("Customer matched by name, updating: id=%s", existing.get("id"))
            return self.update_customer(company_id, existing["id"], merged)

        return self.create_customer(company_id, data)


__all__ = [
    "CustomerService",
    "merge_fields",
    "has_changes",
    "new_customer_row",
]
