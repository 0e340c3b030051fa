# backend/autobill/services/supabase_store.py
"""
Supabase (hosted Postgres) access layer

- The backend talks to Supabase with the service key, which bypasses RLS,
  so EVERY query here filters by company_id explicitly.
- Each store is a thin wrapper: query building + error wrapping only.
  Business rules (merge, totals, gating) live in the *_service modules.
- Failures are raised as StoreError (logged once here, handled by the app).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from ..config import get_settings

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Database call failed (network / PostgREST / RPC error)."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _execute(query: Any, action: str) -> Any:
    try:
        return query.execute()
    except Exception as e:
        logger.error("Supabase %s failed: %s", action, e)
        raise StoreError(f"{action} failed") from e


def _rows(resp: Any) -> List[Dict[str, Any]]:
    data = getattr(resp, "data", None)
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]
    if isinstance(data, dict):
        return [data]
    return []


def _first(resp: Any) -> Optional[Dict[str, Any]]:
    rows = _rows(resp)
    return rows[0] if rows else None


@lru_cache(maxsize=1)
def get_supabase_client() -> Any:
    from supabase import create_client

    s = get_settings()
    if not s.supabase_url or not s.supabase_service_key:
        raise StoreError("Missing SUPABASE_URL / SUPABASE_SERVICE_KEY")
    return create_client(s.supabase_url, s.supabase_service_key)


# ============================================================
# Customers
# ============================================================
class CustomerStore:
    table = "customers"

    def __init__(self, client: Any) -> None:
        self.client = client

    def _active(self, company_id: str) -> Any:
        return (
            self.client.table(self.table)
            .select("*")
            .eq("company_id", company_id)
            .eq("is_active", True)
        )

    def find_active_by_tax_branch(self, company_id: str, tax_id: str, branch_code: str) -> Optional[Dict[str, Any]]:
        q = self._active(company_id).eq("tax_id", tax_id).eq("branch_code", branch_code).limit(1)
        return _first(_execute(q, "customers.find_by_tax_branch"))

    def find_active_by_name_branch(self, company_id: str, name: str, branch_code: str) -> Optional[Dict[str, Any]]:
        q = self._active(company_id).eq("name", name).eq("branch_code", branch_code).limit(1)
        return _first(_execute(q, "customers.find_by_name_branch"))

    def list_active(self, company_id: str) -> List[Dict[str, Any]]:
        q = self._active(company_id).order("name")
        return _rows(_execute(q, "customers.list"))

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        resp = _execute(self.client.table(self.table).insert(row), "customers.insert")
        created = _first(resp)
        if created is None:
            raise StoreError("customers.insert returned no row")
        return created

    def update(self, company_id: str, customer_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        q = (
            self.client.table(self.table)
            .update(fields)
            .eq("company_id", company_id)
            .eq("id", customer_id)
        )
        return _first(_execute(q, "customers.update"))


# ============================================================
# Products
# ============================================================
class ProductStore:
    table = "products"

    def __init__(self, client: Any) -> None:
        self.client = client

    def list_for_company(self, company_id: str, active_only: bool = False) -> List[Dict[str, Any]]:
        q = self.client.table(self.table).select("*").eq("company_id", company_id)
        if active_only:
            q = q.eq("is_active", True)
        q = q.order("created_at", desc=True)
        return _rows(_execute(q, "products.list"))

    def count(self, company_id: str) -> int:
        q = self.client.table(self.table).select("id", count="exact").eq("company_id", company_id)
        resp = _execute(q, "products.count")
        count = getattr(resp, "count", None)
        if count is None:
            return len(_rows(resp))
        return int(count)

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        created = _first(_execute(self.client.table(self.table).insert(row), "products.insert"))
        if created is None:
            raise StoreError("products.insert returned no row")
        return created

    def update(self, company_id: str, product_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        q = (
            self.client.table(self.table)
            .update(fields)
            .eq("company_id", company_id)
            .eq("id", product_id)
        )
        return _first(_execute(q, "products.update"))

    def delete(self, company_id: str, product_id: str) -> bool:
        q = self.client.table(self.table).delete().eq("company_id", company_id).eq("id", product_id)
        return bool(_rows(_execute(q, "products.delete")))


# ============================================================
# Quotations / Invoices
# ============================================================
@dataclass(frozen=True)
class DocKind:
    name: str
    table: str
    items_table: str
    parent_key: str
    number_field: str
    prefix: str


DOC_KINDS: Dict[str, DocKind] = {
    "quotation": DocKind(
        name="quotation",
        table="quotations",
        items_table="quotation_items",
        parent_key="quotation_id",
        number_field="quotation_number",
        prefix="QT",
    ),
    "invoice": DocKind(
        name="invoice",
        table="invoices",
        items_table="invoice_items",
        parent_key="invoice_id",
        number_field="invoice_number",
        prefix="IV",
    ),
}


class DocumentStore:
    def __init__(self, client: Any) -> None:
        self.client = client

    def get_company(self, company_id: str) -> Optional[Dict[str, Any]]:
        q = self.client.table("companies").select("*").eq("id", company_id).limit(1)
        return _first(_execute(q, "companies.get"))

    def count_with_prefix(self, kind: DocKind, company_id: str, number_prefix: str) -> int:
        q = (
            self.client.table(kind.table)
            .select("id", count="exact")
            .eq("company_id", company_id)
            .ilike(kind.number_field, f"{number_prefix}%")
        )
        resp = _execute(q, f"{kind.table}.count")
        count = getattr(resp, "count", None)
        if count is None:
            return len(_rows(resp))
        return int(count)

    def insert_document(self, kind: DocKind, row: Dict[str, Any]) -> Dict[str, Any]:
        created = _first(_execute(self.client.table(kind.table).insert(row), f"{kind.table}.insert"))
        if created is None:
            raise StoreError(f"{kind.table}.insert returned no row")
        return created

    def update_document(self, kind: DocKind, company_id: str, doc_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        q = (
            self.client.table(kind.table)
            .update(fields)
            .eq("company_id", company_id)
            .eq("id", doc_id)
        )
        return _first(_execute(q, f"{kind.table}.update"))

    def replace_items(self, kind: DocKind, doc_id: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # ลบของเดิมทั้งหมดแล้ว insert ใหม่ (item_order เริ่มที่ 1 เสมอ)
        _execute(
            self.client.table(kind.items_table).delete().eq(kind.parent_key, doc_id),
            f"{kind.items_table}.delete",
        )
        if not rows:
            return []
        return _rows(_execute(self.client.table(kind.items_table).insert(rows), f"{kind.items_table}.insert"))

    def get_document(self, kind: DocKind, company_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        q = (
            self.client.table(kind.table)
            .select("*")
            .eq("company_id", company_id)
            .eq("id", doc_id)
            .limit(1)
        )
        return _first(_execute(q, f"{kind.table}.get"))

    def list_items(self, kind: DocKind, doc_id: str) -> List[Dict[str, Any]]:
        q = (
            self.client.table(kind.items_table)
            .select("*")
            .eq(kind.parent_key, doc_id)
            .order("item_order")
        )
        return _rows(_execute(q, f"{kind.items_table}.list"))

    def list_documents(self, kind: DocKind, company_id: str) -> List[Dict[str, Any]]:
        q = (
            self.client.table(kind.table)
            .select("*")
            .eq("company_id", company_id)
            .order("created_at", desc=True)
        )
        return _rows(_execute(q, f"{kind.table}.list"))

    def delete_document(self, kind: DocKind, company_id: str, doc_id: str) -> bool:
        q = (
            self.client.table(kind.table)
            .delete()
            .eq("company_id", company_id)
            .eq("id", doc_id)
        )
        return bool(_rows(_execute(q, f"{kind.table}.delete")))


# ============================================================
# Usage / subscription (RPCs)
# ============================================================
class UsageStore:
    def __init__(self, client: Any) -> None:
        self.client = client

    def check_ai_extraction_limit(self, company_id: str) -> Optional[Dict[str, Any]]:
        resp = _execute(
            self.client.rpc("check_ai_extraction_limit", {"p_company_id": company_id}),
            "rpc.check_ai_extraction_limit",
        )
        return _first(resp)

    def log_ai_api_call(self, params: Dict[str, Any]) -> Any:
        resp = _execute(self.client.rpc("log_ai_api_call", params), "rpc.log_ai_api_call")
        return getattr(resp, "data", None)

    def get_subscription(self, company_id: str) -> Optional[Dict[str, Any]]:
        q = (
            self.client.table("subscriptions")
            .select("*, plan:plans(*)")
            .eq("company_id", company_id)
            .limit(1)
        )
        return _first(_execute(q, "subscriptions.get"))

    def get_current_usage(self, company_id: str) -> Optional[Dict[str, Any]]:
        resp = _execute(
            self.client.rpc("get_current_usage", {"p_company_id": company_id}),
            "rpc.get_current_usage",
        )
        return _first(resp)

    def increment_usage(self, company_id: str, doc_type: str) -> None:
        _execute(
            self.client.rpc("increment_usage", {"p_company_id": company_id, "p_type": doc_type}),
            "rpc.increment_usage",
        )


__all__ = [
    "StoreError",
    "utc_now_iso",
    "get_supabase_client",
    "CustomerStore",
    "DocKind",
    "DOC_KINDS",
    "DocumentStore",
    "UsageStore",
]
