from __future__ import annotations

import copy
import itertools
from typing import Any, Dict, List, Optional

import pytest

from autobill.config import Settings
from autobill.services.customer_service import CustomerService
from autobill.services.document_service import DocumentService
from autobill.services.product_service import ProductService
from autobill.services.supabase_store import DocKind, StoreError
from autobill.services.usage_service import UsageService


# ============================================================
# In-memory stores (same methods as services/supabase_store.py)
# ============================================================
class FakeCustomerStore:
    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self.updates: List[Dict[str, Any]] = []
        self.fail = False
        self._ids = itertools.count(1)

    def _check(self) -> None:
        if self.fail:
            raise StoreError("customers down")

    def add(self, **fields: Any) -> Dict[str, Any]:
        row = {
            "id": f"cus-{next(self._ids)}",
            "company_id": "co-1",
            "customer_type": "company",
            "tax_id": None,
            "branch_code": "00000",
            "address": None,
            "contact_name": None,
            "phone": None,
            "email": None,
            "is_active": True,
        }
        row.update(fields)
        self.rows.append(row)
        return row

    def _find(self, company_id: str, **match: Any) -> Optional[Dict[str, Any]]:
        self._check()
        for r in self.rows:
            if r["company_id"] == company_id and r["is_active"] and all(r.get(k) == v for k, v in match.items()):
                return copy.deepcopy(r)
        return None

    def find_active_by_tax_branch(self, company_id, tax_id, branch_code):
        return self._find(company_id, tax_id=tax_id, branch_code=branch_code)

    def find_active_by_name_branch(self, company_id, name, branch_code):
        return self._find(company_id, name=name, branch_code=branch_code)

    def list_active(self, company_id):
        self._check()
        rows = [copy.deepcopy(r) for r in self.rows if r["company_id"] == company_id and r["is_active"]]
        return sorted(rows, key=lambda r: r["name"])

    def insert(self, row):
        self._check()
        return copy.deepcopy(self.add(**row))

    def update(self, company_id, customer_id, fields):
        self._check()
        for r in self.rows:
            if r["company_id"] == company_id and r["id"] == customer_id:
                r.update(fields)
                self.updates.append({"id": customer_id, **fields})
                return copy.deepcopy(r)
        return None


class FakeProductStore:
    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)

    def list_for_company(self, company_id, active_only=False):
        rows = [
            copy.deepcopy(r)
            for r in reversed(self.rows)
            if r["company_id"] == company_id and (r["is_active"] or not active_only)
        ]
        return rows

    def count(self, company_id):
        return sum(1 for r in self.rows if r["company_id"] == company_id)

    def insert(self, row):
        doc = dict(row)
        doc["id"] = f"prd-{next(self._ids)}"
        self.rows.append(doc)
        return copy.deepcopy(doc)

    def update(self, company_id, product_id, fields):
        for r in self.rows:
            if r["company_id"] == company_id and r["id"] == product_id:
                r.update(fields)
                return copy.deepcopy(r)
        return None

    def delete(self, company_id, product_id):
        before = len(self.rows)
        self.rows = [r for r in self.rows if not (r["company_id"] == company_id and r["id"] == product_id)]
        return len(self.rows) < before


class FakeDocumentStore:
    def __init__(self) -> None:
        self.companies: Dict[str, Dict[str, Any]] = {}
        self.docs: Dict[str, List[Dict[str, Any]]] = {"quotations": [], "invoices": []}
        self.items: Dict[str, List[Dict[str, Any]]] = {"quotation_items": [], "invoice_items": []}
        self._ids = itertools.count(1)

    def get_company(self, company_id):
        return copy.deepcopy(self.companies.get(company_id))

    def count_with_prefix(self, kind: DocKind, company_id, number_prefix):
        return sum(
            1
            for d in self.docs[kind.table]
            if d["company_id"] == company_id and str(d.get(kind.number_field, "")).lower().startswith(number_prefix.lower())
        )

    def insert_document(self, kind: DocKind, row):
        doc = dict(row)
        doc["id"] = f"{kind.prefix.lower()}-{next(self._ids)}"
        self.docs[kind.table].append(doc)
        return copy.deepcopy(doc)

    def update_document(self, kind: DocKind, company_id, doc_id, fields):
        for d in self.docs[kind.table]:
            if d["company_id"] == company_id and d["id"] == doc_id:
                d.update(fields)
                return copy.deepcopy(d)
        return None

    def replace_items(self, kind: DocKind, doc_id, rows):
        table = self.items[kind.items_table]
        table[:] = [r for r in table if r[kind.parent_key] != doc_id]
        table.extend(copy.deepcopy(rows))
        return copy.deepcopy(rows)

    def get_document(self, kind: DocKind, company_id, doc_id):
        for d in self.docs[kind.table]:
            if d["company_id"] == company_id and d["id"] == doc_id:
                return copy.deepcopy(d)
        return None

    def list_items(self, kind: DocKind, doc_id):
        rows = [copy.deepcopy(r) for r in self.items[kind.items_table] if r[kind.parent_key] == doc_id]
        return sorted(rows, key=lambda r: r["item_order"])

    def list_documents(self, kind: DocKind, company_id):
        return [copy.deepcopy(d) for d in reversed(self.docs[kind.table]) if d["company_id"] == company_id]

    def delete_document(self, kind: DocKind, company_id, doc_id):
        before = len(self.docs[kind.table])
        self.docs[kind.table] = [
            d for d in self.docs[kind.table] if not (d["company_id"] == company_id and d["id"] == doc_id)
        ]
        return len(self.docs[kind.table]) < before


class FakeUsageStore:
    def __init__(self) -> None:
        self.ai_limit: Optional[Dict[str, Any]] = {
            "current_count": 3,
            "limit_count": 50,
            "can_extract": True,
            "remaining": 47,
        }
        self.ai_limit_fails = False
        self.log_fails = False
        self.logs: List[Dict[str, Any]] = []
        self.subscription: Optional[Dict[str, Any]] = {
            "status": "active",
            "trial_ends_at": None,
            "plan": {"invoice_limit": 10, "quotation_limit": 10},
        }
        self.usage: Optional[Dict[str, Any]] = None
        self.increments: List[str] = []

    def check_ai_extraction_limit(self, company_id):
        if self.ai_limit_fails:
            raise StoreError("rpc down")
        return copy.deepcopy(self.ai_limit)

    def log_ai_api_call(self, params):
        if self.log_fails:
            raise StoreError("rpc down")
        self.logs.append(dict(params))
        return f"log-{len(self.logs)}"

    def get_subscription(self, company_id):
        return copy.deepcopy(self.subscription)

    def get_current_usage(self, company_id):
        return copy.deepcopy(self.usage)

    def increment_usage(self, company_id, doc_type):
        self.increments.append(doc_type)


# ============================================================
# Fixtures
# ============================================================
@pytest.fixture
def settings() -> Settings:
    return Settings(ai_api_key="test-key", max_image_side=64)


@pytest.fixture
def customer_store() -> FakeCustomerStore:
    return FakeCustomerStore()


@pytest.fixture
def customer_service(customer_store) -> CustomerService:
    return CustomerService(customer_store)


@pytest.fixture
def product_store() -> FakeProductStore:
    return FakeProductStore()


@pytest.fixture
def product_service(product_store) -> ProductService:
    return ProductService(product_store)


@pytest.fixture
def usage_store() -> FakeUsageStore:
    return FakeUsageStore()


@pytest.fixture
def usage_service(usage_store) -> UsageService:
    return UsageService(usage_store)


@pytest.fixture
def document_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def document_service(document_store, customer_service, usage_service, settings) -> DocumentService:
    return DocumentService(document_store, customer_service, usage_service, settings=settings)
