# backend/autobill/services/document_service.py
"""
Quotation / Invoice service

save_*():
1) totals from calculator (never trust totals sent by the client)
2) customer find-or-create (failure is logged, document still saved)
3) create: plan gate -> number QT/IV-YYYYMMDD-NNNN (from issue_date) -> insert -> increment_usage
   update: header update -> items replaced
4) returns the stored header with "items"
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple, get_args

from ..config import Settings, get_settings
from ..models.schemas import DocumentForm, DocumentStatus, InvoiceForm, InvoiceStatus, QuotationForm
from ..utils.thai_text import baht_text, format_currency, format_number, format_thai_date
from ..utils.validators import optional_text
from .calculator import (
    DocumentTotals,
    build_item_rows,
    calculate_totals,
    calculate_withholding,
    default_due_date,
    default_valid_until,
    document_number_prefix,
    generate_document_number,
)
from .customer_service import CustomerService
from .supabase_store import DOC_KINDS, DocKind, DocumentStore, StoreError, utc_now_iso
from .usage_service import UsageService

logger = logging.getLogger(__name__)

STATUSES: Dict[str, Tuple[str, ...]] = {
    "quotation": get_args(DocumentStatus),
    "invoice": get_args(InvoiceStatus),
}


class DocumentNotFoundError(LookupError):
    pass


def get_kind(name: str) -> DocKind:
    try:
        return DOC_KINDS[name]
    except KeyError:
        raise ValueError(f"unknown document kind: {name}") from None


def _to_decimal(v: Any, default: Decimal) -> Decimal:
    if v is None or v == "":
        return default
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError):
        return default


def _to_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _thai_date_or_dash(v: Any) -> str:
    return format_thai_date(v) if v else "-"


def document_display(kind_name: str, doc: Dict[str, Any]) -> Dict[str, Any]:
    """Printable strings for the preview page (Thai dates, baht text, grouped numbers)."""
    kind = get_kind(kind_name)
    total = doc.get("total_amount") or 0
    out: Dict[str, Any] = {
        "issue_date": _thai_date_or_dash(doc.get("issue_date")),
        "subtotal": format_currency(doc.get("subtotal") or 0),
        "discount_amount": format_currency(doc.get("discount_amount") or 0),
        "amount_before_vat": format_currency(doc.get("amount_before_vat") or 0),
        "vat_amount": format_currency(doc.get("vat_amount") or 0),
        "total_amount": format_currency(total),
        "total_text": baht_text(total),
        "items": [
            {
                "item_order": it.get("item_order"),
                "quantity": format_number(it.get("quantity") or 0),
                "unit_price": format_currency(it.get("unit_price") or 0),
                "amount": format_currency(it.get("amount") or 0),
            }
            for it in doc.get("items") or []
        ],
    }
    if kind.name == "quotation":
        out["valid_until"] = _thai_date_or_dash(doc.get("valid_until"))
    else:
        out["due_date"] = _thai_date_or_dash(doc.get("due_date"))
        out["net_amount"] = format_currency(doc.get("net_amount") or 0)
    return out


class DocumentService:
    def __init__(
        self,
        store: DocumentStore,
        customers: CustomerService,
        usage: UsageService,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.customers = customers
        self.usage = usage
        self.settings = settings or get_settings()

    # ============================================================
    # Helpers
    # ============================================================
    def _company_defaults(self, company_id: str) -> Tuple[Decimal, int]:
        """(vat_rate, validity_days) from company settings, env defaults otherwise."""
        company = self.store.get_company(company_id) or {}
        vat_rate = _to_decimal(company.get("default_vat_rate"), self.settings.default_vat_rate)
        validity = _to_int(company.get("default_validity_days"), self.settings.default_validity_days)
        return vat_rate, validity

    def _resolve_customer(self, company_id: str, form: DocumentForm) -> Optional[str]:
        try:
            customer = self.customers.find_or_create(company_id, form.customer_data())
        except StoreError as e:
            logger.warning("Customer resolve failed (document still saved): %s", e)
            return None
        return customer.get("id") if customer else None

    def _common_header(
        self,
        form: DocumentForm,
        issue_date: date,
        vat_rate: Decimal,
        totals: DocumentTotals,
        customer_id: Optional[str],
        status: str,
    ) -> Dict[str, Any]:
        header: Dict[str, Any] = {
            "customer_name": form.customer_name.strip(),
            "customer_address": optional_text(form.customer_address),
            "customer_tax_id": optional_text(form.customer_tax_id),
            "customer_branch_code": form.customer_branch_code,
            "customer_contact": optional_text(form.customer_contact),
            "customer_phone": optional_text(form.customer_phone),
            "customer_email": optional_text(form.customer_email),
            "issue_date": issue_date.isoformat(),
            "discount_type": form.discount_type,
            "discount_value": float(form.discount_value),
            "vat_rate": float(vat_rate),
            "notes": optional_text(form.notes),
            "terms_conditions": optional_text(form.terms_conditions),
            "sales_channel": optional_text(form.sales_channel),
            "status": status,
        }
        header.update(totals.as_dict())
        # after_discount is derived, not a column
        header.pop("after_discount", None)
        if customer_id:
            header["customer_id"] = customer_id
        return header

    def _save(
        self,
        kind: DocKind,
        company_id: str,
        header: Dict[str, Any],
        form: DocumentForm,
        issue_date: date,
        doc_id: Optional[str],
        user_id: Optional[str],
    ) -> Dict[str, Any]:
        if doc_id:
            if self.store.get_document(kind, company_id, doc_id) is None:
                raise DocumentNotFoundError(doc_id)
            header["updated_at"] = utc_now_iso()
            saved = self.store.update_document(kind, company_id, doc_id, header)
            if saved is None:
                raise DocumentNotFoundError(doc_id)
            logger.info("%s updated: company=%s id=%s", kind.name, company_id, doc_id)
        else:
            self.usage.ensure_can_create_document(company_id, kind.name)

            prefix = document_number_prefix(kind.prefix, issue_date)
            count = self.store.count_with_prefix(kind, company_id, prefix)
            header[kind.number_field] = generate_document_number(kind.prefix, issue_date, count)
            header["company_id"] = company_id
            if user_id:
                header["created_by"] = user_id

            saved = self.store.insert_document(kind, header)
            logger.info("%s created: company=%s number=%s", kind.name, company_id, header[kind.number_field])
            self.usage.increment_usage(company_id, kind.name)

        rows = build_item_rows(form.items, kind.parent_key, saved["id"])
        saved["items"] = self.store.replace_items(kind, saved["id"], rows)
        return saved

    # ============================================================
    # Save
    # ============================================================
    def save_quotation(
        self,
        company_id: str,
        form: QuotationForm,
        status: Optional[str] = None,
        quotation_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        default_vat, validity_days = self._company_defaults(company_id)
        issue_date = form.issue_date or date.today()
        vat_rate = form.vat_rate if form.vat_rate is not None else default_vat

        totals = calculate_totals(form.items, form.discount_type, form.discount_value, vat_rate)
        customer_id = self._resolve_customer(company_id, form)

        header = self._common_header(form, issue_date, vat_rate, totals, customer_id, status or form.status)
        valid_until = form.valid_until or default_valid_until(issue_date, validity_days)
        header["valid_until"] = valid_until.isoformat()

        return self._save(get_kind("quotation"), company_id, header, form, issue_date, quotation_id, user_id)

    def save_invoice(
        self,
        company_id: str,
        form: InvoiceForm,
        status: Optional[str] = None,
        invoice_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        default_vat, _ = self._company_defaults(company_id)
        issue_date = form.issue_date or date.today()
        vat_rate = form.vat_rate if form.vat_rate is not None else default_vat

        totals = calculate_totals(form.items, form.discount_type, form.discount_value, vat_rate)
        wht = calculate_withholding(totals, form.withholding_tax_rate, form.paid_amount)
        customer_id = self._resolve_customer(company_id, form)

        header = self._common_header(form, issue_date, vat_rate, totals, customer_id, status or form.status)
        header.update(wht.as_dict())
        header["invoice_type"] = form.invoice_type
        header["due_date"] = (form.due_date or default_due_date(issue_date)).isoformat()
        header["po_number"] = optional_text(form.po_number)

        return self._save(get_kind("invoice"), company_id, header, form, issue_date, invoice_id, user_id)

    # ============================================================
    # Read / delete
    # ============================================================
    def get_document(self, kind_name: str, company_id: str, doc_id: str) -> Dict[str, Any]:
        kind = get_kind(kind_name)
        doc = self.store.get_document(kind, company_id, doc_id)
        if doc is None:
            raise DocumentNotFoundError(doc_id)
        doc["items"] = self.store.list_items(kind, doc_id)
        return doc

    def list_documents(self, kind_name: str, company_id: str) -> List[Dict[str, Any]]:
        return self.store.list_documents(get_kind(kind_name), company_id)

    def update_status(self, kind_name: str, company_id: str, doc_id: str, status: str) -> Dict[str, Any]:
        """Status-only change (sent / approved / paid ...); totals and items untouched."""
        kind = get_kind(kind_name)
        if status not in STATUSES[kind.name]:
            raise ValueError(f"invalid {kind.name} status: {status}")
        saved = self.store.update_document(
            kind,
            company_id,
            doc_id,
            {"status": status, "updated_at": utc_now_iso()},
        )
        if saved is None:
            raise DocumentNotFoundError(doc_id)
        logger.info("%s status -> %s: company=%s id=%s", kind.name, status, company_id, doc_id)
        return saved

    def delete_document(self, kind_name: str, company_id: str, doc_id: str) -> None:
        kind = get_kind(kind_name)
        if not self.store.delete_document(kind, company_id, doc_id):
            raise DocumentNotFoundError(doc_id)
        logger.info("%s deleted: company=%s id=%s", kind.name, company_id, doc_id)


__all__ = ["DocumentService", "DocumentNotFoundError", "STATUSES", "document_display", "get_kind"]
