# backend/autobill/services/usage_service.py
"""
Usage / quota service

AI extraction:
- check_ai_extraction_limit() before every call (RPC check_ai_extraction_limit)
  -> RPC error or empty row = DENY (fail-closed)
- every call logged via RPC log_ai_api_call (success / error / limit_exceeded)
  -> logging failure never breaks the extraction itself

Documents (plan gating):
- only "trial" / "active" subscriptions may create
- trial past trial_ends_at may not
- limit None = unlimited (PRO)
- increment_usage RPC after a document is created
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .ai_service import AIExtractionError, ExtractionResult
from .supabase_store import StoreError, UsageStore

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
STATUS_LIMIT_EXCEEDED = "limit_exceeded"

CREATABLE_STATUSES = {"trial", "active"}

MSG_AI_LIMIT = "คุณใช้งาน AI ครบตามโควต้าแล้ว กรุณาอัปเกรดแพ็กเกจ"
MSG_DOCUMENT_LIMIT = {
    "quotation": "คุณสร้างใบเสนอราคาครบตามโควต้าแล้ว กรุณาอัปเกรดแพ็กเกจ",
    "invoice": "คุณสร้างใบกำกับภาษีครบตามโควต้าแล้ว กรุณาอัปเกรดแพ็กเกจ",
}


# ============================================================
# Types / errors
# ============================================================
@dataclass
class AIUsageLimit:
    current_count: int = 0
    limit_count: Optional[int] = 0
    can_extract: bool = False
    remaining: int = 0

    @classmethod
    def denied(cls) -> "AIUsageLimit":
        return cls(current_count=0, limit_count=0, can_extract=False, remaining=0)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AIQuotaExceededError(Exception):
    def __init__(self, limit: AIUsageLimit) -> None:
        super().__init__(MSG_AI_LIMIT)
        self.limit = limit


class DocumentLimitError(Exception):
    def __init__(self, kind: str) -> None:
        super().__init__(MSG_DOCUMENT_LIMIT.get(kind, MSG_DOCUMENT_LIMIT["invoice"]))
        self.kind = kind


# ============================================================
# Subscription rules (pure)
# ============================================================
def _parse_ts(v: Any) -> Optional[datetime]:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        dt = v
    else:
        s = str(v).strip().replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            logger.warning("Bad timestamp: %s", v)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _now(now: Optional[datetime]) -> datetime:
    return _parse_ts(now) or datetime.now(timezone.utc)


def trial_days_remaining(subscription: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> int:
    ends = _parse_ts((subscription or {}).get("trial_ends_at"))
    if ends is None:
        return 0
    days = math.ceil((ends - _now(now)).total_seconds() / 86400)
    return max(0, days)


def is_trial_expired(subscription: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> bool:
    sub = subscription or {}
    if sub.get("status") != "trial":
        return False
    ends = _parse_ts(sub.get("trial_ends_at"))
    if ends is None:
        return False
    return _now(now) > ends


def usage_from_plan(subscription: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Usage row for a company that has not created anything this period."""
    plan = (subscription or {}).get("plan") or {}
    return {
        "invoice_count": 0,
        "quotation_count": 0,
        "invoice_limit": plan.get("invoice_limit"),
        "quotation_limit": plan.get("quotation_limit"),
        "is_within_limit": True,
    }


def can_create_document(
    subscription: Optional[Dict[str, Any]],
    usage: Optional[Dict[str, Any]],
    kind: str,
    now: Optional[datetime] = None,
) -> bool:
    sub = subscription or {}
    if sub.get("status") not in CREATABLE_STATUSES:
        return False
    if is_trial_expired(sub, now):
        return False

    u = usage or {}
    limit = u.get(f"{kind}_limit")
    if limit is None:
        return True
    count = u.get(f"{kind}_count") or 0
    return int(count) < int(limit)


# ============================================================
# Service
# ============================================================
class UsageService:
    def __init__(self, store: UsageStore) -> None:
        self.store = store

    # -------------------------
    # AI quota
    # -------------------------
    def check_ai_extraction_limit(self, company_id: str) -> AIUsageLimit:
        try:
            row = self.store.check_ai_extraction_limit(company_id)
        except StoreError as e:
            # fail-closed
            logger.error("AI limit check failed for company=%s: %s", company_id, e)
            return AIUsageLimit.denied()

        if not row:
            logger.warning("AI limit check returned no row for company=%s", company_id)
            return AIUsageLimit.denied()

        limit_count = row.get("limit_count")
        return AIUsageLimit(
            current_count=int(row.get("current_count") or 0),
            limit_count=None if limit_count is None else int(limit_count),
            can_extract=bool(row.get("can_extract", True)),
            remaining=int(row.get("remaining") or 0),
        )

    def log_ai_api_call(
        self,
        company_id: str,
        user_id: Optional[str],
        api_type: str,
        request_tokens: int = 0,
        response_tokens: int = 0,
        status: str = STATUS_SUCCESS,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        params = {
            "p_company_id": company_id,
            "p_user_id": user_id,
            "p_api_type": api_type,
            "p_request_tokens": request_tokens or 0,
            "p_response_tokens": response_tokens or 0,
            "p_status": status or STATUS_SUCCESS,
            "p_error_message": error_message or None,
            "p_metadata": metadata or {},
        }
        try:
            log_id = self.store.log_ai_api_call(params)
        except StoreError as e:
            logger.error("Error logging AI API call (%s/%s): %s", api_type, status, e)
            return None
        return None if log_id is None else str(log_id)

    def run_extraction(
        self,
        company_id: str,
        user_id: Optional[str],
        api_type: str,
        call: Callable[[], ExtractionResult],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ExtractionResult:
        """
        quota check -> call() -> log.
        Raises AIQuotaExceededError (429) or re-raises AIExtractionError after logging.
        """
        limit = self.check_ai_extraction_limit(company_id)
        if not limit.can_extract:
            logger.info("AI quota exceeded: company=%s api=%s", company_id, api_type)
            self.log_ai_api_call(
                company_id,
                user_id,
                api_type,
                status=STATUS_LIMIT_EXCEEDED,
                error_message=MSG_AI_LIMIT,
                metadata=metadata,
            )
            raise AIQuotaExceededError(limit)

        try:
            result = call()
        except AIExtractionError as e:
            self.log_ai_api_call(
                company_id,
                user_id,
                api_type,
                request_tokens=e.request_tokens,
                response_tokens=e.response_tokens,
                status=STATUS_ERROR,
                error_message=str(e),
                metadata=metadata,
            )
            raise

        meta = dict(metadata or {})
        meta["model"] = result.model
        self.log_ai_api_call(
            company_id,
            user_id,
            api_type,
            request_tokens=result.request_tokens,
            response_tokens=result.response_tokens,
            status=STATUS_SUCCESS,
            metadata=meta,
        )
        return result

    # -------------------------
    # Documents
    # -------------------------
    def get_document_usage(self, company_id: str) -> Dict[str, Any]:
        subscription = self.store.get_subscription(company_id)
        usage = self.store.get_current_usage(company_id) or usage_from_plan(subscription)
        return {
            "subscription": subscription,
            "usage": usage,
            "trial_days_remaining": trial_days_remaining(subscription),
            "is_trial_expired": is_trial_expired(subscription),
        }

    def can_create_document(self, company_id: str, kind: str, now: Optional[datetime] = None) -> bool:
        subscription = self.store.get_subscription(company_id)
        usage = self.store.get_current_usage(company_id) or usage_from_plan(subscription)
        return can_create_document(subscription, usage, kind, now)

    def ensure_can_create_document(self, company_id: str, kind: str) -> None:
        if not self.can_create_document(company_id, kind):
            raise DocumentLimitError(kind)

    def increment_usage(self, company_id: str, kind: str) -> None:
        try:
            self.store.increment_usage(company_id, kind)
        except StoreError as e:
            # document is already saved
            logger.error("Error incrementing %s usage for company=%s: %s", kind, company_id, e)


__all__ = [
    "AIUsageLimit",
    "AIQuotaExceededError",
    "DocumentLimitError",
    "STATUS_SUCCESS",
    "STATUS_ERROR",
    "STATUS_LIMIT_EXCEEDED",
    "trial_days_remaining",
    "is_trial_expired",
    "usage_from_plan",
    "can_create_document",
    "UsageService",
]
