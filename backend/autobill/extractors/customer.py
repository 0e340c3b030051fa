from __future__ import annotations

import json
import logging
from typing import Any

from ..models.schemas import ExtractedCustomer
from ..utils.text_utils import first_json_object
from ..utils.validators import HEAD_OFFICE_BRANCH, clean_tax_id, sanitize_branch5, validate_tax13

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    "customer_name",
    "customer_address",
    "customer_contact",
    "customer_phone",
    "customer_email",
)


def _text(v: Any) -> str:
    if v is None or v is False:
        return ""
    return str(v).strip()


def validate_customer(data: Any) -> ExtractedCustomer:
    """
    Clean customer fields from the model reply.
    - strings trimmed, missing -> ""
    - tax id keeps digits + hyphens only
    - branch code digits only, padded to 5 (missing -> 00000)
    """
    if not isinstance(data, dict):
        raise ValueError("Invalid response format: expected object")

    fields = {k: _text(data.get(k)) for k in TEXT_FIELDS}

    tax_id = clean_tax_id(data.get("customer_tax_id"))
    if not validate_tax13(tax_id):
        # keep it, user fixes on the form
        logger.warning("Extracted tax id is not 13 digits: %s", tax_id)

    return ExtractedCustomer(
        customer_tax_id=tax_id,
        customer_branch_code=sanitize_branch5(data.get("customer_branch_code"), default=HEAD_OFFICE_BRANCH),
        **fields,
    )


def parse_customer_reply(content: str) -> ExtractedCustomer:
    js = first_json_object(content)
    return validate_customer(json.loads(js))


__all__ = ["validate_customer", "parse_customer_reply"]
