from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..utils.validators import HEAD_OFFICE_BRANCH, clean_tax_id, sanitize_branch5

DiscountType = Literal["fixed", "percent"]
CustomerType = Literal["individual", "company"]
ProductType = Literal["product", "service"]

DocumentStatus = Literal["draft", "sent", "pending", "approved", "rejected", "expired", "converted"]
InvoiceStatus = Literal["draft", "issued", "sent", "partial", "paid", "overdue", "cancelled", "refunded"]
InvoiceType = Literal[
    "full_tax_invoice",
    "abbreviated_tax_invoice",
    "receipt_tax_invoice",
    "credit_note",
    "debit_note",
]

DEFAULT_UNIT = "ชิ้น"


def _strip(v: object) -> object:
    return v.strip() if isinstance(v, str) else v


class LineItem(BaseModel):
    description: str = Field("", description="รายการ")
    quantity: Decimal = Field(Decimal("1"), ge=0, description="จำนวน")
    unit: str = Field(DEFAULT_UNIT, description="หน่วย")
    unit_price: Decimal = Field(Decimal("0"), ge=0, description="ราคาต่อหน่วย")
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100, description="ส่วนลดรายการ (%)")
    price_includes_vat: bool = Field(False, description="ราคารวม VAT แล้ว")


class CalculateRequest(BaseModel):
    items: List[LineItem] = Field(default_factory=list)
    discount_type: DiscountType = "fixed"
    discount_value: Decimal = Decimal("0")
    vat_rate: Decimal = Field(Decimal("7"), ge=0, le=100)
    withholding_tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    paid_amount: Decimal = Field(Decimal("0"), ge=0)


class AmountInWordsRequest(BaseModel):
    amount: Decimal


class ExtractedItem(BaseModel):
    description: str
    quantity: float = 1
    unit: str = DEFAULT_UNIT
    unit_price: float = 0


class ExtractedCustomer(BaseModel):
    customer_name: str = ""
    customer_address: str = ""
    customer_tax_id: str = ""
    customer_branch_code: str = HEAD_OFFICE_BRANCH
    customer_contact: str = ""
    customer_phone: str = ""
    customer_email: str = ""

    def has_identity(self) -> bool:
        return bool(self.customer_name or self.customer_address or self.customer_tax_id)


class CustomerData(BaseModel):
    """Customer fields as entered on a form or extracted by AI."""

    customer_type: CustomerType = "company"
    name: str = ""
    tax_id: Optional[str] = None
    branch_code: Optional[str] = None
    address: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name", "address", "contact_name", "phone", "email", mode="before")
    @classmethod
    def _trim(cls, v: object) -> object:
        return _strip(v)

    @field_validator("tax_id", mode="before")
    @classmethod
    def _tax_id(cls, v: object) -> object:
        if v is None:
            return None
        return clean_tax_id(v)

    @field_validator("branch_code", mode="before")
    @classmethod
    def _branch(cls, v: object) -> object:
        if v is None or not str(v).strip():
            return None
        return sanitize_branch5(v)

    @property
    def branch_or_head_office(self) -> str:
        return self.branch_code or HEAD_OFFICE_BRANCH

    @classmethod
    def from_extracted(cls, c: ExtractedCustomer) -> "CustomerData":
        return cls(
            name=c.customer_name,
            tax_id=c.customer_tax_id,
            branch_code=c.customer_branch_code,
            address=c.customer_address,
            contact_name=c.customer_contact,
            phone=c.customer_phone,
            email=c.customer_email,
        )


class CustomerUpdate(BaseModel):
    customer_type: Optional[CustomerType] = None
    name: Optional[str] = None
    tax_id: Optional[str] = None
    branch_code: Optional[str] = None
    address: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name", "address", "contact_name", "phone", "email", mode="before")
    @classmethod
    def _trim(cls, v: object) -> object:
        return _strip(v)

    @field_validator("tax_id", mode="before")
    @classmethod
    def _tax_id(cls, v: object) -> object:
        if v is None:
            return None
        return clean_tax_id(v) or None

    @field_validator("branch_code", mode="before")
    @classmethod
    def _branch(cls, v: object) -> object:
        if v is None:
            return None
        return sanitize_branch5(v)


class ProductData(BaseModel):
    """สินค้า / บริการ ในแคตตาล็อกของบริษัท"""

    product_code: Optional[str] = None
    name: str = ""
    name_en: Optional[str] = None
    description: Optional[str] = None
    product_type: ProductType = "product"
    category: Optional[str] = None
    unit: str = Field(DEFAULT_UNIT, description="หน่วย")
    unit_price: Decimal = Field(Decimal("0"), ge=0, description="ราคาต่อหน่วย")
    cost_price: Optional[Decimal] = Field(None, ge=0)
    is_vat_inclusive: bool = Field(False, description="ราคารวม VAT แล้ว")
    vat_rate: Decimal = Field(Decimal("7"), ge=0, le=100)
    is_active: bool = True

    @field_validator("product_code", "name", "name_en", "description", "category", "unit", mode="before")
    @classmethod
    def _trim(cls, v: object) -> object:
        return _strip(v)

    @field_validator("unit", mode="after")
    @classmethod
    def _unit(cls, v: str) -> str:
        return v or DEFAULT_UNIT


class ProductUpdate(BaseModel):
    product_code: Optional[str] = None
    name: Optional[str] = None
    name_en: Optional[str] = None
    description: Optional[str] = None
    product_type: Optional[ProductType] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    unit_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Optional[Decimal] = Field(None, ge=0)
    is_vat_inclusive: Optional[bool] = None
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None

    @field_validator("product_code", "name", "name_en", "description", "category", "unit", mode="before")
    @classmethod
    def _trim(cls, v: object) -> object:
        return _strip(v)


class QuotationStatusUpdate(BaseModel):
    status: DocumentStatus


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class ExtractTextRequest(BaseModel):
    # type checked in the route (must be str)
    text: Any = None


class DocumentForm(BaseModel):
    # ข้อมูลบังคับตามกฎหมาย (มาตรา 86/4)
    customer_name: str = ""
    customer_address: str = ""
    customer_tax_id: str = ""
    customer_branch_code: str = HEAD_OFFICE_BRANCH
    issue_date: Optional[date] = None
    items: List[LineItem] = Field(default_factory=list)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)

    # ข้อมูลเพิ่มเติม
    customer_contact: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    discount_type: DiscountType = "fixed"
    discount_value: Decimal = Decimal("0")
    notes: str = ""
    terms_conditions: str = ""
    sales_channel: str = ""

    @field_validator("customer_branch_code", mode="before")
    @classmethod
    def _branch(cls, v: object) -> object:
        return sanitize_branch5(v)

    @field_validator("customer_tax_id", mode="before")
    @classmethod
    def _tax_id(cls, v: object) -> object:
        return clean_tax_id(v)

    def customer_data(self) -> CustomerData:
        return CustomerData(
            name=self.customer_name,
            tax_id=self.customer_tax_id,
            branch_code=self.customer_branch_code,
            address=self.customer_address,
            contact_name=self.customer_contact,
            phone=self.customer_phone,
            email=self.customer_email,
        )


class QuotationForm(DocumentForm):
    valid_until: Optional[date] = None
    status: DocumentStatus = "draft"


class InvoiceForm(DocumentForm):
    invoice_type: InvoiceType = "full_tax_invoice"
    due_date: Optional[date] = None
    po_number: str = ""
    withholding_tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    paid_amount: Decimal = Field(Decimal("0"), ge=0)
    status: InvoiceStatus = "draft"
