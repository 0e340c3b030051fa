from __future__ import annotations

import io
import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

# ============================================================
# ✅ Logging defaults (safe)
# ============================================================
def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

settings = get_settings()
_setup_logging(settings.log_level)

# ============================================================
# App imports (after ENV)
# ============================================================
from .models.schemas import (
    AmountInWordsRequest,
    CalculateRequest,
    CustomerData,
    CustomerUpdate,
    ExtractTextRequest,
    InvoiceForm,
    InvoiceStatusUpdate,
    ProductData,
    ProductUpdate,
    QuotationForm,
    QuotationStatusUpdate,
)
from .services import ai_service
from .services.ai_service import AIExtractionError, InvalidImageError, SUPPORTED_IMAGE_TYPES
from .services.calculator import calculate_totals, calculate_withholding
from .services.customer_service import CustomerService
from .services.document_service import DocumentNotFoundError, DocumentService, document_display
from .services.product_service import ProductService
from .services.supabase_store import (
    CustomerStore,
    DocumentStore,
    ProductStore,
    UsageStore,
    get_supabase_client,
)
from .services.usage_service import AIQuotaExceededError, DocumentLimitError, UsageService
from .utils.thai_text import baht_text, format_currency, thai_number_text

# ============================================================
# FastAPI app
# ============================================================
app = FastAPI(title=f"{settings.app_title} API")

# ============================================================
# CORS (configurable)
# ============================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MIN_TEXT_LENGTH = 5

MSG_TEXT_REQUIRED = "กรุณาระบุข้อความ"
MSG_TEXT_TOO_SHORT = "ข้อความสั้นเกินไป กรุณาระบุรายละเอียดเพิ่มเติม"
MSG_IMAGE_REQUIRED = "กรุณาอัปโหลดรูปภาพ"
MSG_IMAGE_TYPE = "รองรับเฉพาะไฟล์ JPEG, PNG, GIF, WEBP"
MSG_IMAGE_INVALID = "ไม่สามารถอ่านไฟล์รูปภาพได้"
MSG_NO_ITEMS_TEXT = "ไม่พบรายการสินค้าหรือบริการในข้อความ"
MSG_NO_ITEMS_IMAGE = "ไม่พบรายการสินค้าหรือบริการในรูปภาพ"
MSG_NO_CUSTOMER_TEXT = "ไม่พบข้อมูลลูกค้าในข้อความ"
MSG_NO_CUSTOMER_IMAGE = "ไม่พบข้อมูลลูกค้าในรูปภาพ"
MSG_UNAUTHORIZED = "กรุณาเข้าสู่ระบบ"
MSG_CUSTOMER_NAME_REQUIRED = "กรุณาระบุชื่อลูกค้า"
MSG_CUSTOMER_NOT_FOUND = "ไม่พบข้อมูลลูกค้า"
MSG_PRODUCT_NAME_REQUIRED = "กรุณาระบุชื่อสินค้า"
MSG_PRODUCT_NOT_FOUND = "ไม่พบข้อมูลสินค้า"
MSG_DOCUMENT_NOT_FOUND = "ไม่พบเอกสาร"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _image_too_large_msg(s: Settings) -> str:
    return f"ไฟล์ต้องมีขนาดไม่เกิน {s.max_image_mb:g}MB"


# ============================================================
# ✅ Error handlers (nice JSON)
# ============================================================
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(AIExtractionError)
async def ai_extraction_error_handler(request: Request, exc: AIExtractionError):
    logger.error("AI extraction failed: %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})

@app.exception_handler(AIQuotaExceededError)
async def ai_quota_error_handler(request: Request, exc: AIQuotaExceededError):
    return JSONResponse(
        status_code=429,
        content={"ok": False, "error": str(exc), "usage": exc.limit.as_dict()},
    )

@app.exception_handler(DocumentLimitError)
async def document_limit_error_handler(request: Request, exc: DocumentLimitError):
    return JSONResponse(status_code=403, content={"ok": False, "error": str(exc), "kind": exc.kind})

@app.exception_handler(DocumentNotFoundError)
async def document_not_found_handler(request: Request, exc: DocumentNotFoundError):
    return JSONResponse(status_code=404, content={"ok": False, "error": MSG_DOCUMENT_NOT_FOUND})

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    payload: Dict[str, Any] = {
        "ok": False,
        "error": "internal_error",
        "message": str(exc) if settings.debug else "Internal server error",
        "path": str(request.url),
        "method": request.method,
    }
    logger.exception("Unhandled error: %s %s", request.method, request.url)
    return JSONResponse(status_code=500, content=payload)

# ============================================================
# ✅ Dependencies (overridable in tests)
# ============================================================
@dataclass(frozen=True)
class Identity:
    company_id: str
    user_id: Optional[str] = None


def get_identity(
    x_company_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
) -> Identity:
    # set by the upstream auth proxy
    company_id = (x_company_id or "").strip()
    if not company_id:
        raise HTTPException(status_code=401, detail=MSG_UNAUTHORIZED)
    return Identity(company_id=company_id, user_id=(x_user_id or "").strip() or None)


def get_app_settings() -> Settings:
    return settings


def get_customer_service() -> CustomerService:
    return CustomerService(CustomerStore(get_supabase_client()))


def get_usage_service() -> UsageService:
    return UsageService(UsageStore(get_supabase_client()))


def get_product_service() -> ProductService:
    return ProductService(ProductStore(get_supabase_client()))


def get_document_service(
    customers: CustomerService = Depends(get_customer_service),
    usage: UsageService = Depends(get_usage_service),
) -> DocumentService:
    return DocumentService(DocumentStore(get_supabase_client()), customers, usage, settings=settings)

# ============================================================
# ✅ Request guards
# ============================================================
def _require_text(body: ExtractTextRequest) -> str:
    text = body.text
    if not text or not isinstance(text, str):
        raise HTTPException(status_code=400, detail=MSG_TEXT_REQUIRED)
    if len(text.strip()) < MIN_TEXT_LENGTH:
        raise HTTPException(status_code=400, detail=MSG_TEXT_TOO_SHORT)
    return text

# ============================================================
# ✅ Streaming read with max bytes (prevent RAM blow)
# ============================================================
async def _read_uploadfile_safely(f: UploadFile, max_bytes: int, too_large_msg: str) -> bytes:
    buf = io.BytesIO()
    total = 0
    chunk_size = 1024 * 1024

    while True:
        chunk = await f.read(chunk_size)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise HTTPException(status_code=400, detail=too_large_msg)
        buf.write(chunk)

    return buf.getvalue()


async def _require_image(image: Optional[UploadFile], s: Settings) -> Dict[str, Any]:
    if image is None:
        raise HTTPException(status_code=400, detail=MSG_IMAGE_REQUIRED)

    ctype = (image.content_type or "").lower()
    if ctype not in SUPPORTED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail=MSG_IMAGE_TYPE)

    data = await _read_uploadfile_safely(image, s.max_image_bytes, _image_too_large_msg(s))
    if not data:
        raise HTTPException(status_code=400, detail=MSG_IMAGE_REQUIRED)

    try:
        prepared, mime = await run_in_threadpool(
            ai_service.prepare_image, data, ctype, s.max_image_side, s.max_image_pixels
        )
    except InvalidImageError:
        raise HTTPException(status_code=400, detail=MSG_IMAGE_INVALID)

    return {
        "data": prepared,
        "mime_type": mime,
        "meta": {"file_name": image.filename or "", "file_size": len(data), "mime_type": ctype},
    }

# ============================================================
# Routes
# ============================================================
@app.get("/api/health")
def health():
    return {
        "ok": True,
        "time_ms": _now_ms(),
        "ai": {
            "model": settings.ai_model,
            "base_url": settings.ai_base_url,
            "has_api_key": bool(settings.ai_api_key),
        },
        "db": {"configured": bool(settings.supabase_url and settings.supabase_service_key)},
        "cors": {"origins": settings.cors_origins},
        "limits": {
            "max_image_mb": settings.max_image_mb,
            "max_image_side": settings.max_image_side,
            "max_image_pixels": settings.max_image_pixels,
            "ai_text_max": settings.ai_text_max,
        },
    }

@app.get("/api/config")
def config_check():
    return {
        "ok": True,
        "env": {
            "DEBUG": settings.debug,
            "LOG_LEVEL": settings.log_level,
            "CORS_ORIGINS": settings.cors_origins,
            "AI_MODEL": settings.ai_model,
            "AI_BASE_URL": settings.ai_base_url,
            "APP_URL": settings.app_url,
            "DEFAULT_VAT_RATE": float(settings.default_vat_rate),
            "DEFAULT_VALIDITY_DAYS": settings.default_validity_days,
            "OPENROUTER_API_KEY_present": bool(settings.ai_api_key),
            "SUPABASE_URL_present": bool(settings.supabase_url),
            "SUPABASE_SERVICE_KEY_present": bool(settings.supabase_service_key),
        },
    }

# -------------------------
# Calculator / Thai text
# -------------------------
@app.post("/api/documents/calculate")
def calculate_document(body: CalculateRequest):
    totals = calculate_totals(body.items, body.discount_type, body.discount_value, body.vat_rate)
    wht = calculate_withholding(totals, body.withholding_tax_rate, body.paid_amount)
    return {
        "ok": True,
        "totals": totals.as_dict(),
        "withholding": wht.as_dict(),
        "total_text": baht_text(totals.total_amount),
        "total_formatted": format_currency(totals.total_amount),
    }

@app.post("/api/documents/amount-in-words")
def amount_in_words(body: AmountInWordsRequest):
    return {
        "ok": True,
        "amount": float(body.amount),
        "text": baht_text(body.amount),
        "number_text": thai_number_text(body.amount),
        "formatted": format_currency(body.amount),
    }

# -------------------------
# AI extraction
# -------------------------
@app.post("/api/ai/extract-text")
def ai_extract_text(
    body: ExtractTextRequest,
    ident: Identity = Depends(get_identity),
    usage: UsageService = Depends(get_usage_service),
    s: Settings = Depends(get_app_settings),
):
    text = _require_text(body)
    result = usage.run_extraction(
        ident.company_id,
        ident.user_id,
        ai_service.API_EXTRACT_ITEMS,
        lambda: ai_service.extract_items_from_text(text, settings=s),
        metadata={"text_length": len(text)},
    )
    items = result.value
    if not items:
        raise HTTPException(status_code=400, detail=MSG_NO_ITEMS_TEXT)
    return {"items": [it.model_dump() for it in items]}

@app.post("/api/ai/extract-image")
async def ai_extract_image(
    image: Optional[UploadFile] = File(None),
    ident: Identity = Depends(get_identity),
    usage: UsageService = Depends(get_usage_service),
    s: Settings = Depends(get_app_settings),
):
    img = await _require_image(image, s)
    result = await run_in_threadpool(
        usage.run_extraction,
        ident.company_id,
        ident.user_id,
        ai_service.API_EXTRACT_IMAGE,
        lambda: ai_service.extract_items_from_image(img["data"], img["mime_type"], settings=s),
        img["meta"],
    )
    items = result.value
    if not items:
        raise HTTPException(status_code=400, detail=MSG_NO_ITEMS_IMAGE)
    return {"items": [it.model_dump() for it in items]}

@app.post("/api/ai/extract-customer")
async def ai_extract_customer(
    image: Optional[UploadFile] = File(None),
    ident: Identity = Depends(get_identity),
    usage: UsageService = Depends(get_usage_service),
    s: Settings = Depends(get_app_settings),
):
    img = await _require_image(image, s)
    result = await run_in_threadpool(
        usage.run_extraction,
        ident.company_id,
        ident.user_id,
        ai_service.API_EXTRACT_CUSTOMER,
        lambda: ai_service.extract_customer_from_image(img["data"], img["mime_type"], settings=s),
        img["meta"],
    )
    customer = result.value
    if not customer.has_identity():
        raise HTTPException(status_code=400, detail=MSG_NO_CUSTOMER_IMAGE)
    return {"customer": customer.model_dump()}

@app.post("/api/ai/extract-customer-text")
def ai_extract_customer_text(
    body: ExtractTextRequest,
    ident: Identity = Depends(get_identity),
    usage: UsageService = Depends(get_usage_service),
    s: Settings = Depends(get_app_settings),
):
    text = _require_text(body)
    result = usage.run_extraction(
        ident.company_id,
        ident.user_id,
        ai_service.API_EXTRACT_CUSTOMER_TEXT,
        lambda: ai_service.extract_customer_from_text(text, settings=s),
        metadata={"text_length": len(text)},
    )
    customer = result.value
    if not customer.has_identity():
        raise HTTPException(status_code=400, detail=MSG_NO_CUSTOMER_TEXT)
    return {"customer": customer.model_dump()}

@app.get("/api/ai/usage")
def ai_usage(
    ident: Identity = Depends(get_identity),
    usage: UsageService = Depends(get_usage_service),
):
    limit = usage.check_ai_extraction_limit(ident.company_id)
    return {"ok": True, "ai": limit.as_dict(), **usage.get_document_usage(ident.company_id)}

# -------------------------
# Customers
# -------------------------
@app.get("/api/customers")
def list_customers(
    ident: Identity = Depends(get_identity),
    customers: CustomerService = Depends(get_customer_service),
):
    return {"ok": True, "customers": customers.list_customers(ident.company_id)}

@app.post("/api/customers")
def create_customer(
    body: CustomerData,
    ident: Identity = Depends(get_identity),
    customers: CustomerService = Depends(get_customer_service),
):
    if not body.name:
        raise HTTPException(status_code=400, detail=MSG_CUSTOMER_NAME_REQUIRED)
    return {"ok": True, "customer": customers.create_customer(ident.company_id, body)}

@app.put("/api/customers/{customer_id}")
def update_customer(
    customer_id: str,
    body: CustomerUpdate,
    ident: Identity = Depends(get_identity),
    customers: CustomerService = Depends(get_customer_service),
):
    fields = body.model_dump(exclude_unset=True)
    if "name" in fields and not fields["name"]:
        raise HTTPException(status_code=400, detail=MSG_CUSTOMER_NAME_REQUIRED)
    updated = customers.update_customer(ident.company_id, customer_id, fields)
    if updated is None:
        raise HTTPException(status_code=404, detail=MSG_CUSTOMER_NOT_FOUND)
    return {"ok": True, "customer": updated}

@app.delete("/api/customers/{customer_id}")
def delete_customer(
    customer_id: str,
    ident: Identity = Depends(get_identity),
    customers: CustomerService = Depends(get_customer_service),
):
    if not customers.delete_customer(ident.company_id, customer_id):
        raise HTTPException(status_code=404, detail=MSG_CUSTOMER_NOT_FOUND)
    return {"ok": True}

@app.post("/api/customers/resolve")
def resolve_customer(
    body: CustomerData,
    ident: Identity = Depends(get_identity),
    customers: CustomerService = Depends(get_customer_service),
):
    return {"ok": True, "customer": customers.find_or_create(ident.company_id, body)}

# -------------------------
# Products
# -------------------------
@app.get("/api/products")
def list_products(
    active_only: bool = False,
    ident: Identity = Depends(get_identity),
    products: ProductService = Depends(get_product_service),
):
    return {"ok": True, "products": products.list_products(ident.company_id, active_only=active_only)}

@app.post("/api/products")
def create_product(
    body: ProductData,
    ident: Identity = Depends(get_identity),
    products: ProductService = Depends(get_product_service),
):
    if not body.name:
        raise HTTPException(status_code=400, detail=MSG_PRODUCT_NAME_REQUIRED)
    return {"ok": True, "product": products.create_product(ident.company_id, body)}

@app.put("/api/products/{product_id}")
def update_product(
    product_id: str,
    body: ProductUpdate,
    ident: Identity = Depends(get_identity),
    products: ProductService = Depends(get_product_service),
):
    fields = body.model_dump(exclude_unset=True)
    if "name" in fields and not fields["name"]:
        raise HTTPException(status_code=400, detail=MSG_PRODUCT_NAME_REQUIRED)
    updated = products.update_product(ident.company_id, product_id, fields)
    if updated is None:
        raise HTTPException(status_code=404, detail=MSG_PRODUCT_NOT_FOUND)
    return {"ok": True, "product": updated}

@app.delete("/api/products/{product_id}")
def delete_product(
    product_id: str,
    ident: Identity = Depends(get_identity),
    products: ProductService = Depends(get_product_service),
):
    if not products.delete_product(ident.company_id, product_id):
        raise HTTPException(status_code=404, detail=MSG_PRODUCT_NOT_FOUND)
    return {"ok": True}

# -------------------------
# Quotations
# -------------------------
@app.get("/api/quotations")
def list_quotations(
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    return {"ok": True, "quotations": docs.list_documents("quotation", ident.company_id)}

@app.post("/api/quotations")
def create_quotation(
    body: QuotationForm,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    doc = docs.save_quotation(ident.company_id, body, user_id=ident.user_id)
    return {"ok": True, "quotation": doc}

@app.get("/api/quotations/{quotation_id}")
def get_quotation(
    quotation_id: str,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    doc = docs.get_document("quotation", ident.company_id, quotation_id)
    return {"ok": True, "quotation": doc, "display": document_display("quotation", doc)}

@app.put("/api/quotations/{quotation_id}")
def update_quotation(
    quotation_id: str,
    body: QuotationForm,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    doc = docs.save_quotation(ident.company_id, body, quotation_id=quotation_id, user_id=ident.user_id)
    return {"ok": True, "quotation": doc}

@app.patch("/api/quotations/{quotation_id}")
def update_quotation_status(
    quotation_id: str,
    body: QuotationStatusUpdate,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    doc = docs.update_status("quotation", ident.company_id, quotation_id, body.status)
    return {"ok": True, "quotation": doc}

@app.delete("/api/quotations/{quotation_id}")
def delete_quotation(
    quotation_id: str,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    docs.delete_document("quotation", ident.company_id, quotation_id)
    return {"ok": True}

# -------------------------
# Invoices
# -------------------------
@app.get("/api/invoices")
def list_invoices(
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    return {"ok": True, "invoices": docs.list_documents("invoice", ident.company_id)}

@app.post("/api/invoices")
def create_invoice(
    body: InvoiceForm,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    doc = docs.save_invoice(ident.company_id, body, user_id=ident.user_id)
    return {"ok": True, "invoice": doc}

@app.get("/api/invoices/{invoice_id}")
def get_invoice(
    invoice_id: str,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    doc = docs.get_document("invoice", ident.company_id, invoice_id)
    return {"ok": True, "invoice": doc, "display": document_display("invoice", doc)}

@app.put("/api/invoices/{invoice_id}")
def update_invoice(
    invoice_id: str,
    body: InvoiceForm,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    doc = docs.save_invoice(ident.company_id, body, invoice_id=invoice_id, user_id=ident.user_id)
    return {"ok": True, "invoice": doc}

@app.patch("/api/invoices/{invoice_id}")
def update_invoice_status(
    invoice_id: str,
    body: InvoiceStatusUpdate,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    doc = docs.update_status("invoice", ident.company_id, invoice_id, body.status)
    return {"ok": True, "invoice": doc}

@app.delete("/api/invoices/{invoice_id}")
def delete_invoice(
    invoice_id: str,
    ident: Identity = Depends(get_identity),
    docs: DocumentService = Depends(get_document_service),
):
    docs.delete_document("invoice", ident.company_id, invoice_id)
    return {"ok": True}
