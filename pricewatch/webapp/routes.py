"""FastAPI routes for the webapp."""

import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from ..extractors import list_platforms
from ..models import Platform, TrackedProduct
from ..offer_sync import OfferSyncOrchestrator
from ..orchestrator import ScanOrchestrator
from ..storage import DuplicateProductError, ProductNotFoundError, ProductStore, StoreBusyError

logger = logging.getLogger(__name__)

router = APIRouter()


class ScannerStateUpdate(BaseModel):
    enabled: bool


class ProductCreate(BaseModel):
    url: str = Field(..., min_length=1, description="Product page URL")
    desired_price: float = Field(..., gt=0, description="Alert when the price is at or below this")
    platform: str | None = None
    name: str | None = None
    brand: str | None = None
    image_url: str | None = None


class ProductUpdate(BaseModel):
    url: str | None = Field(None, min_length=1)
    desired_price: float | None = Field(None, gt=0)
    platform: str | None = None
    name: str | None = None
    brand: str | None = None
    image_url: str | None = None

    @field_validator("url", "desired_price", "platform")
    @classmethod
    def not_null(cls, value):
        # These may be omitted but never cleared.
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


def get_store(request: Request) -> ProductStore:
    """Get product store from app state."""
    return request.app.state.store


def get_orchestrator(request: Request) -> ScanOrchestrator:
    return request.app.state.orchestrator


def get_offer_sync(request: Request) -> OfferSyncOrchestrator:
    return request.app.state.offer_sync


def _busy(e: StoreBusyError) -> HTTPException:
    logger.error(f"Store busy: {e}")
    return HTTPException(status_code=503, detail=str(e))


def _to_product(payload: ProductCreate) -> TrackedProduct:
    return TrackedProduct(
        id="",
        url=payload.url.strip(),
        desired_price=payload.desired_price,
        platform=Platform.from_value(payload.platform),
        name=payload.name,
        brand=payload.brand,
        image_url=payload.image_url,
    )


# --- Scans ---


@router.post("/api/scan")
async def start_scan(request: Request):
    """Start a full price scan in the background."""
    scan_id = get_orchestrator(request).launch_scan()
    if scan_id is None:
        raise HTTPException(status_code=409, detail="Scan already in progress")
    return JSONResponse(status_code=202, content={"scan_id": scan_id, "status": "started"})


@router.post("/api/scan/stop")
async def stop_scan(request: Request):
    """Ask the running scan to stop after its current batch."""
    if get_orchestrator(request).request_stop():
        return {"status": "stop_requested", "message": "Scan will stop after the current batch"}
    return {"status": "idle", "message": "No scan in progress"}


@router.get("/api/scan/status")
async def scan_status(request: Request):
    status = get_orchestrator(request).get_status()
    offer_sync = get_offer_sync(request)
    status["offer_sync_in_progress"] = offer_sync.running
    status["last_offer_sync"] = offer_sync.last_report.to_dict() if offer_sync.last_report else None
    return status


@router.get("/api/scanner-state")
async def get_scanner_state(request: Request):
    return get_orchestrator(request).state.get().to_dict()


@router.post("/api/scanner-state")
async def set_scanner_state(request: Request, payload: ScannerStateUpdate):
    """Turn continuous scanning on or off."""
    state = get_orchestrator(request).set_continuous(payload.enabled)
    return state.to_dict()


@router.get("/api/scan-logs")
async def scan_logs(
    request: Request,
    limit: int | None = Query(None, ge=1),
    kind: str | None = Query(None, pattern="^(price|offers)$"),
):
    entries = request.app.state.db.get_scan_runs(limit=limit, kind=kind)
    return {"logs": [entry.to_dict() for entry in entries]}


@router.post("/api/sync-offers")
async def sync_offers(request: Request):
    """Start an offer sync in the background."""
    scan_id, refusal = get_offer_sync(request).launch()
    if scan_id is None:
        raise HTTPException(status_code=409, detail=refusal)
    return JSONResponse(status_code=202, content={"scan_id": scan_id, "status": "started"})


# --- Products ---


@router.get("/api/platforms")
async def platforms():
    return {"platforms": [platform.value for platform in list_platforms()]}


@router.get("/api/products")
def list_products(request: Request, platform: str | None = None):
    store = get_store(request)
    products = store.list_products(platform)
    return {"products": [p.to_dict() for p in products]}


@router.post("/api/products", status_code=201)
def add_products(request: Request, payload: ProductCreate | list[ProductCreate]):
    """Add one product, or a list of products (duplicates are skipped and reported)."""
    store = get_store(request)
    try:
        if isinstance(payload, list):
            added, duplicates = store.add_products([_to_product(item) for item in payload])
            return {"added": [p.to_dict() for p in added], "duplicates": duplicates}
        product = store.add_product(_to_product(payload))
    except DuplicateProductError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreBusyError as e:
        raise _busy(e)
    return product.to_dict()


@router.get("/api/products/{product_id}")
def get_product(request: Request, product_id: str):
    product = get_store(request).get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product.to_dict()


@router.patch("/api/products/{product_id}")
def update_product(request: Request, product_id: str, payload: ProductUpdate):
    updates = payload.model_dump(exclude_unset=True)
    if "platform" in updates:
        updates["platform"] = Platform.from_value(updates["platform"]).value
    if "url" in updates:
        updates["url"] = updates["url"].strip()
    try:
        product = get_store(request).update_product(product_id, updates)
    except ProductNotFoundError:
        raise HTTPException(status_code=404, detail="Product not found")
    except DuplicateProductError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreBusyError as e:
        raise _busy(e)
    return product.to_dict()


@router.delete("/api/products/{product_id}")
def delete_product(request: Request, product_id: str):
    try:
        removed = get_store(request).delete_products([product_id])
    except StoreBusyError as e:
        raise _busy(e)
    if not removed:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"deleted": removed}


@router.delete("/api/products")
def delete_products(request: Request, ids: str = Query(..., description="Comma-separated product ids")):
    product_ids = [pid.strip() for pid in ids.split(",") if pid.strip()]
    if not product_ids:
        raise HTTPException(status_code=400, detail="No product ids given")
    try:
        removed = get_store(request).delete_products(product_ids)
    except StoreBusyError as e:
        raise _busy(e)
    return {"deleted": removed}


@router.delete("/api/platforms/{platform}/products")
def delete_platform_products(request: Request, platform: str):
    resolved = Platform.from_value(platform)
    if resolved.partition != platform.strip().lower():
        raise HTTPException(status_code=404, detail=f"Unknown platform: {platform}")
    try:
        removed = get_store(request).delete_platform(resolved)
    except StoreBusyError as e:
        raise _busy(e)
    return {"deleted": removed, "platform": resolved.value}
