from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from pydantic import ValidationError
from storefront.common.utils import json_error, json_ok, read_payload, success_response
from storefront.inventory.repository import get_stock
from storefront.products.constants import logger
from storefront.products.models import BulkStockIn, ProductSaveIn
from storefront.products.repository import get_archive_items, get_product, get_shop_items
from storefront.products.services import bulk_set_stock, save_product
from storefront.products.utils import sanitize_stock_updates

prods_public_router = APIRouter()
prods_admin_router = APIRouter()


@prods_public_router.get("")
async def get_products():
    products = await get_shop_items()
    return success_response({"products": [p.model_dump() for p in products]})


@prods_public_router.get("/archive")
async def get_archived_products():
    products = await get_archive_items()
    return success_response({"products": [p.model_dump() for p in products]})


@prods_public_router.get("/{slug}")
async def get_product_details(slug: str):
    product = await get_product(slug)
    if not product or not product.published or product.archived:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    product.stock = await get_stock(slug)
    return success_response({"product": product.model_dump()})


@prods_admin_router.post("/save")
async def save_product_route(request: Request):
    wants_json = "application/json" in request.headers.get("content-type", "")
    payload = await read_payload(request)
    try:
        product_in = ProductSaveIn.model_validate(payload)
    except ValidationError as e:
        logger.info("product.save.invalid", extra={"errors": e.error_count()})
        return json_error({"ok": False, "error": "Invalid payload"}, status_code=status.HTTP_400_BAD_REQUEST)

    product = await save_product(product_in)

    if wants_json:
        return json_ok({"ok": True, "product": product.model_dump()})
    return RedirectResponse("/admin/products", status_code=status.HTTP_303_SEE_OTHER)


@prods_admin_router.post("/stock-bulk")
async def stock_bulk(request: Request):
    try:
        body = await request.json()
        payload = BulkStockIn.model_validate(body)
    except (ValueError, ValidationError):
        return json_error({"ok": False, "error": "Invalid payload"}, status_code=status.HTTP_400_BAD_REQUEST)

    rows = sanitize_stock_updates(payload.updates)
    if not rows:
        return json_error({"ok": False, "error": "No valid stock updates"}, status_code=status.HTTP_400_BAD_REQUEST)

    rows = await bulk_set_stock(rows)
    return json_ok({"ok": True, "updated": len(rows), "rows": rows})
