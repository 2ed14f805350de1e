from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dairyledger.constants import local_now
from dairyledger.services.delivery_service import DeliveryLine
from web.deps import SOURCE, get_actor_id, get_delivery_service
from web.schemas import (
    ConfirmDeliveryRequest,
    CreateDeliveryRequest,
    DeliveryStatusRequest,
    SkipDeliveryRequest,
    camelize,
    delivery_json,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/deliveries")


@router.post("")
async def delivery_create(request: Request, body: CreateDeliveryRequest):
    logger.info("POST /api/deliveries: customer=%s date=%s", body.customer_id, body.delivery_date)
    delivery = get_delivery_service(request).create_delivery(
        body.customer_id,
        body.delivery_date,
        [
            DeliveryLine(product_id=item.product_id, quantity=item.quantity, price_per_unit=item.price_per_unit)
            for item in body.items
        ],
        delivery_time=body.delivery_time,
        labour_id=body.labour_id,
        route_id=body.route_id,
        notes=body.notes,
        actor_id=get_actor_id(request),
        source=SOURCE,
    )
    return JSONResponse(
        {"success": True, "message": "Delivery scheduled successfully", "delivery": delivery_json(delivery)},
        status_code=201,
    )


@router.get("/history/monthly")
async def delivery_monthly_history(
    request: Request,
    customerId: int,
    month: int | None = None,
    year: int | None = None,
):
    now = local_now()
    history = get_delivery_service(request).monthly_history(customerId, month or now.month, year or now.year)
    summary = history.model_dump(mode="json", exclude={"deliveries", "month", "year"})
    return {
        "success": True,
        "month": history.month,
        "year": history.year,
        "summary": camelize(summary),
        "deliveries": [delivery_json(d) for d in history.deliveries],
    }


@router.get("/{delivery_id}")
async def delivery_detail(request: Request, delivery_id: int):
    delivery = get_delivery_service(request).get_delivery(delivery_id)
    return {"success": True, "delivery": delivery_json(delivery)}


@router.put("/{delivery_id}/status")
async def delivery_update_status(request: Request, delivery_id: int, body: DeliveryStatusRequest):
    logger.info("PUT /api/deliveries/%s/status: %s", delivery_id, body.status.value)
    delivery = get_delivery_service(request).update_status(
        delivery_id,
        body.status,
        skip_reason=body.skip_reason,
        payment_method=body.payment_method,
        actor_id=get_actor_id(request),
        source=SOURCE,
    )
    return {
        "success": True,
        "message": f"Delivery marked as {delivery.status.value}",
        "delivery": delivery_json(delivery),
    }


@router.put("/{delivery_id}/skip")
async def delivery_skip(request: Request, delivery_id: int, body: SkipDeliveryRequest):
    logger.info("PUT /api/deliveries/%s/skip", delivery_id)
    delivery = get_delivery_service(request).skip(
        delivery_id,
        body.reason,
        user_id=body.customer_id,
        actor_id=get_actor_id(request),
        source=SOURCE,
    )
    return {"success": True, "message": "Delivery skipped successfully", "delivery": delivery_json(delivery)}


@router.put("/{delivery_id}/confirm")
async def delivery_confirm(request: Request, delivery_id: int, body: ConfirmDeliveryRequest | None = None):
    logger.info("PUT /api/deliveries/%s/confirm", delivery_id)
    delivery = get_delivery_service(request).confirm(
        delivery_id,
        user_id=body.customer_id if body else None,
        actor_id=get_actor_id(request),
        source=SOURCE,
    )
    return {"success": True, "message": "Delivery confirmed", "delivery": delivery_json(delivery)}
