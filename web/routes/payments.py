from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dairyledger.models.payment import PaymentStatus
from web.deps import SOURCE, get_actor_id, get_payment_service
from web.schemas import (
    CashPaymentRequest,
    CreateOrderRequest,
    PaymentStatusRequest,
    VerifyPaymentRequest,
    bill_json,
    payment_json,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments")


@router.post("/create-order")
async def payment_create_order(request: Request, body: CreateOrderRequest):
    logger.info("POST /api/payments/create-order: bill=%s amount=%s", body.bill_id, body.amount)
    order = get_payment_service(request).create_order(body.amount, body.bill_id)
    return {"success": True, "order": order}


@router.post("/verify")
async def payment_verify(request: Request, body: VerifyPaymentRequest):
    logger.info("POST /api/payments/verify: order=%s bill=%s", body.order_id, body.bill_id)
    outcome = get_payment_service(request).verify_gateway_payment(
        body.order_id,
        body.payment_id,
        body.signature,
        body.amount,
        bill_id=body.bill_id,
        user_id=body.customer_id,
        source=SOURCE,
    )
    response = {"success": True, "message": "Payment verified successfully", "payment": payment_json(outcome.payment)}
    if outcome.bill is not None:
        response["bill"] = bill_json(outcome.bill)
    return response


@router.post("/cash")
async def payment_cash(request: Request, body: CashPaymentRequest):
    logger.info("POST /api/payments/cash: customer=%s bill=%s amount=%s", body.customer_id, body.bill_id, body.amount)
    outcome = get_payment_service(request).record_cash_payment(
        body.customer_id,
        body.amount,
        bill_id=body.bill_id,
        received_by=get_actor_id(request),
        notes=body.notes,
        source=SOURCE,
    )
    return JSONResponse(
        {
            "success": True,
            "message": "Cash payment recorded successfully",
            "payment": payment_json(outcome.payment),
        },
        status_code=201,
    )


@router.get("")
async def payment_list(request: Request, customerId: int | None = None, status: PaymentStatus | None = None):
    payments = get_payment_service(request).list_payments(user_id=customerId, status=status)
    return {"success": True, "count": len(payments), "payments": [payment_json(p) for p in payments]}


@router.get("/{payment_id}")
async def payment_detail(request: Request, payment_id: int):
    payment = get_payment_service(request).get_payment(payment_id)
    return {"success": True, "payment": payment_json(payment)}


@router.put("/{payment_id}/status")
async def payment_update_status(request: Request, payment_id: int, body: PaymentStatusRequest):
    logger.info("PUT /api/payments/%s/status: %s", payment_id, body.status.value)
    outcome = get_payment_service(request).update_status(
        payment_id, body.status, actor_id=get_actor_id(request), source=SOURCE
    )
    return {"success": True, "payment": payment_json(outcome.payment)}
