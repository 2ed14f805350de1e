from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dairyledger.models.bill import BillStatus
from web.deps import SOURCE, get_actor_id, get_bill_service, get_payment_service
from web.schemas import BillPaymentRequest, GenerateAllRequest, GenerateBillRequest, bill_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing")


@router.get("")
async def bill_list(
    request: Request,
    customerId: int | None = None,
    month: int | None = None,
    year: int | None = None,
    status: BillStatus | None = None,
):
    bills = get_bill_service(request).list_bills(user_id=customerId, month=month, year=year, status=status)
    logger.debug("GET /api/billing: %d bills", len(bills))
    return {"success": True, "count": len(bills), "bills": [bill_json(b) for b in bills]}


@router.post("/generate")
async def bill_generate(request: Request, body: GenerateBillRequest):
    logger.info("POST /api/billing/generate: customer=%s period=%s-%s", body.customer_id, body.year, body.month)
    bill = get_bill_service(request).generate_bill(
        body.customer_id,
        body.month,
        body.year,
        discount=body.discount,
        tax=body.tax,
        actor_id=get_actor_id(request),
        source=SOURCE,
    )
    return JSONResponse(
        {"success": True, "message": "Bill generated successfully", "bill": bill_json(bill)},
        status_code=201,
    )


@router.post("/generate-all")
async def bill_generate_all(request: Request, body: GenerateAllRequest):
    logger.info("POST /api/billing/generate-all: period=%s-%s", body.year, body.month)
    result = get_bill_service(request).generate_all_bills(
        body.month, body.year, actor_id=get_actor_id(request), source=SOURCE
    )
    return {
        "success": True,
        "message": f"Generated {result['generated']} bills, skipped {result['skipped']}",
        **result,
    }


@router.get("/{bill_id}")
async def bill_detail(request: Request, bill_id: int):
    service = get_bill_service(request)
    bill = service.get_bill(bill_id)
    return {"success": True, "bill": bill_json(bill, service.list_payments(bill_id))}


@router.post("/{bill_id}/send")
async def bill_send(request: Request, bill_id: int):
    logger.info("POST /api/billing/%s/send", bill_id)
    bill = get_bill_service(request).mark_sent(bill_id, actor_id=get_actor_id(request), source=SOURCE)
    return {"success": True, "message": "Bill marked as sent", "bill": bill_json(bill)}


@router.put("/{bill_id}/payment")
async def bill_record_payment(request: Request, bill_id: int, body: BillPaymentRequest):
    logger.info("PUT /api/billing/%s/payment: amount=%s method=%s", bill_id, body.amount, body.method.value)
    outcome = get_payment_service(request).record_payment(
        None,
        body.amount,
        body.method,
        bill_id=bill_id,
        transaction_id=body.transaction_id,
        received_by=get_actor_id(request),
        notes=body.notes,
        status=body.status,
        source=SOURCE,
    )
    payments = get_bill_service(request).list_payments(bill_id)
    return {
        "success": True,
        "message": "Payment recorded successfully",
        "bill": bill_json(outcome.bill, payments),
    }
