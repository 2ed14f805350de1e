from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from web.deps import SOURCE, get_actor_id, get_bill_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customers")


@router.get("/{customer_id}/balance")
async def customer_balance(request: Request, customer_id: int):
    return {"success": True, **get_bill_service(request).customer_balance(customer_id)}


@router.post("/{customer_id}/balance/recompute")
async def customer_balance_recompute(request: Request, customer_id: int):
    logger.info("POST /api/customers/%s/balance/recompute", customer_id)
    service = get_bill_service(request)
    service.recompute_pending_amount(customer_id, actor_id=get_actor_id(request), source=SOURCE)
    return {"success": True, **service.customer_balance(customer_id)}
