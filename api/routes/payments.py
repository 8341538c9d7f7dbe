"""
Payments API routes.

STK push initiation, the gateway callback endpoint and a read-only intent
status lookup. Keep this thin: no gateway details here.
"""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_payment_service
from api.utils.client_ip import resolve_client_ip
from application.dtos.payments import InitiatePayment
from application.services.callback_validator import InboundCallback
from application.services.payment_service import PaymentService
from core.logging_config import get_logger


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/stkpush", summary="Send an STK push prompt")
async def initiate_stk_push(payload: InitiatePayment, service: PaymentService = Depends(get_payment_service)):
    result = await service.initiate(payload)
    return result.model_dump(mode="json", by_alias=True)


@router.post("/callback", summary="Daraja STK callback")
async def stk_callback(request: Request, service: PaymentService = Depends(get_payment_service)):
    cfg = service.callback_config
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except (ValueError, UnicodeDecodeError):
        body = None

    origin = getattr(request.state, "client_ip", None) or resolve_client_ip(request)
    token = request.query_params.get(cfg.token_query_param) or request.headers.get(cfg.token_header)
    ack = await service.handle_callback(InboundCallback(body=body, origin=origin, token=token))
    return JSONResponse(status_code=403 if ack.rejected else 200, content=ack.model_dump())


@router.get("/intents/{correlation_key}", summary="Pending intent status")
async def intent_status(correlation_key: str, service: PaymentService = Depends(get_payment_service)):
    status = await service.intent_status(correlation_key)
    return status.model_dump(by_alias=True)
