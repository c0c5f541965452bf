"""API routes exposing billing functionality."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ...app_context import AppContext, get_app_context
from ..billing import BillingError, RawNotification
from ..schemas.billing import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    PortalSessionRequest,
    PortalSessionResponse,
    SubscriptionStatusResponse,
)

router = APIRouter(prefix="/api", tags=["billing"])


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    context: AppContext = Depends(get_app_context),
) -> JSONResponse:
    # Signature verification needs the body exactly as sent.
    body = await request.body()
    notification = RawNotification(
        body=body,
        headers=dict(request.headers),
        remote_addr=_client_ip(request),
    )
    result = await run_in_threadpool(context.webhook_processor.handle, notification)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(
    payload: CheckoutSessionRequest,
    context: AppContext = Depends(get_app_context),
) -> CheckoutSessionResponse:
    try:
        session = context.billing_service.create_checkout_session(
            account_id=payload.account_id,
            email=str(payload.email),
            name=payload.name,
            price_id=payload.price_id,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return CheckoutSessionResponse.from_checkout(session)


@router.post("/create-portal-session", response_model=PortalSessionResponse)
def create_portal_session(
    payload: PortalSessionRequest,
    request: Request,
    context: AppContext = Depends(get_app_context),
) -> PortalSessionResponse:
    try:
        session = context.billing_service.create_portal_session(
            payload.customer_id,
            return_url=payload.return_url,
            origin=request.headers.get("origin"),
        )
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return PortalSessionResponse(url=session.url)


@router.get("/subscription-status/{account_id}", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    account_id: str,
    context: AppContext = Depends(get_app_context),
) -> SubscriptionStatusResponse:
    try:
        account = context.billing_service.get_subscription_status(account_id)
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionStatusResponse.from_account(account)


@router.post("/subscription-status/{account_id}/resync", response_model=SubscriptionStatusResponse)
def resync_subscription(
    account_id: str,
    context: AppContext = Depends(get_app_context),
) -> SubscriptionStatusResponse:
    try:
        account = context.billing_service.resync_subscription(account_id)
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionStatusResponse.from_account(account)
