from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
import json
import logging
from typing import List, Literal, Optional
from uuid import UUID

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.config import settings
from core.database import get_db
from core.security import verify_hmac_sha1
from models import PurchaseRecord, User
from routers.plans import get_plan_or_404
from schemas import PurchaseHistoryItem, SubscriptionCheckoutRequest
from services.revenuecat_service import process_revenuecat_event
from services.stripe_service import StripeService, process_stripe_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/billing", tags=["billing"])

CURRENCY_SYMBOLS = {"gbp": "£", "usd": "$", "eur": "€"}


def format_amount(amount_cents: int, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get((currency or "").lower())
    value = f"{amount_cents / 100:.2f}"
    return f"{symbol}{value}" if symbol else f"{value} {(currency or '').upper()}"


def _stripe_call(action: str, fn):
    """Run a Stripe operation, mapping config and SDK failures to 503/502/500."""
    try:
        return fn()
    except HTTPException:
        raise
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Stripe error during {action}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to {action}")
    except Exception:
        logger.exception(f"Unexpected error during {action}")
        raise HTTPException(status_code=500, detail=f"Failed to {action}")


@router.post("/checkout")
def create_checkout(
    request: SubscriptionCheckoutRequest,
    current_user: User = Depends(get_current_user),
):
    """
    Create a Stripe Checkout Session for a Pro/Elite subscription.
    Returns the session id and hosted URL.
    """
    return _stripe_call(
        "create checkout session",
        lambda: StripeService().create_subscription_checkout(user=current_user, price_id=request.price_id),
    )


@router.post("/plans/{plan_id}/checkout")
def create_plan_checkout(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = get_plan_or_404(db, plan_id, viewer=current_user)
    return _stripe_call(
        "create plan checkout session",
        lambda: StripeService().create_plan_checkout(db, buyer=current_user, plan=plan),
    )


@router.post("/connect")
def create_connect_account(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Stripe Connect Express onboarding for plan creators."""
    url = _stripe_call(
        "create Connect onboarding link",
        lambda: StripeService().create_connect_onboarding(db, user=current_user),
    )
    return {"url": url, "account_id": current_user.stripe_account_id}


@router.get("/connect/status")
def connect_status(current_user: User = Depends(get_current_user)):
    return _stripe_call(
        "fetch Connect account status",
        lambda: StripeService().connect_status(user=current_user),
    )


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe webhook endpoint.

    Verifies signature and processes events idempotently.
    """
    sig = request.headers.get("stripe-signature")
    if not sig:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    payload = await request.body()
    try:
        event = StripeService().construct_event(payload=payload, sig_header=sig)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception:
        # Signature verification errors should return 400 so Stripe can retry appropriately.
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    result = process_stripe_event(db, event=event)
    return {"ok": True, "result": result}


@router.post("/webhooks/revenuecat")
async def revenuecat_webhook(request: Request, db: Session = Depends(get_db)):
    """RevenueCat webhook: HMAC-SHA1 of the raw body in X-RevenueCat-Signature."""
    secret = settings.REVENUECAT_WEBHOOK_SECRET
    if not secret:
        raise HTTPException(status_code=503, detail="RevenueCat webhook not configured")

    payload = await request.body()
    if not verify_hmac_sha1(payload, request.headers.get("x-revenuecat-signature"), secret):
        logger.warning("Rejected RevenueCat webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        body = json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    return process_revenuecat_event(db, body)


@router.get("/purchases", response_model=List[PurchaseHistoryItem])
def purchase_history(
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    export: Optional[Literal["json"]] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    The caller's plan purchases, newest first.

    `end_date` is inclusive. With `export=json` the same list is returned
    as a downloadable attachment.
    """
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")

    query = db.query(PurchaseRecord).filter(PurchaseRecord.user_id == current_user.id)
    if start_date:
        query = query.filter(PurchaseRecord.created_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc))
    if end_date:
        end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        query = query.filter(PurchaseRecord.created_at < end)

    items = [
        PurchaseHistoryItem(
            id=r.id,
            plan_id=r.plan_id,
            plan_name=r.plan_name,
            creator_id=r.creator_id,
            amount_paid=r.amount_paid,
            amount_display=format_amount(r.amount_paid, r.currency),
            currency=r.currency,
            created_at=r.created_at,
        )
        for r in query.order_by(PurchaseRecord.created_at.desc()).all()
    ]

    if export == "json":
        body = json.dumps([i.model_dump(mode="json") for i in items], indent=2)
        return Response(
            content=body,
            media_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="purchases.json"'},
        )
    return items
