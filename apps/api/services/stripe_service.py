from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Optional
from uuid import UUID

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import BadRequestError, NotFoundError
from models import PAID_TIERS, Plan, PurchaseRecord, StripeEvent, Subscription, User, UserPlan

logger = logging.getLogger(__name__)

PAID_SUBSCRIPTION_STATUSES = ("active", "trialing")
DEFAULT_PAID_TIER = "pro"


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    webhook_secret: Optional[str]
    checkout_success_url: str
    checkout_cancel_url: str
    connect_refresh_url: str
    connect_return_url: str
    currency: str
    platform_fee_percent: int
    api_version: Optional[str] = None


def _get_stripe_config() -> StripeConfig:
    """
    Load Stripe config from Settings.

    Fail closed: without a secret key no billing endpoint proceeds (503).
    """
    if not settings.STRIPE_SECRET_KEY:
        raise RuntimeError("Stripe not configured (missing: STRIPE_SECRET_KEY)")

    base = settings.FRONTEND_URL.rstrip("/")
    return StripeConfig(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        checkout_success_url=settings.STRIPE_CHECKOUT_SUCCESS_URL
        or f"{base}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
        checkout_cancel_url=settings.STRIPE_CHECKOUT_CANCEL_URL or f"{base}/payment-cancelled",
        connect_refresh_url=f"{base}/connect/refresh",
        connect_return_url=f"{base}/connect/complete",
        currency=settings.STRIPE_CURRENCY,
        platform_fee_percent=settings.STRIPE_PLATFORM_FEE_PERCENT,
        api_version=settings.STRIPE_API_VERSION,
    )


def _normalize_paid_tier(value: Any) -> str:
    tier = str(value or "").strip().lower()
    return tier if tier in PAID_TIERS else DEFAULT_PAID_TIER


def _tier_for_subscription_status(status: Optional[str], paid_tier: Optional[str]) -> str:
    """Only active/trialing subscriptions keep a paid tier."""
    if (status or "").lower() in PAID_SUBSCRIPTION_STATUSES:
        return _normalize_paid_tier(paid_tier)
    return "free"


def platform_fee_cents(amount_cents: int, fee_percent: int) -> int:
    return int(round(amount_cents * fee_percent / 100))


class StripeService:
    def __init__(self) -> None:
        cfg = _get_stripe_config()
        stripe.api_key = cfg.secret_key
        if cfg.api_version:
            stripe.api_version = cfg.api_version
        self.cfg = cfg

    def create_subscription_checkout(self, *, user: User, price_id: str) -> dict[str, str]:
        """
        Hosted Checkout for a Pro/Elite subscription.

        The price must be active. The product's `tier` metadata is copied onto
        the session and the subscription so webhooks know what was bought.
        """
        price = stripe.Price.retrieve(price_id, expand=["product"])
        if not price or not getattr(price, "active", False):
            raise BadRequestError("Invalid or inactive price")

        product = getattr(price, "product", None)
        product_metadata = getattr(product, "metadata", None) or {}
        tier = _normalize_paid_tier(product_metadata.get("tier"))

        metadata = {"user_id": str(user.id), "tier": tier}
        params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": self.cfg.checkout_success_url,
            "cancel_url": self.cfg.checkout_cancel_url,
            "client_reference_id": str(user.id),
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        if user.stripe_customer_id:
            params["customer"] = user.stripe_customer_id
        elif user.email:
            params["customer_email"] = user.email

        session = stripe.checkout.Session.create(**params)
        return {"session_id": str(session.id), "url": str(session.url)}

    def create_plan_checkout(self, db: Session, *, buyer: User, plan: Plan) -> dict[str, str]:
        """One-off plan purchase; the creator is paid out via Connect minus the platform fee."""
        if not plan.price or plan.price <= 0:
            raise BadRequestError("Plan is not for sale")

        creator = db.get(User, plan.creator_id)
        if creator is None:
            raise NotFoundError("Creator")
        if not creator.stripe_account_id:
            raise BadRequestError("Creator has not connected payouts")

        amount_cents = int(round(plan.price * 100))
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.cfg.currency,
                        "product_data": {
                            "name": plan.title,
                            "description": plan.description or f"Purchase of {plan.title} plan.",
                        },
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            "payment_intent_data": {
                "application_fee_amount": platform_fee_cents(amount_cents, self.cfg.platform_fee_percent),
                "transfer_data": {"destination": creator.stripe_account_id},
            },
            "client_reference_id": str(buyer.id),
            "metadata": {
                "user_id": str(buyer.id),
                "plan_id": str(plan.id),
                "plan_name": plan.title,
                "creator_id": str(plan.creator_id),
                "amount_paid": str(amount_cents),
            },
            "success_url": self.cfg.checkout_success_url,
            "cancel_url": self.cfg.checkout_cancel_url,
        }
        if buyer.email:
            params["customer_email"] = buyer.email

        session = stripe.checkout.Session.create(**params)
        return {"session_id": str(session.id), "url": str(session.url)}

    def create_connect_onboarding(self, db: Session, *, user: User) -> str:
        """Create (or reuse) an Express account and return its onboarding link."""
        if not user.stripe_account_id:
            account = stripe.Account.create(
                type="express",
                email=user.email,
                metadata={"user_id": str(user.id)},
                capabilities={"transfers": {"requested": True}},
            )
            user.stripe_account_id = str(account.id)
            db.add(user)
            db.commit()

        link = stripe.AccountLink.create(
            account=user.stripe_account_id,
            refresh_url=self.cfg.connect_refresh_url,
            return_url=self.cfg.connect_return_url,
            type="account_onboarding",
        )
        return str(link.url)

    def connect_status(self, *, user: User) -> dict[str, Any]:
        if not user.stripe_account_id:
            raise BadRequestError("Stripe account not connected for this user")

        account = stripe.Account.retrieve(user.stripe_account_id)
        requirements = getattr(account, "requirements", None)
        if requirements is not None and hasattr(requirements, "to_dict"):
            requirements = requirements.to_dict()
        return {
            "charges_enabled": bool(getattr(account, "charges_enabled", False)),
            "payouts_enabled": bool(getattr(account, "payouts_enabled", False)),
            "details_submitted": bool(getattr(account, "details_submitted", False)),
            "requirements": requirements,
        }

    def construct_event(self, *, payload: bytes, sig_header: str):
        if not self.cfg.webhook_secret:
            raise RuntimeError("Stripe webhook secret not configured")
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=self.cfg.webhook_secret,
        )


def _ensure_subscription_row(db: Session, *, user_id: UUID) -> Subscription:
    sub = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if sub:
        return sub
    sub = Subscription(user_id=user_id)
    db.add(sub)
    db.flush()
    return sub


def _maybe_parse_period_end(ts: Any) -> Optional[datetime]:
    if ts is None:
        return None
    try:
        return datetime.fromtimestamp(int(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _first_item_price_id(obj: Any) -> Optional[str]:
    items = getattr(obj, "items", None)
    data = getattr(items, "data", None) if items is not None else None
    if not data:
        return None
    price = getattr(data[0], "price", None)
    price_id = getattr(price, "id", None) if price is not None else None
    return str(price_id) if price_id else None


def _current_period_end_ts(obj: Any) -> Optional[int]:
    """Top-level on older Stripe API versions, per subscription item on newer ones."""
    ts = getattr(obj, "current_period_end", None)
    if ts is not None:
        return int(ts)

    items = getattr(obj, "items", None)
    data = getattr(items, "data", None) if items is not None else None
    ends = [int(it.current_period_end) for it in (data or []) if getattr(it, "current_period_end", None) is not None]
    return max(ends) if ends else None


def _metadata(obj: Any) -> dict:
    meta = getattr(obj, "metadata", None) or {}
    if hasattr(meta, "to_dict"):
        meta = meta.to_dict()
    return dict(meta)


def _parse_uuid(value: Any) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _find_user(db: Session, *, user_ref: Any = None, customer_id: Optional[str] = None) -> Optional[User]:
    user_id = _parse_uuid(user_ref)
    if user_id:
        user = db.get(User, user_id)
        if user:
            return user
    if customer_id:
        return db.query(User).filter(User.stripe_customer_id == customer_id).first()
    return None


def _handle_subscription_checkout(db: Session, obj: Any) -> dict[str, Any]:
    meta = _metadata(obj)
    customer_id = str(getattr(obj, "customer", None) or "") or None
    subscription_id = str(getattr(obj, "subscription", None) or "") or None
    user_ref = getattr(obj, "client_reference_id", None) or meta.get("user_id")

    user = _find_user(db, user_ref=user_ref, customer_id=customer_id)
    if not user:
        logger.warning("Subscription checkout completed for unknown user", extra={"extra_fields": {"customer_id": customer_id}})
        return {"matched_user": False}

    tier = _normalize_paid_tier(meta.get("tier"))
    if customer_id and not user.stripe_customer_id:
        user.stripe_customer_id = customer_id
    user.tier = tier

    sub = _ensure_subscription_row(db, user_id=user.id)
    sub.stripe_customer_id = customer_id or sub.stripe_customer_id
    sub.stripe_subscription_id = subscription_id or sub.stripe_subscription_id
    sub.status = "active"
    sub.tier = tier
    sub.cancel_at_period_end = False

    logger.info(f"Subscription activated for {user.id} ({tier})")
    return {"user_id": str(user.id), "tier": tier}


def _handle_plan_purchase(db: Session, obj: Any) -> dict[str, Any]:
    meta = _metadata(obj)
    buyer_id = _parse_uuid(meta.get("user_id"))
    plan_id = _parse_uuid(meta.get("plan_id"))
    try:
        amount_paid = int(meta.get("amount_paid"))
    except (TypeError, ValueError):
        amount_paid = None

    if not buyer_id or not plan_id or amount_paid is None:
        logger.error("Missing or invalid purchase metadata", extra={"extra_fields": {"metadata": meta}})
        return {"recorded": False, "reason": "invalid_metadata"}

    buyer = db.get(User, buyer_id)
    if buyer is None:
        return {"recorded": False, "reason": "unknown_buyer"}

    session_id = str(getattr(obj, "id", "") or "")
    if db.query(PurchaseRecord).filter(PurchaseRecord.stripe_session_id == session_id).first():
        return {"recorded": False, "reason": "duplicate_session"}

    plan = db.get(Plan, plan_id)
    db.add(PurchaseRecord(
        user_id=buyer_id,
        plan_id=plan.id if plan else None,
        plan_name=meta.get("plan_name") or (plan.title if plan else None),
        creator_id=_parse_uuid(meta.get("creator_id")),
        amount_paid=amount_paid,
        currency=str(getattr(obj, "currency", None) or settings.STRIPE_CURRENCY),
        stripe_session_id=session_id,
        stripe_payment_intent_id=str(getattr(obj, "payment_intent", None) or "") or None,
    ))

    if plan is not None:
        db.add(UserPlan(
            user_id=buyer_id,
            plan_id=plan.id,
            name=plan.title,
            type=plan.type,
            source="purchase",
            level=plan.level,
            duration_weeks=plan.duration_weeks,
            schedule=plan.schedule,
        ))
        plan.sales = (plan.sales or 0) + 1

    logger.info(
        "Plan purchased",
        extra={"extra_fields": {"plan_id": str(plan_id), "buyer_id": str(buyer_id), "amount_paid": amount_paid}},
    )
    return {"recorded": True, "plan_id": str(plan_id)}


def _handle_subscription_change(db: Session, obj: Any) -> dict[str, Any]:
    meta = _metadata(obj)
    customer_id = str(getattr(obj, "customer", None) or "") or None
    subscription_id = str(getattr(obj, "id", None) or "") or None
    status = str(getattr(obj, "status", None) or "") or None

    user = _find_user(db, user_ref=meta.get("user_id"), customer_id=customer_id)
    if not user and subscription_id:
        existing = db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription_id).first()
        if existing:
            user = db.get(User, existing.user_id)
    if not user:
        return {"matched_user": False}

    sub = _ensure_subscription_row(db, user_id=user.id)
    sub.stripe_customer_id = customer_id or sub.stripe_customer_id
    sub.stripe_subscription_id = subscription_id or sub.stripe_subscription_id
    sub.stripe_price_id = _first_item_price_id(obj) or sub.stripe_price_id
    sub.status = status
    sub.current_period_end = _maybe_parse_period_end(_current_period_end_ts(obj))
    sub.cancel_at_period_end = bool(getattr(obj, "cancel_at_period_end", False))
    if meta.get("tier"):
        sub.tier = _normalize_paid_tier(meta.get("tier"))

    user.tier = _tier_for_subscription_status(status, sub.tier)
    logger.info(f"Subscription {status} for {user.id}; tier now {user.tier}")
    return {"user_id": str(user.id), "status": status, "tier": user.tier}


def process_stripe_event(db: Session, *, event: Any) -> dict[str, Any]:
    """
    Idempotently process a Stripe webhook event.

    Each event id is recorded once in stripe_events; a redelivery is a no-op.
    """
    event_id = str(getattr(event, "id", "") or "")
    event_type = str(getattr(event, "type", "") or "")
    stripe_created = getattr(event, "created", None)

    if not event_id:
        return {"processed": False, "reason": "missing_event_id"}

    db.add(StripeEvent(event_id=event_id, event_type=event_type or "unknown", stripe_created=int(stripe_created) if stripe_created else None))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        return {"processed": False, "idempotent": True, "event_id": event_id}

    obj = event.data.object
    result: dict[str, Any] = {"processed": True, "event_id": event_id, "event_type": event_type}

    if event_type == "checkout.session.completed":
        mode = getattr(obj, "mode", None)
        if mode == "subscription":
            result.update(_handle_subscription_checkout(db, obj))
        elif mode == "payment":
            result.update(_handle_plan_purchase(db, obj))
        else:
            result["handled"] = False
    elif event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
        result.update(_handle_subscription_change(db, obj))
    else:
        logger.debug(f"Unhandled Stripe event type: {event_type}")
        result["handled"] = False

    db.commit()
    return result
