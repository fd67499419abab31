# kickbook/app/services/stripe_client.py
from __future__ import annotations

import json
from typing import Optional

import stripe

from ..settings import settings
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

# ============================================================
# Stripe config
# ============================================================

if settings.STRIPE_SECRET_KEY:
    stripe.api_key = settings.STRIPE_SECRET_KEY

# team subscription tier -> price id
TIER_PRICES = {
    "pro": settings.STRIPE_PRICE_ID_PRO,
    "enterprise": settings.STRIPE_PRICE_ID_ENTERPRISE,
}


def is_configured() -> bool:
    return bool(settings.STRIPE_SECRET_KEY)


# ============================================================
# Webhook Parser (used by routers/billing.py)
# ============================================================

def parse_event(payload: bytes, sig_header: str):
    """
    Parse + verify a Stripe webhook event using the Signing Secret.

    If STRIPE_WEBHOOK_SECRET is missing, falls back to plain JSON parse
    (local dev / stripe-cli forwarding without a secret).
    """
    if settings.STRIPE_WEBHOOK_SECRET:
        try:
            return stripe.Webhook.construct_event(
                payload=payload,
                sig_header=sig_header,
                secret=settings.STRIPE_WEBHOOK_SECRET,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Stripe signature verification FAILED: %s", e)
            raise
        except Exception as e:
            logger.warning("Stripe webhook parse FAILED: %s", e)
            raise

    logger.warning("STRIPE_WEBHOOK_SECRET not set, skipping signature verification")
    return stripe.Event.construct_from(json.loads(payload), stripe.api_key)


# ============================================================
# Customers
# ============================================================

def get_or_create_customer(email: str, user_id: int) -> str:
    if not is_configured():
        raise ValueError("Stripe not configured")

    result = stripe.Customer.search(query=f"email:'{email}'")
    if result.data:
        return result.data[0].id
    return stripe.Customer.create(email=email, metadata={"user_id": str(user_id)}).id


# ============================================================
# Credit purchase (one-off payment)
# ============================================================

def create_credit_checkout_session(
    customer_email: str,
    user_id: int,
    tx_id: int,
    credits: int,
    success_url: str,
    cancel_url: str,
) -> stripe.checkout.Session:
    """
    Checkout for `credits` credits. The pending ledger row id rides in the
    metadata so the webhook can settle exactly that row.
    """
    return stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        line_items=[
            {
                "price_data": {
                    "currency": settings.CREDIT_CURRENCY,
                    "unit_amount": settings.CREDIT_PRICE_CENTS,
                    "product_data": {"name": "KickBook credits"},
                },
                "quantity": credits,
            }
        ],
        customer_email=customer_email,
        success_url=success_url,
        cancel_url=cancel_url,
        client_reference_id=str(tx_id),
        metadata={
            "product": "credits",
            "user_id": str(user_id),
            "tx_id": str(tx_id),
            "credits": str(credits),
        },
    )


# ============================================================
# Team subscription checkout
# ============================================================

def create_subscription_checkout_session(
    customer_id: str,
    tier: str,
    team_id: int,
    success_url: str,
    cancel_url: str,
) -> str:
    price_id = TIER_PRICES.get(tier)
    if not price_id:
        raise ValueError(f"No Stripe price configured for tier {tier!r}")

    metadata = {"product": "team_subscription", "team_id": str(team_id), "tier": tier}
    session = stripe.checkout.Session.create(
        mode="subscription",
        customer=customer_id,
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=success_url,
        cancel_url=cancel_url,
        subscription_data={"metadata": metadata},
        metadata=metadata,
    )
    return session.url


def get_subscription_status(subscription_id: Optional[str]) -> Optional[str]:
    if not subscription_id or not is_configured():
        return None
    sub = stripe.Subscription.retrieve(subscription_id)
    return sub.get("status")


def tier_for_price(price_id: Optional[str]) -> Optional[str]:
    for tier, pid in TIER_PRICES.items():
        if pid and pid == price_id:
            return tier
    return None
