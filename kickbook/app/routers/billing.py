# kickbook/app/routers/billing.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..deps.current_user import current_user, ensure_team_manager
from ..errors import LedgerError
from ..models import Team, User, CreditTransaction, TX_COMPLETED
from ..services import credits as ledger
from ..services import notifications, stripe_client
from ..settings import settings
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


# ============================================================
# Team subscription checkout
# ============================================================

@router.post("/teams/{team_id}/subscription")
def create_team_subscription_checkout(
    team_id: int,
    tier: str,
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    """
    Start Stripe Checkout for a team plan (pro | enterprise).
    Returns: { checkout_url: "https://..." }
    """
    team = crud.get_team(db, team_id)
    if not team:
        raise HTTPException(404, "Team not found")
    ensure_team_manager(user, team)

    if tier not in stripe_client.TIER_PRICES:
        raise HTTPException(400, f"Unknown tier {tier!r}")
    if not stripe_client.is_configured() or not stripe_client.TIER_PRICES.get(tier):
        raise HTTPException(500, "Stripe is not configured on server")

    customer_id = user.stripe_customer_id
    if not customer_id:
        customer_id = stripe_client.get_or_create_customer(user.email, user.id)
        crud.update_user_stripe_info(db, user.id, customer_id, user.stripe_subscription_id)

    origin = request.headers.get("origin") or settings.FRONTEND_BASE_URL
    checkout_url = stripe_client.create_subscription_checkout_session(
        customer_id=customer_id,
        tier=tier,
        team_id=team.id,
        success_url=f"{origin}/subscription?upgraded=1",
        cancel_url=f"{origin}/subscription?canceled=1",
    )
    return {"checkout_url": checkout_url}


@router.get("/teams/{team_id}")
def team_billing(team_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    team = crud.get_team(db, team_id)
    if not team:
        raise HTTPException(404, "Team not found")
    ensure_team_manager(user, team)

    owner = crud.get_user(db, team.owner_id)
    status = None
    if owner and owner.stripe_subscription_id:
        try:
            status = stripe_client.get_subscription_status(owner.stripe_subscription_id)
        except Exception as e:
            logger.warning("[billing] subscription lookup failed for team %s: %s", team.id, e)
    return {
        "team_id": team.id,
        "subscription": team.subscription,
        "stripe_subscription_id": owner.stripe_subscription_id if owner else None,
        "status": status,
    }


# ============================================================
# Stripe Webhook (credit purchases + team subscriptions)
# ============================================================

def _settle_credit_purchase(db: Session, data: dict, paid: bool) -> None:
    metadata = data.get("metadata") or {}
    tx = None
    tx_id = metadata.get("tx_id") or data.get("client_reference_id")
    if tx_id:
        try:
            tx = db.get(CreditTransaction, int(tx_id))
        except (TypeError, ValueError):
            tx = None
    if tx is None and data.get("id"):
        tx = ledger.find_purchase_by_reference(db, data["id"])
    if tx is None:
        logger.warning("[billing] no pending purchase for checkout session %s", data.get("id"))
        return

    if not paid:
        ledger.fail_purchase(db, tx.id)
        return

    was_completed = tx.status == TX_COMPLETED
    tx = ledger.complete_purchase(db, tx.id)
    if not was_completed and tx.status == TX_COMPLETED:
        notifications.send_credit_purchase_confirmation(db, tx.user_id, tx.amount)


def _activate_team_subscription(db: Session, data: dict) -> None:
    metadata = data.get("metadata") or {}
    try:
        team_id = int(metadata.get("team_id"))
    except (TypeError, ValueError):
        return
    team = db.get(Team, team_id)
    if not team:
        return
    team.subscription = metadata.get("tier") or team.subscription
    owner = db.get(User, team.owner_id)
    if owner:
        if data.get("customer"):
            owner.stripe_customer_id = data["customer"]
        if data.get("subscription"):
            owner.stripe_subscription_id = data["subscription"]
    db.commit()
    logger.info("[billing] team %s now on %s", team.id, team.subscription)


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = stripe_client.parse_event(payload, sig_header)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid payload")

    event_type = event["type"]
    data = event["data"]["object"]
    metadata = data.get("metadata") or {}
    product = metadata.get("product")

    try:
        if event_type == "checkout.session.completed":
            if product == "credits":
                # async payment methods complete the session before the money arrives
                paid = data.get("payment_status", "paid") in ("paid", "no_payment_required")
                if paid:
                    _settle_credit_purchase(db, data, paid=True)
            elif product == "team_subscription":
                _activate_team_subscription(db, data)
            return {"ok": True}

        if event_type == "checkout.session.async_payment_succeeded" and product == "credits":
            _settle_credit_purchase(db, data, paid=True)
            return {"ok": True}

        if event_type in ("checkout.session.expired", "checkout.session.async_payment_failed") and product == "credits":
            _settle_credit_purchase(db, data, paid=False)
            return {"ok": True}

        if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
            team_id = metadata.get("team_id")
            status_str = data.get("status")
            team = db.get(Team, int(team_id)) if team_id and str(team_id).isdigit() else None
            if team:
                if status_str in ("active", "trialing"):
                    items = (data.get("items") or {}).get("data") or []
                    price_id = ((items[0].get("price") or {}).get("id")) if items else None
                    team.subscription = stripe_client.tier_for_price(price_id) or team.subscription
                else:
                    team.subscription = "basic"
                db.commit()
            return {"ok": True}
    except LedgerError as e:
        logger.warning("[billing] %s while handling %s: %s", e.kind.value, event_type, e.message)
        return {"ok": True}

    return {"ok": True}
