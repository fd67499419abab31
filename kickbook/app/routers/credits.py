# kickbook/app/routers/credits.py
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..deps.current_user import current_user, require_admin, ensure_team_manager
from ..errors import LedgerError
from ..models import User, TX_ADMIN_ADJUSTMENT
from ..schemas import CreditPurchaseIn, CreditUseIn, CreditAdjustIn, CreditTransactionOut
from ..services import credits as ledger
from ..services import stripe_client
from ..settings import settings
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("")
def my_credits(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return {"credits": ledger.get_user_credits(db, user.id)}


@router.get("/transactions", response_model=list[CreditTransactionOut])
def my_transactions(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return ledger.get_transactions_by_user(db, user.id)


@router.get("/owner-transactions", response_model=list[CreditTransactionOut])
def owner_transactions(user: User = Depends(current_user), db: Session = Depends(get_db)):
    """Booking payments received as a team owner."""
    return ledger.get_transactions_by_team_owner(db, user.id)


# ============================================================
# Purchase via Stripe Checkout
# ============================================================

@router.post("/purchase")
def purchase_credits(
    payload: CreditPurchaseIn,
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    """
    Start a credit purchase. Credits land when Stripe confirms payment
    through the billing webhook.
    Returns: { checkout_url, transaction_id }
    """
    lo, hi = settings.CREDIT_PURCHASE_MIN, settings.CREDIT_PURCHASE_MAX
    if payload.amount < lo or payload.amount > hi:
        raise HTTPException(400, f"Invalid amount. Must be between {lo} and {hi} credits.")

    if not stripe_client.is_configured():
        raise HTTPException(500, "Stripe is not configured on server")

    tx = ledger.create_pending_purchase(db, user.id, payload.amount)

    origin = request.headers.get("origin") or settings.FRONTEND_BASE_URL
    try:
        session = stripe_client.create_credit_checkout_session(
            customer_email=user.email,
            user_id=user.id,
            tx_id=tx.id,
            credits=payload.amount,
            success_url=f"{origin}/credits?purchased=1",
            cancel_url=f"{origin}/credits?canceled=1",
        )
    except Exception as e:
        logger.warning("[credits] checkout session failed for tx %s: %s", tx.id, e)
        ledger.fail_purchase(db, tx.id)
        raise HTTPException(502, "Unable to start checkout. Please try again.")

    ledger.attach_purchase_reference(db, tx.id, session.id)
    return {"checkout_url": session.url, "transaction_id": tx.id}


# ============================================================
# Spend / adjust
# ============================================================

@router.post("/use")
def use_credits(payload: CreditUseIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    try:
        ok = ledger.use_credits(db, user.id, payload.amount, payload.booking_id, description=payload.description)
    except LedgerError as e:
        raise e.to_http()
    if not ok:
        raise HTTPException(402, "Insufficient credits")
    return {"ok": True, "credits": ledger.get_user_credits(db, user.id)}


@router.post("/adjust")
def adjust_credits(payload: CreditAdjustIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    """Grant credits to a member of a team the caller manages."""
    target = crud.get_user(db, payload.user_id)
    if not target or not target.team_id:
        raise HTTPException(404, "Player not found")
    ensure_team_manager(user, crud.get_team(db, target.team_id))

    try:
        updated = ledger.add_credits(
            db, target.id, payload.amount, TX_ADMIN_ADJUSTMENT,
            description=payload.description or f"Adjustment by {user.name}",
        )
    except LedgerError as e:
        raise e.to_http()
    return {"ok": True, "credits": updated.credits}


@router.get("/reconcile")
def reconcile(user: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Users whose stored balance disagrees with their completed transactions."""
    mismatches = []
    for u in db.query(User).order_by(User.id).all():
        expected = ledger.ledger_balance(db, u.id)
        if (u.credits or 0) != expected:
            mismatches.append({"user_id": u.id, "credits": u.credits, "ledger": expected})
    if mismatches:
        logger.warning("[credits] reconcile found %s mismatched balances", len(mismatches))
    return {"ok": not mismatches, "mismatches": mismatches}
