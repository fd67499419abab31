from kickbook.app.models import Notification, TX_COMPLETED, TX_FAILED
from kickbook.app.routers import billing
from kickbook.app.services import credits as ledger

from .conftest import make_team, make_user


def _event(event_type, obj):
    return {"type": event_type, "data": {"object": obj}}


def _deliver(client, monkeypatch, event):
    monkeypatch.setattr(billing.stripe_client, "parse_event", lambda payload, sig: event)
    return client().post("/api/billing/webhook", content=b"{}", headers={"stripe-signature": "t=1"})


def test_bad_signature_is_rejected(client, monkeypatch):
    def reject(payload, sig):
        raise ValueError("bad signature")

    monkeypatch.setattr(billing.stripe_client, "parse_event", reject)
    r = client().post("/api/billing/webhook", content=b"{}")
    assert r.status_code == 400


def test_checkout_completed_credits_once(client, db, monkeypatch):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 20)
    event = _event("checkout.session.completed", {
        "id": "cs_test_1",
        "payment_status": "paid",
        "metadata": {"product": "credits", "tx_id": str(tx.id), "user_id": str(user.id)},
    })

    assert _deliver(client, monkeypatch, event).json() == {"ok": True}
    # Stripe retries deliveries
    assert _deliver(client, monkeypatch, event).json() == {"ok": True}

    db.expire_all()
    assert ledger.get_user_credits(db, user.id) == 20
    assert db.get(type(tx), tx.id).status == TX_COMPLETED
    assert db.query(Notification).filter_by(user_id=user.id, type="credit_purchase").count() == 1


def test_completed_matched_by_session_reference(client, db, monkeypatch):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 15)
    ledger.attach_purchase_reference(db, tx.id, "cs_test_ref")
    event = _event("checkout.session.completed", {
        "id": "cs_test_ref",
        "payment_status": "paid",
        "metadata": {"product": "credits"},
    })

    _deliver(client, monkeypatch, event)

    db.expire_all()
    assert ledger.get_user_credits(db, user.id) == 15


def test_unpaid_completion_waits(client, db, monkeypatch):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 15)
    event = _event("checkout.session.completed", {
        "id": "cs_async",
        "payment_status": "unpaid",
        "metadata": {"product": "credits", "tx_id": str(tx.id)},
    })

    _deliver(client, monkeypatch, event)

    db.expire_all()
    assert ledger.get_user_credits(db, user.id) == 0


def test_expired_checkout_fails_purchase(client, db, monkeypatch):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 15)
    event = _event("checkout.session.expired", {
        "id": "cs_gone",
        "metadata": {"product": "credits", "tx_id": str(tx.id)},
    })

    _deliver(client, monkeypatch, event)

    db.expire_all()
    assert db.get(type(tx), tx.id).status == TX_FAILED
    assert ledger.get_user_credits(db, user.id) == 0


def test_team_subscription_activated(client, db, monkeypatch):
    team = make_team(db)
    event = _event("checkout.session.completed", {
        "id": "cs_sub",
        "customer": "cus_123",
        "subscription": "sub_123",
        "metadata": {"product": "team_subscription", "team_id": str(team.id), "tier": "pro"},
    })

    _deliver(client, monkeypatch, event)

    db.expire_all()
    assert team.subscription == "pro"
    assert team.owner.stripe_subscription_id == "sub_123"


def test_subscription_deleted_downgrades(client, db, monkeypatch):
    team = make_team(db, subscription="pro")
    event = _event("customer.subscription.deleted", {
        "id": "sub_123",
        "status": "canceled",
        "metadata": {"team_id": str(team.id)},
    })

    _deliver(client, monkeypatch, event)

    db.expire_all()
    assert team.subscription == "basic"
