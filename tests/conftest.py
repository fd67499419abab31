import os

# must be set before kickbook.app.db builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SESSION_SECRET", "test-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kickbook.app import crud
from kickbook.app.db import Base, get_db
from kickbook.app.main import app
from kickbook.app.models import TX_ADMIN_ADJUSTMENT
from kickbook.app.seed import seed_achievements
from kickbook.app.services import credits as ledger

# fixed clock for service-level tests
NOW = datetime(2030, 6, 15, 12, 0, 0)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    seed_achievements(session)
    yield session
    session.close()


@pytest.fixture()
def client(session_factory, db):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield lambda: TestClient(app)
    app.dependency_overrides.clear()


# ---- factories ----

_seq = {"n": 0}


def _next() -> int:
    _seq["n"] += 1
    return _seq["n"]


def make_user(db, name=None, credits=0, team=None, role="player", **fields):
    n = _next()
    user = crud.create_user(
        db,
        username=f"user{n}",
        password="secret123",
        email=f"user{n}@example.com",
        name=name or f"Player {n}",
        role=role,
        team_id=team.id if team else None,
        **fields,
    )
    if credits:
        ledger.add_credits(db, user.id, credits, TX_ADMIN_ADJUSTMENT, description="test balance")
        db.refresh(user)
    return user


def make_team(db, owner=None, **fields):
    owner = owner or make_user(db, name="Owner")
    team = crud.create_team(db, owner, fields.pop("name", "Sunday League"), **fields)
    db.refresh(owner)
    return team


def make_booking(db, team, start=None, cost=10, slots=10, fmt="5-a-side", **fields):
    start = start or NOW + timedelta(hours=48)
    return crud.create_booking(
        db,
        team.id,
        title=fields.pop("title", "Five-a-side"),
        location=fields.pop("location", "Hackney Marshes"),
        format=fmt,
        start_time=start,
        end_time=start + timedelta(hours=1),
        total_slots=slots,
        credit_cost=cost,
        **fields,
    )
