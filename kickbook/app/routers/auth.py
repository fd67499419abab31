# kickbook/app/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..deps.current_user import current_user
from ..models import User, ROLE_PLAYER
from ..schemas import RegisterIn, LoginIn, UserOut, NotificationSettingsIn
from ..services import notifications
from ..util import verify_password
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserOut)
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    """
    Create an account and log it in.

    Everyone registers as a player. With an invitation code the user joins
    that team (when it accepts registrations); without one they can create
    their own team afterwards.
    """
    if crud.get_user_by_username(db, payload.username):
        raise HTTPException(400, "Username already taken")
    if crud.get_user_by_email(db, payload.email.lower()):
        raise HTTPException(400, "Email already registered")

    team = None
    if payload.invitation_code:
        team = crud.get_team_by_invitation_code(db, payload.invitation_code.strip().upper())
        if not team:
            raise HTTPException(404, "Invalid invitation code")
        if not team.allow_player_registration:
            raise HTTPException(403, "This team is not accepting new players")

    referrer = None
    if payload.referral_code:
        referrer = (
            db.query(User)
            .filter(User.referral_code == payload.referral_code.strip().upper())
            .first()
        )

    user = crud.create_user(
        db,
        username=payload.username,
        password=payload.password,
        email=payload.email,
        name=payload.name,
        role=ROLE_PLAYER,
        team_id=team.id if team else None,
        phone=payload.phone,
        referred_by=referrer.id if referrer else None,
    )
    request.session["user_id"] = user.id
    logger.info("[auth] registered user %s (team=%s)", user.id, user.team_id)

    if team:
        notifications.send_notification(
            db, team.owner_id,
            "New Player Joined",
            f"{user.name} joined {team.name}.",
            notifications.TEAM_UPDATE,
        )
    return user


@router.post("/login", response_model=UserOut)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    user = crud.get_user_by_username(db, payload.username)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(401, "Invalid username or password")
    if not user.is_active:
        raise HTTPException(403, "Account disabled")
    request.session["user_id"] = user.id
    return user


@router.post("/logout")
def logout(request: Request):
    request.session.pop("user_id", None)
    return {"ok": True}


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(current_user)):
    return user


@router.put("/notification-settings")
def update_notification_settings(
    payload: NotificationSettingsIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    unknown = [
        k for k in payload.settings
        if not k.endswith("_enabled") or k[: -len("_enabled")] not in notifications.NOTIFICATION_TYPES
    ]
    if unknown:
        raise HTTPException(400, f"Unknown notification settings: {', '.join(sorted(unknown))}")

    merged = dict(user.notification_settings or {})
    merged.update(payload.settings)
    crud.update_user(db, user.id, notification_settings=merged)
    return {"ok": True, "notification_settings": merged}
