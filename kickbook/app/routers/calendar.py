# kickbook/app/routers/calendar.py
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..deps.current_user import current_user
from ..errors import ServiceError
from ..models import User
from ..services import calendar
from ..settings import settings
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("/google/auth-url")
def google_auth_url(request: Request, user: User = Depends(current_user)):
    state = secrets.token_urlsafe(16)
    request.session["calendar_oauth_state"] = state
    try:
        return {"url": calendar.get_google_auth_url(state)}
    except ServiceError as e:
        raise e.to_http()


@router.get("/google/callback")
def google_callback(code: str, request: Request, state: str | None = None,
                    user: User = Depends(current_user), db: Session = Depends(get_db)):
    expected = request.session.pop("calendar_oauth_state", None)
    if not expected or state != expected:
        raise HTTPException(400, "Invalid OAuth state")
    try:
        calendar.connect_google(db, user.id, code)
    except ServiceError as e:
        raise e.to_http()
    return RedirectResponse(f"{settings.FRONTEND_BASE_URL}/calendar?connected=google")


@router.get("/status")
def calendar_status(user: User = Depends(current_user), db: Session = Depends(get_db)):
    ci = crud.get_calendar_integration(db, user.id, calendar.GOOGLE)
    return {
        "google": {
            "connected": ci is not None,
            "last_synced_at": ci.last_synced_at if ci else None,
        }
    }


@router.post("/sync")
def sync_calendar(provider: str = calendar.GOOGLE, user: User = Depends(current_user),
                  db: Session = Depends(get_db)):
    try:
        synced = calendar.sync_user_calendar(db, user.id, provider)
    except ServiceError as e:
        logger.warning("[calendar] sync failed for user %s: %s", user.id, e.message)
        raise e.to_http()
    return {"ok": True, "synced": synced}


@router.delete("/google")
def disconnect_google(user: User = Depends(current_user), db: Session = Depends(get_db)):
    if not crud.delete_calendar_integration(db, user.id, calendar.GOOGLE):
        raise HTTPException(404, "No google calendar integration found")
    return {"ok": True}
