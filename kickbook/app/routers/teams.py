# kickbook/app/routers/teams.py
import secrets

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..deps.current_user import current_user, ensure_team_manager, ensure_team_member
from ..errors import ServiceError
from ..models import User, Team, ROLE_PLAYER
from ..schemas import TeamIn, TeamUpdate, TeamOut, UserOut, JoinTeamIn, AddMemberIn, WhatsAppMessageIn
from ..services import cancellation, notifications, whatsapp
from ..util import generate_code
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/teams", tags=["teams"])


def _team_or_404(db: Session, team_id: int) -> Team:
    team = crud.get_team(db, team_id)
    if not team:
        raise HTTPException(404, "Team not found")
    return team


@router.get("", response_model=list[TeamOut])
def my_teams(user: User = Depends(current_user), db: Session = Depends(get_db)):
    teams = crud.get_teams_by_owner(db, user.id)
    if not teams and user.team_id:
        team = crud.get_team(db, user.team_id)
        teams = [team] if team else []
    return teams


@router.post("", response_model=TeamOut, status_code=201)
def create_team(payload: TeamIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    if user.team_id and not user.is_admin:
        raise HTTPException(400, "You already belong to a team")
    team = crud.create_team(
        db, user, payload.name,
        allow_player_registration=payload.allow_player_registration,
        allow_player_booking_management=payload.allow_player_booking_management,
        credit_value=payload.credit_value,
    )
    logger.info("[teams] user %s created team %s", user.id, team.id)
    return team


@router.post("/join", response_model=TeamOut)
def join_team(payload: JoinTeamIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    team = crud.get_team_by_invitation_code(db, payload.invitation_code.strip().upper())
    if not team:
        raise HTTPException(404, "Invalid invitation code")
    if user.team_id == team.id:
        return team
    if user.team_id:
        raise HTTPException(400, "You already belong to a team")
    if not team.allow_player_registration:
        raise HTTPException(403, "This team is not accepting new players")

    crud.update_user(db, user.id, team_id=team.id)
    notifications.send_notification(
        db, team.owner_id, "New Player Joined", f"{user.name} joined {team.name}.", notifications.TEAM_UPDATE,
    )
    return team


@router.get("/{team_id}", response_model=TeamOut)
def get_team(team_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    team = _team_or_404(db, team_id)
    ensure_team_member(user, team)
    return team


@router.put("/{team_id}", response_model=TeamOut)
def update_team(team_id: int, payload: TeamUpdate, user: User = Depends(current_user),
                db: Session = Depends(get_db)):
    team = _team_or_404(db, team_id)
    ensure_team_manager(user, team)

    fields = payload.model_dump(exclude_unset=True, exclude={"cancellation_policy"})
    if fields:
        team = crud.update_team(db, team.id, **fields)

    if payload.cancellation_policy is not None:
        try:
            cancellation.update_team_policy(
                db, user, team, payload.cancellation_policy.model_dump(exclude_none=True)
            )
        except ServiceError as e:
            raise e.to_http()
        db.refresh(team)
    return team


@router.get("/{team_id}/cancellation-policy")
def get_cancellation_policy(team_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    team = _team_or_404(db, team_id)
    ensure_team_member(user, team)
    return cancellation.resolve_policy(team).as_dict()


@router.post("/{team_id}/invitation-code", response_model=TeamOut)
def regenerate_invitation_code(team_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    team = _team_or_404(db, team_id)
    ensure_team_manager(user, team)
    return crud.update_team(db, team.id, invitation_code=generate_code(10))


@router.get("/{team_id}/members", response_model=list[UserOut])
def team_members(team_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    team = _team_or_404(db, team_id)
    ensure_team_member(user, team)
    return crud.get_team_members(db, team.id)


@router.post("/{team_id}/members", response_model=UserOut, status_code=201)
def add_member(team_id: int, payload: AddMemberIn, user: User = Depends(current_user),
               db: Session = Depends(get_db)):
    """
    Add a player by email. Existing accounts without a team are attached;
    otherwise a player account is created with a random password.
    """
    team = _team_or_404(db, team_id)
    ensure_team_manager(user, team)

    existing = crud.get_user_by_email(db, payload.email.lower())
    if existing:
        if existing.team_id and existing.team_id != team.id:
            raise HTTPException(400, "User already belongs to a different team")
        return crud.update_user(db, existing.id, team_id=team.id)

    username = payload.email.split("@")[0] + generate_code(4).lower()
    member = crud.create_user(
        db,
        username=username,
        password=secrets.token_urlsafe(12),
        email=payload.email,
        name=payload.name,
        role=ROLE_PLAYER,
        team_id=team.id,
        phone=payload.phone,
    )
    logger.info("[teams] team %s: created player %s", team.id, member.id)
    return member


@router.post("/{team_id}/whatsapp")
def broadcast_whatsapp(team_id: int, payload: WhatsAppMessageIn, user: User = Depends(current_user),
                       db: Session = Depends(get_db)):
    team = _team_or_404(db, team_id)
    ensure_team_manager(user, team)
    if not whatsapp.is_configured():
        raise HTTPException(500, "WhatsApp is not configured on server")
    delivered = whatsapp.send_team_message(db, team, payload.message)
    return {"ok": True, "delivered": delivered}
