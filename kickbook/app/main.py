# kickbook/app/main.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.routing import APIRoute
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from .db import Base, engine, SessionLocal
from .seed import seed_achievements
from .settings import settings
from .utils.logger import setup_logger

# --- Routers ---
from .routers import auth as auth_router
from .routers import teams as teams_router
from .routers import bookings as bookings_router
from .routers import stats as stats_router
from .routers import credits as credits_router
from .routers import notifications as notifications_router
from .routers import calendar as calendar_router
from .routers import billing as billing_router

logger = setup_logger(__name__)

# --- App init ---
app = FastAPI(title="KickBook API", version="0.1.0")

# --- CORS for the frontend ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_BASE_URL,
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Cookie sessions ---
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    max_age=settings.SESSION_MAX_AGE,
    https_only=settings.ENV == "production",
)


# --- Health Check ---
@app.get("/health")
def health():
    return {"ok": True}


@app.get("/api/health")
def api_health():
    """Mirror endpoint for dashboard/API checks."""
    return {"ok": True}


# --- Startup ---
@app.on_event("startup")
def startup():
    # Only auto-create tables locally; use Alembic in production
    if settings.ENV != "production":
        Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        added = seed_achievements(db)
        if added:
            logger.info("[startup] seeded %s achievements", added)
    finally:
        db.close()


# --- Include routers ---
app.include_router(auth_router.router, prefix="/api")
app.include_router(teams_router.router, prefix="/api")
app.include_router(bookings_router.router, prefix="/api")
app.include_router(stats_router.router, prefix="/api")
app.include_router(credits_router.router, prefix="/api")
app.include_router(notifications_router.router, prefix="/api")
app.include_router(calendar_router.router, prefix="/api")
app.include_router(billing_router.router, prefix="/api")


# --- Debug route for visibility ---
@app.get("/debug/routes")
def list_routes():
    """List all registered API routes."""
    return [
        {
            "path": route.path,
            "name": route.name,
            "methods": list(route.methods),
        }
        for route in app.routes
        if isinstance(route, APIRoute)
    ]
