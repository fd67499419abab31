# kickbook/app/services/weather.py
"""
Match-day weather.

With OPENWEATHER_API_KEY set, forecasts come from OpenWeatherMap's 5 day /
3 hour forecast; otherwise (or for kick-offs past the forecast window) a
seasonal estimate is used. Snapshots are cached on `Booking.weather_data`.
"""
from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Optional

import requests
from sqlalchemy.orm import Session

from .. import crud
from ..models import Booking, PB_CONFIRMED
from ..settings import settings
from ..util import utcnow, to_naive_utc
from ..utils.logger import setup_logger
from . import notifications

logger = setup_logger(__name__)

# ---------------- Config ----------------
FORECAST_URL = "https://api.openweathermap.org/data/2.5/forecast"
FORECAST_WINDOW_DAYS = 5
TIMEOUT = 10

BAD_WEATHER = {"rain", "heavy_rain", "snow"}

_ISO = "%Y-%m-%dT%H:%M:%S"


def _snapshot(when: datetime, temperature: float, precipitation: int, wind_speed: float,
              humidity: int, condition: str, description: str, icon: str, source: str) -> dict:
    return {
        "date": when.strftime(_ISO),
        "temperature": round(float(temperature), 1),
        "precipitation": int(precipitation),     # chance, 0-100
        "wind_speed": round(float(wind_speed), 1),  # km/h
        "humidity": int(humidity),
        "condition": condition,
        "condition_description": description,
        "icon": icon,
        "source": source,
        "fetched_at": utcnow().strftime(_ISO),
    }


def default_forecast(when: datetime) -> dict:
    return _snapshot(when, 15, 20, 10, 60, "unknown", "Weather data not available", "question_mark", "default")


# ---------------- Seasonal estimate ----------------

def seasonal_estimate(location: str, when: datetime) -> dict:
    """
    Plausible weather for the month, stable for a given location and day.
    """
    rng = random.Random(f"{location.lower()}|{when.date().isoformat()}")
    month = when.month
    winter = month in (12, 1, 2)
    spring = month in (3, 4, 5)
    summer = month in (6, 7, 8)

    if winter:
        temp_base, precip_base = 5, 40
    elif spring:
        temp_base, precip_base = 15, 50
    elif summer:
        temp_base, precip_base = 25, 20
    else:
        temp_base, precip_base = 15, 60

    temperature = temp_base + rng.uniform(-5, 5)
    precipitation = min(100, max(0, precip_base + rng.uniform(-20, 20)))

    humidity_base = 60
    if precipitation > 50:
        humidity_base = 80
    if summer and precipitation < 30:
        humidity_base = 50
    if winter:
        humidity_base = 70
    humidity = min(100, max(0, humidity_base + rng.uniform(-10, 10)))
    wind_speed = rng.uniform(0, 30)

    if precipitation < 20:
        condition, description, icon = "clear", "Clear skies", "wb_sunny"
    elif precipitation < 40:
        condition, description, icon = "partly_cloudy", "Partly cloudy", "partly_cloudy_day"
    elif precipitation < 60:
        condition, description, icon = "cloudy", "Cloudy", "cloud"
    elif precipitation < 80:
        condition, description, icon = "rain", "Rain showers", "rainy"
    else:
        condition, description, icon = "heavy_rain", "Heavy rain", "thunderstorm"

    if winter and temperature < 3 and precipitation > 50:
        condition, description, icon = "snow", "Snow", "ac_unit"

    return _snapshot(
        when, temperature, round(precipitation), wind_speed, round(humidity),
        condition, description, icon, "estimate",
    )


# ---------------- OpenWeatherMap ----------------

def _classify(entry: dict) -> tuple[str, str, str]:
    w = (entry.get("weather") or [{}])[0]
    main = (w.get("main") or "").lower()
    wid = int(w.get("id") or 0)
    desc = (w.get("description") or "").capitalize() or "Unknown"
    clouds = (entry.get("clouds") or {}).get("all", 0)

    if main == "thunderstorm" or wid in (502, 503, 504, 522, 531):
        return "heavy_rain", desc, "thunderstorm"
    if main in ("rain", "drizzle"):
        return "rain", desc, "rainy"
    if main == "snow":
        return "snow", desc, "ac_unit"
    if main == "clear":
        return "clear", desc, "wb_sunny"
    if main == "clouds":
        if clouds < 50:
            return "partly_cloudy", desc, "partly_cloudy_day"
        return "cloudy", desc, "cloud"
    return "cloudy", desc, "cloud"


def _closest_entry(entries: list[dict], when: datetime) -> Optional[dict]:
    best, best_gap = None, None
    for e in entries:
        dt = e.get("dt")
        if dt is None:
            continue
        gap = abs((datetime.fromtimestamp(dt, timezone.utc).replace(tzinfo=None) - when).total_seconds())
        if best_gap is None or gap < best_gap:
            best, best_gap = e, gap
    return best


def _openweather_forecast(location: str, when: datetime) -> dict:
    params = {"q": location, "appid": settings.OPENWEATHER_API_KEY, "units": "metric"}
    r = requests.get(FORECAST_URL, params=params, timeout=TIMEOUT)
    r.raise_for_status()
    entry = _closest_entry(r.json().get("list") or [], when)
    if entry is None:
        raise ValueError(f"no forecast entries for {location!r}")

    main = entry.get("main") or {}
    condition, description, icon = _classify(entry)
    return _snapshot(
        when,
        main.get("temp", 15),
        round(float(entry.get("pop", 0)) * 100),
        float((entry.get("wind") or {}).get("speed", 0)) * 3.6,  # m/s -> km/h
        main.get("humidity", 60),
        condition, description, icon, "openweathermap",
    )


def fetch_weather_forecast(location: str, when: datetime) -> dict:
    """Forecast for a kick-off. Never raises: errors yield the neutral default."""
    when = to_naive_utc(when)
    try:
        in_window = when - utcnow() <= timedelta(days=FORECAST_WINDOW_DAYS)
        if settings.OPENWEATHER_API_KEY and in_window:
            forecast = _openweather_forecast(location, when)
        else:
            forecast = seasonal_estimate(location, when)
        logger.debug("[weather] %s @ %s -> %s", location, when, forecast["condition"])
        return forecast
    except Exception as e:
        logger.warning("[weather] forecast failed for %s @ %s: %s", location, when, e)
        return default_forecast(when)


# ---------------- Booking cache ----------------

def _is_fresh(snapshot: Optional[dict], now: datetime) -> bool:
    if not snapshot or not snapshot.get("fetched_at"):
        return False
    try:
        fetched = datetime.strptime(snapshot["fetched_at"], _ISO)
    except (TypeError, ValueError):
        return False
    return now - fetched < timedelta(hours=settings.WEATHER_CACHE_HOURS)


def get_weather_for_booking(db: Session, booking_id: int, now: Optional[datetime] = None) -> Optional[dict]:
    now = now or utcnow()
    booking = crud.get_booking(db, booking_id)
    if not booking:
        logger.warning("[weather] booking %s not found", booking_id)
        return None

    if _is_fresh(booking.weather_data, now):
        return booking.weather_data

    forecast = fetch_weather_forecast(booking.location, booking.start_time)
    crud.set_booking_weather(db, booking.id, forecast)
    return forecast


def _alert_players(db: Session, booking: Booking, forecast: dict) -> int:
    sent = 0
    for pb in crud.get_player_bookings_by_booking(db, booking.id):
        if pb.status != PB_CONFIRMED:
            continue
        if notifications.send_weather_alert(db, pb.player_id, booking, forecast["condition_description"]):
            sent += 1
    return sent


def update_weather_forecasts(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Refresh every active booking kicking off within the look-ahead window
    and warn confirmed players when the outlook turns bad.
    """
    now = now or utcnow()
    horizon = now + timedelta(days=settings.WEATHER_LOOKAHEAD_DAYS)
    bookings = crud.get_bookings_between(db, now, horizon, active_only=True)
    logger.info("[weather] updating forecasts for %s upcoming bookings", len(bookings))

    updated = alerts = 0
    for booking in bookings:
        previous = (booking.weather_data or {}).get("condition")
        forecast = fetch_weather_forecast(booking.location, booking.start_time)
        crud.set_booking_weather(db, booking.id, forecast)
        updated += 1
        if forecast["condition"] in BAD_WEATHER and forecast["condition"] != previous:
            alerts += _alert_players(db, booking, forecast)

    logger.info("[weather] update complete: %s updated, %s alerts", updated, alerts)
    return {"updated": updated, "alerts": alerts}
