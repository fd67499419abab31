from datetime import datetime, timedelta

import requests

from kickbook.app import crud
from kickbook.app.models import Notification, PlayerBooking, PB_CONFIRMED
from kickbook.app.services import weather
from kickbook.app.util import utcnow

from .conftest import make_team, make_booking, make_user


def _without_stamp(snapshot):
    return {k: v for k, v in snapshot.items() if k != "fetched_at"}


def test_seasonal_estimate_is_stable():
    when = datetime(2030, 1, 12, 10)
    first = weather.seasonal_estimate("Leeds", when)
    second = weather.seasonal_estimate("leeds", when)

    assert _without_stamp(first) == _without_stamp(second)
    assert first["source"] == "estimate"
    assert 0 <= first["precipitation"] <= 100


def test_estimate_used_without_api_key(monkeypatch):
    monkeypatch.setattr(weather.settings, "OPENWEATHER_API_KEY", "")
    forecast = weather.fetch_weather_forecast("Leeds", utcnow() + timedelta(days=1))
    assert forecast["source"] == "estimate"


def test_provider_failure_falls_back_to_default(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(weather.settings, "OPENWEATHER_API_KEY", "test-key")
    monkeypatch.setattr(weather.requests, "get", boom)

    forecast = weather.fetch_weather_forecast("Leeds", utcnow() + timedelta(days=1))

    assert forecast["source"] == "default"
    assert forecast["condition"] == "unknown"


def test_classify_openweather_entries():
    rain = {"weather": [{"main": "Rain", "id": 500, "description": "light rain"}]}
    storm = {"weather": [{"main": "Thunderstorm", "id": 211, "description": "thunderstorm"}]}
    few_clouds = {"weather": [{"main": "Clouds", "id": 801, "description": "few clouds"}], "clouds": {"all": 20}}

    assert weather._classify(rain) == ("rain", "Light rain", "rainy")
    assert weather._classify(storm)[0] == "heavy_rain"
    assert weather._classify(few_clouds)[0] == "partly_cloudy"


def test_booking_weather_is_cached(db, monkeypatch):
    team = make_team(db)
    booking = make_booking(db, team, start=utcnow() + timedelta(days=2))
    calls = []

    def fake_fetch(location, when):
        calls.append(location)
        return weather.default_forecast(when)

    monkeypatch.setattr(weather, "fetch_weather_forecast", fake_fetch)

    weather.get_weather_for_booking(db, booking.id)
    weather.get_weather_for_booking(db, booking.id)
    assert len(calls) == 1

    # stale after the cache window
    later = utcnow() + timedelta(hours=weather.settings.WEATHER_CACHE_HOURS + 1)
    weather.get_weather_for_booking(db, booking.id, now=later)
    assert len(calls) == 2


def test_update_alerts_when_weather_turns_bad(db, monkeypatch):
    team = make_team(db)
    booking = make_booking(db, team, start=utcnow() + timedelta(days=2))
    player = make_user(db, team=team)
    db.add(PlayerBooking(player_id=player.id, booking_id=booking.id, status=PB_CONFIRMED))
    db.commit()
    crud.set_booking_weather(db, booking.id, {"condition": "clear"})

    def rainy(location, when):
        snap = weather.default_forecast(when)
        snap.update(condition="heavy_rain", condition_description="Heavy rain")
        return snap

    monkeypatch.setattr(weather, "fetch_weather_forecast", rainy)

    first = weather.update_weather_forecasts(db)
    second = weather.update_weather_forecasts(db)

    assert first == {"updated": 1, "alerts": 1}
    # unchanged condition: no repeat alert
    assert second == {"updated": 1, "alerts": 0}
    alerts = db.query(Notification).filter_by(user_id=player.id, type="weather_alert").count()
    assert alerts == 1
