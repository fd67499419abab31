from datetime import datetime

import pytest

from kickbook.app.errors import ErrorKind, ExternalServiceError, ServiceError
from kickbook.app.models import BOOKING_CANCELED
from kickbook.app.services import calendar

from .conftest import make_team, make_booking, make_user


def test_ical_event(db):
    team = make_team(db, name="Tuesday Crew")
    booking = make_booking(
        db, team, start=datetime(2030, 3, 4, 19, 30),
        title="League night, week 3", location="Powerleague; Shoreditch",
    )

    ics = calendar.generate_ical_event(booking, team)

    assert ics.startswith("BEGIN:VCALENDAR\r\n")
    assert ics.endswith("END:VCALENDAR\r\n")
    assert f"UID:booking-{booking.id}@kickbook\r\n" in ics
    assert "DTSTART:20300304T193000Z" in ics
    assert "DTEND:20300304T203000Z" in ics
    assert "SUMMARY:League night\\, week 3" in ics
    assert "LOCATION:Powerleague\\; Shoreditch" in ics
    assert "STATUS:CONFIRMED" in ics


def test_ical_marks_canceled(db):
    team = make_team(db)
    booking = make_booking(db, team)
    booking.status = BOOKING_CANCELED
    db.commit()

    assert "STATUS:CANCELLED" in calendar.generate_ical_event(booking, team)


def test_long_lines_are_folded():
    line = "DESCRIPTION:" + "x" * 200
    folded = calendar._ics_fold(line)

    parts = folded.split("\r\n")
    assert all(len(p.encode("utf-8")) <= 75 for p in parts)
    assert all(p.startswith(" ") for p in parts[1:])
    assert "".join(p[1:] if i else p for i, p in enumerate(parts)) == line


def test_google_requires_configuration(monkeypatch):
    monkeypatch.setattr(calendar.settings, "GOOGLE_CLIENT_ID", "")
    with pytest.raises(ExternalServiceError):
        calendar.get_google_auth_url()


def test_google_auth_url(monkeypatch):
    monkeypatch.setattr(calendar.settings, "GOOGLE_CLIENT_ID", "cid")
    monkeypatch.setattr(calendar.settings, "GOOGLE_CLIENT_SECRET", "secret")

    url = calendar.get_google_auth_url("abc")

    assert url.startswith(calendar.GOOGLE_AUTH_URL)
    assert "client_id=cid" in url and "state=abc" in url and "access_type=offline" in url


def test_sync_without_integration(db):
    user = make_user(db)
    with pytest.raises(ServiceError) as exc:
        calendar.sync_user_calendar(db, user.id)
    assert exc.value.kind == ErrorKind.NOT_FOUND
