from worker import run


def test_jobs_run_on_first_tick_then_wait(monkeypatch, session_factory):
    calls = []
    monkeypatch.setattr(run, "SessionLocal", session_factory)
    monkeypatch.setattr(run, "JOBS", [
        ("hourly", 3600, lambda db: calls.append("hourly") or {}),
        ("twice-daily", 43200, lambda db: calls.append("twice-daily") or {}),
    ])
    last_run = {}

    # a freshly booted host: monotonic clock well under either interval
    run.tick(last_run, 5.0)
    assert calls == ["hourly", "twice-daily"]

    run.tick(last_run, 65.0)
    assert calls == ["hourly", "twice-daily"]

    run.tick(last_run, 3605.0)
    assert calls == ["hourly", "twice-daily", "hourly"]


def test_failing_job_does_not_stop_others(monkeypatch, session_factory):
    calls = []

    def broken(db):
        raise RuntimeError("provider down")

    monkeypatch.setattr(run, "SessionLocal", session_factory)
    monkeypatch.setattr(run, "JOBS", [
        ("broken", 60, broken),
        ("ok", 60, lambda db: calls.append("ok") or {}),
    ])

    run.tick({}, 1.0)

    assert calls == ["ok"]
