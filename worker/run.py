import time

from kickbook.app.db import SessionLocal
from kickbook.app.services.notifications import send_match_reminders_batch
from kickbook.app.services.weather import update_weather_forecasts
from kickbook.app.settings import settings
from kickbook.app.utils.logger import setup_logger

logger = setup_logger("worker")

# Scheduled jobs: (name, interval seconds, job(db) -> dict)
JOBS = [
    ("reminders", settings.REMINDER_INTERVAL_SEC, send_match_reminders_batch),
    ("weather", settings.WEATHER_INTERVAL_SEC, update_weather_forecasts),
]


def tick(last_run: dict, now: float) -> None:
    for name, interval, job in JOBS:
        # never-run jobs are due on the first tick
        if name in last_run and now - last_run[name] < interval:
            continue
        last_run[name] = now
        db = SessionLocal()
        try:
            result = job(db)
            logger.info("[worker] %s -> %s", name, result)
        except Exception:
            logger.exception("[worker] %s failed", name)
            db.rollback()
        finally:
            db.close()


if __name__ == "__main__":
    logger.info("[worker] starting (reminders every %ss, weather every %ss)",
                settings.REMINDER_INTERVAL_SEC, settings.WEATHER_INTERVAL_SEC)
    last_run: dict = {}
    while True:
        tick(last_run, time.monotonic())
        time.sleep(60)
