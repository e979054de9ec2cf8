"""Run the periodic booking jobs once.

Meant to be fired every minute by an external scheduler (cron, a serverless
timer, ...).

Usage:
    python -m clinic_backend.run_jobs
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.core import config
from clinic_backend.database import SessionLocal
from clinic_backend.jobs.reminders import send_video_reminders
from clinic_backend.scheduling.slot_generation import cleanup_expired_locks

logger = logging.getLogger(__name__)


def run_once() -> dict[str, int]:
    db = SessionLocal()
    try:
        expired_locks = cleanup_expired_locks(db)
        reminders_sent = send_video_reminders(db)
    finally:
        db.close()

    return {"expired_locks": expired_locks, "reminders_sent": reminders_sent}


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    try:
        summary = run_once()
    except SQLAlchemyError:
        logger.exception("Booking jobs failed. Check DATABASE_URL and Postgres credentials.")
        sys.exit(1)

    logger.info(
        "Removed %d expired slot locks, sent %d video reminders",
        summary["expired_locks"],
        summary["reminders_sent"],
    )


if __name__ == "__main__":
    main()
