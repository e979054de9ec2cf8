"""Create a doctor account that can log in to the booking API.

Usage:
    python -m clinic_backend.create_doctor --email dr.rao@clinic.example --name "Dr. Rao"

The password is prompted for unless ``--password`` is given.
"""
import argparse
import getpass
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.passwords import hash_password
from clinic_backend.core import config
from clinic_backend.database import SessionLocal
from clinic_backend.models.doctor import Doctor

logger = logging.getLogger(__name__)


class DoctorExistsError(Exception):
    pass


def create_doctor(
    db: Session,
    email: str,
    full_name: str,
    password: str,
    tenant_id: str | None = None,
    phone: str | None = None,
    role: str = "doctor",
) -> Doctor:
    email = email.strip().lower()
    if db.query(Doctor.id).filter(Doctor.email == email).first() is not None:
        raise DoctorExistsError(f"A doctor with email {email} already exists.")

    doctor = Doctor(
        tenant_id=tenant_id or config.DEFAULT_TENANT_ID,
        email=email,
        full_name=full_name.strip(),
        phone=phone,
        hashed_password=hash_password(password),
        role=role,
        is_active=True,
    )
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create a doctor account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", required=True, help="Display name, e.g. 'Dr. Rao'")
    parser.add_argument("--password", help="Prompted for when omitted")
    parser.add_argument("--tenant-id", help="Defaults to DEFAULT_TENANT_ID")
    parser.add_argument("--phone", help="WhatsApp number in E.164 format")
    parser.add_argument("--role", default="doctor", choices=("doctor", "admin"))
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    password = args.password or getpass.getpass("Password: ")

    db = SessionLocal()
    try:
        doctor = create_doctor(
            db,
            email=args.email,
            full_name=args.name,
            password=password,
            tenant_id=args.tenant_id,
            phone=args.phone,
            role=args.role,
        )
    except DoctorExistsError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except SQLAlchemyError:
        logger.exception("Could not create doctor. Check DATABASE_URL and Postgres credentials.")
        sys.exit(1)
    finally:
        db.close()

    logger.info("Created doctor %s (id %s) in tenant %s", doctor.email, doctor.id, doctor.tenant_id)


if __name__ == "__main__":
    main()
