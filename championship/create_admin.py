from __future__ import annotations

import argparse
import logging

from sqlalchemy.exc import SQLAlchemyError

from championship.config import settings
from championship.database import Base, SessionLocal, engine
from championship.logging_config import setup_logging
from championship.services import ensure_admin_user


logger = logging.getLogger(__name__)


def create_admin_user(email: str, password: str) -> int:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user, created = ensure_admin_user(db, email, password)
        db.commit()
        if created:
            logger.info("Created admin user %s", user.email)
        else:
            logger.info("Granted admin to existing user %s and reset their password", user.email)
        return 0
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not create admin user %s", email)
        return 1
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create or promote a championship admin.")
    parser.add_argument("email")
    parser.add_argument("password")
    args = parser.parse_args(argv)

    setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    return create_admin_user(args.email, args.password)


if __name__ == "__main__":
    raise SystemExit(main())
