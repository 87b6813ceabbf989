"""Insert the default credit packages: python -m app.seed"""
import logging

from app.core.database import SessionLocal, init_db
from app.core.log import setup_logging
from app.services.packages import seed_credit_packages


logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging()
    init_db()
    db = SessionLocal()
    try:
        count = seed_credit_packages(db)
        logger.info("Seeded %s credit packages", count)
    finally:
        db.close()


if __name__ == "__main__":
    main()
