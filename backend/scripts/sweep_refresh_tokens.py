"""Delete expired refresh-token rows, once or on an interval.

Usage:
  python scripts/sweep_refresh_tokens.py            # single pass
  python scripts/sweep_refresh_tokens.py --every 3600
"""

import argparse
import logging
import time

from trackyr.config import settings
from trackyr.core.database import Database
from trackyr.core.security import PasswordHasher, TokenCodec
from trackyr.repositories.credential_store import SQLAlchemyCredentialStore
from trackyr.services.auth_service import AuthService

logger = logging.getLogger("trackyr.sweep")


def sweep_once(database: Database) -> int:
    db = database.session()
    try:
        service = AuthService(
            SQLAlchemyCredentialStore(db),
            TokenCodec.from_settings(settings),
            PasswordHasher(rounds=settings.BCRYPT_ROUNDS),
        )
        return service.sweep_expired_tokens()
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--every", type=float, default=0, help="repeat every N seconds")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    database = Database.from_settings(settings)
    database.connect()
    try:
        while True:
            removed = sweep_once(database)
            logger.info("Sweep removed %d expired refresh tokens", removed)
            if args.every <= 0:
                break
            time.sleep(args.every)
    except KeyboardInterrupt:
        pass
    finally:
        database.disconnect()


if __name__ == "__main__":
    main()
