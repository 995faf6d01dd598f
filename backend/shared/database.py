import os
import logging
from functools import lru_cache

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_database_url(service_name: str) -> str:
    """Build the PostgreSQL URL for a service from its environment.

    A complete ``{SERVICE}_DATABASE_URL`` wins over the individual
    ``{SERVICE}_DB_*`` parts.
    """
    svc = service_name.upper()

    full_url = os.getenv(f"{svc}_DATABASE_URL")
    if full_url:
        logger.info(f"Using explicit database URL for {service_name}")
        return full_url

    host = os.getenv(f"{svc}_DB_HOST", os.getenv("DATABASE_HOST", "localhost"))
    port = int(os.getenv(f"{svc}_DB_PORT", os.getenv("DATABASE_PORT", "5432")))
    user = os.getenv(f"{svc}_DB_USER", f"{service_name}_user")
    password = os.getenv(f"{svc}_DB_PASSWORD")
    name = os.getenv(f"{svc}_DB_NAME", f"{service_name}_db")
    sslmode = os.getenv(f"{svc}_DB_SSLMODE", os.getenv("DATABASE_SSLMODE", "prefer"))

    if password is None:
        logger.error("Missing password for %s; please set %s_DB_PASSWORD", service_name, svc)
        raise EnvironmentError(f"{svc}_DB_PASSWORD is required")

    url = f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"

    logger.info(f"Database URL for {service_name}: postgresql://{user}@{host}:{port}/{name}")

    return url


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")
