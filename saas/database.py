import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from saas.config import Settings
from saas.exceptions import ConnectionFailureError, DatabaseError, SaaSError

logger = logging.getLogger(__name__)

# Tables declared on TenantBase carry no schema; they resolve through the
# search_path of the tenant connection they are used on.
TenantBase = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the process-wide async engine shared by every tenant."""
    # Environment-based configurations
    if settings.environment == "production":
        engine = create_async_engine(
            settings.sqlalchemy_url,
            pool_size=settings.database_pool_size * 2,
            max_overflow=settings.database_max_overflow * 2,
            pool_timeout=settings.database_pool_timeout * 2,
            pool_recycle=1800,
            pool_pre_ping=True,
        )
    else:
        engine = create_async_engine(
            settings.sqlalchemy_url,
            echo=settings.debug,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,
        )
    logger.info(
        "Database engine created for %s@%s:%s/%s",
        settings.database_user,
        settings.database_host,
        settings.database_port,
        settings.database_name,
    )
    return engine


@contextmanager
def storage_errors(operation: str, on_conflict: SaaSError | None = None) -> Iterator[None]:
    """
    Tag storage failures raised inside the block with *operation* and re-raise
    them as typed errors.

    Args:
        operation: Short name of the operation, reported in error details
        on_conflict: Error raised instead of a generic DatabaseError when the
            block hits a unique/foreign-key violation

    Raises:
        ConnectionFailureError: pool exhaustion or network-level failure
        DatabaseError: any other SQLAlchemy error
    """
    try:
        yield
    except SaaSError:
        raise
    except IntegrityError as exc:
        if on_conflict is not None:
            raise on_conflict from exc
        logger.error("Integrity error during %s: %s", operation, exc.orig)
        raise DatabaseError(f"Integrity error during {operation}", operation=operation) from exc
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as exc:
        logger.error("Connection failure during %s: %s", operation, exc)
        raise ConnectionFailureError(f"Database unavailable during {operation}", operation=operation) from exc
    except SQLAlchemyError as exc:
        logger.error("Database error during %s: %s", operation, exc)
        raise DatabaseError(f"Database error during {operation}", operation=operation) from exc
