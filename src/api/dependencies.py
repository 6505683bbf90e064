"""
Request-scoped wiring for the lesson and financial routes.

Every service gets a LessonStore, the caller's identity from X-Coach-Id,
and a change notifier. Tests replace get_settings and get_lesson_store
through app.dependency_overrides.
"""

import logging
from typing import Annotated, Generator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.billing import BookingEngine, LessonLifecycle, LessonStore
from ..core.financials import FinancialAggregator
from ..infrastructure.snowflake.client import SnowflakeConfig, get_snowflake_connection
from ..infrastructure.snowflake.repositories.lessons import (
    MockLessonRepository,
    create_lesson_repository,
)

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Global mock repository (shared across requests so data persists in dev)
_mock_repository: Optional[MockLessonRepository] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    The API key identifies the calling application (the web frontend),
    not the coach. The coach comes from X-Coach-Id, set by the frontend
    after its own session check.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


class HeaderIdentity:
    """IdentityProvider backed by the X-Coach-Id request header."""

    def __init__(self, raw_coach_id: Optional[str]) -> None:
        self._raw = raw_coach_id

    def resolve_caller_identity(self) -> Optional[UUID]:
        if not self._raw:
            return None
        try:
            return UUID(self._raw)
        except ValueError:
            logger.warning("Malformed X-Coach-Id header")
            return None


def get_identity(
    api_key: Annotated[str, Depends(verify_api_key)],
    x_coach_id: Annotated[Optional[str], Header()] = None,
) -> HeaderIdentity:
    return HeaderIdentity(x_coach_id)


class LoggingChangeNotifier:
    """
    ChangeNotifier that records which views went stale.

    The frontend refetches on its own; this keeps an audit trail of what
    each write invalidated.
    """

    def invalidate(self, coach_id: UUID, views: list[str]) -> None:
        logger.debug(
            "Views invalidated",
            extra={"coach_id": str(coach_id), "views": views},
        )


# ---------------------------------------------------------------------------
# Store and Service Dependencies
# ---------------------------------------------------------------------------

def snowflake_config(settings: Settings) -> SnowflakeConfig:
    return SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )


def get_lesson_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[LessonStore, None, None]:
    """
    Yield the LessonStore for one request.

    Outside mock mode a Snowflake connection is opened for the request
    and closed once the response is sent. Mock mode hands every request
    the same in-memory repository, so bookings survive until restart.
    """
    global _mock_repository

    if settings.snowflake_mock_mode:
        if _mock_repository is None:
            _mock_repository = create_lesson_repository(mock_mode=True)
            logger.info("Created shared mock lesson repository")
        yield _mock_repository
    else:
        with get_snowflake_connection(snowflake_config(settings)) as conn:
            logger.debug("Created LessonRepository with Snowflake connection")
            yield create_lesson_repository(conn)


def get_booking_engine(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[LessonStore, Depends(get_lesson_store)],
    identity: Annotated[HeaderIdentity, Depends(get_identity)],
) -> BookingEngine:
    return BookingEngine(
        store=store,
        identity=identity,
        notifier=LoggingChangeNotifier(),
        limits=settings.booking_limits,
    )


def get_lesson_lifecycle(
    store: Annotated[LessonStore, Depends(get_lesson_store)],
    identity: Annotated[HeaderIdentity, Depends(get_identity)],
) -> LessonLifecycle:
    return LessonLifecycle(store=store, identity=identity, notifier=LoggingChangeNotifier())


def get_financial_aggregator(
    store: Annotated[LessonStore, Depends(get_lesson_store)],
    identity: Annotated[HeaderIdentity, Depends(get_identity)],
) -> FinancialAggregator:
    return FinancialAggregator(store=store, identity=identity)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
BookingEngineDep = Annotated[BookingEngine, Depends(get_booking_engine)]
LessonLifecycleDep = Annotated[LessonLifecycle, Depends(get_lesson_lifecycle)]
FinancialAggregatorDep = Annotated[FinancialAggregator, Depends(get_financial_aggregator)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
