"""Request dependencies for FastAPI.

Provides database sessions and build strategies to route handlers via
FastAPI dependency injection.

Transaction boundaries are managed here:
- Session is created at request start
- On success (no exception): session is committed automatically
- On exception: session is rolled back automatically
- Session is closed after request completes
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from web2desk.builds.service import ConfigurationError
from web2desk.builds.strategies import BuildStrategy, get_strategy
from web2desk.config import Settings, get_settings
from web2desk.types import StrategyKind

StrategyResolver = Callable[[StrategyKind | None], BuildStrategy]


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Get session factory from app state.

    Args:
        request: FastAPI request object.

    Returns:
        SQLAlchemy session factory.
    """
    factory: Any = request.app.state.session_factory
    return factory  # type: ignore[no-any-return]


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Provide a database session for a request.

    Yields:
        Database session.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_app_settings() -> Settings:
    """Settings dependency; overridable in tests."""
    return get_settings()


def get_strategy_resolver(
    settings: Settings = Depends(get_app_settings),
) -> StrategyResolver:
    """Provide a function mapping a strategy kind to a configured strategy.

    Strategy construction errors surface as HTTP 500 with
    ``configuration_error``.
    """

    def resolve(kind: StrategyKind | None) -> BuildStrategy:
        try:
            return get_strategy(kind, settings=settings)
        except ConfigurationError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"code": e.code, "message": str(e)},
            ) from None

    return resolve


__all__ = [
    "StrategyResolver",
    "get_app_settings",
    "get_db",
    "get_session_factory",
    "get_strategy_resolver",
]
