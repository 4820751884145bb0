"""Database session dependency for FastAPI.

A session is opened per request, committed when the handler returns,
rolled back on any exception, and always closed.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Get session factory from app state."""
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
