"""Database utilities and public entry points for the extraction job package."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import URL, make_url
from sqlmodel import SQLModel, create_engine

from ..config import PROJECT_ROOT, get_settings

_ENGINE = None


def _resolve_database_url(raw_url: str) -> tuple[str, dict[str, object]]:
    """Return a normalised database URL and connection arguments."""

    url: URL = make_url(raw_url)
    connect_args: dict[str, object] = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        database = url.database
        if database and database not in {":memory:"}:
            db_path = Path(database)
            if not db_path.is_absolute():
                db_path = (PROJECT_ROOT / db_path).resolve()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            url = url.set(database=str(db_path))
    return url.render_as_string(hide_password=False), connect_args


def get_engine():
    """Return the SQLModel engine for the jobs database."""

    global _ENGINE
    if _ENGINE is None:
        settings = get_settings()
        database_url, connect_args = _resolve_database_url(settings.database_url)
        _ENGINE = create_engine(database_url, connect_args=connect_args)
    return _ENGINE


def init_db() -> None:
    """Create job tables if they do not exist yet."""

    from . import models  # noqa: F401  Ensure SQLModel metadata is populated.

    SQLModel.metadata.create_all(get_engine())


def reset_engine() -> None:
    """Dispose of and forget the cached engine (useful for tests)."""

    global _ENGINE
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None


__all__ = ["get_engine", "init_db", "reset_engine"]
