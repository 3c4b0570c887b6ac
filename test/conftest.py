"""Pytest configuration for the LogForge test suite."""

import os
import sys
from pathlib import Path
from typing import Generator

import pytest


def _ensure_test_env() -> None:
    """Seed required environment variables for tests."""
    os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
    os.environ.setdefault("LOGFORGE_RETRY_DELAY_SECONDS", "0")


_ensure_test_env()

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from models import Base, Tenant  # noqa: E402


@pytest.fixture()
def sqlite_session_factory(tmp_path: Path) -> Generator[sessionmaker, None, None]:
    """Provide a sqlite session factory backed by a temp file."""
    db_path = tmp_path / "logforge.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def make_tenant(sqlite_session_factory):
    """Return a helper that inserts a tenant and returns its string id."""

    def _make(
        name: str,
        *,
        status: str = "active",
        base_url: str = "http://logs.test",
        api_key: str = "key",
    ) -> str:
        with sqlite_session_factory() as session:
            tenant = Tenant(
                name=name,
                status=status,
                external_api_base_url=base_url,
                api_key=api_key,
            )
            session.add(tenant)
            session.commit()
            return str(tenant.id)

    return _make
