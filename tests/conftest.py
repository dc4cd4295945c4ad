from collections.abc import Callable, Generator
import os
from pathlib import Path
import tempfile

os.environ.setdefault("DATABASE_URL", f"sqlite:///{Path(tempfile.mkdtemp()) / 'migrator-test.db'}")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("SERVICE_ID", "svc-test")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402


@pytest.fixture
def session_factory(tmp_path: Path) -> Generator[sessionmaker, None, None]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "migrations"
    directory.mkdir()
    return directory


@pytest.fixture
def write_migration(migrations_dir: Path) -> Callable[[str, str], Path]:
    def _write(name: str, script: str) -> Path:
        path = migrations_dir / name
        path.write_text(script, encoding="utf-8")
        return path

    return _write
