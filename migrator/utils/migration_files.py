import logging
from pathlib import Path
import sqlite3

logger = logging.getLogger(__name__)


def list_migration_files(migrations_path: str | Path, suffix: str) -> list[str]:
    directory = Path(migrations_path)
    names = sorted(
        entry.name for entry in directory.iterdir() if entry.is_file() and entry.name.endswith(suffix)
    )
    logger.info("list_migration_files path=%s suffix=%s count=%s", directory, suffix, len(names))
    return names


def read_migration_script(migrations_path: str | Path, filename: str) -> str:
    script = (Path(migrations_path) / filename).read_text(encoding="utf-8")
    logger.info("read_migration_script filename=%s length=%s", filename, len(script))
    return script


def _has_sql(chunk: str) -> bool:
    for line in chunk.splitlines():
        stripped = line.strip().strip(";").strip()
        if stripped and not stripped.startswith("--"):
            return True
    return False


def split_sqlite_script(script: str) -> list[str]:
    """Split a script into statements that sqlite3 can execute one at a time.

    A chunk ends at a ``;`` only once sqlite considers it a complete statement,
    so semicolons inside string literals and trigger bodies stay put.
    """
    statements: list[str] = []
    buffer = ""
    pieces = script.split(";")
    for index, piece in enumerate(pieces):
        buffer += piece
        if index < len(pieces) - 1:
            buffer += ";"
        if sqlite3.complete_statement(buffer):
            if _has_sql(buffer):
                statements.append(buffer.strip())
            buffer = ""
    if _has_sql(buffer):
        statements.append(buffer.strip())
    return statements
