from collections.abc import Callable
from pathlib import Path

from migrator.utils.migration_files import list_migration_files, read_migration_script, split_sqlite_script


def test_list_migration_files_sorts_lexically(migrations_dir: Path, write_migration: Callable[[str, str], Path]) -> None:
    for name in ["0010_b.up.sql", "0001_a.up.sql", "0002_c.up.sql", "0002_c.down.sql"]:
        write_migration(name, "SELECT 1;")

    names = list_migration_files(migrations_dir, ".up.sql")

    assert names == ["0001_a.up.sql", "0002_c.up.sql", "0010_b.up.sql"]


def test_list_migration_files_is_not_numeric_aware(
    migrations_dir: Path,
    write_migration: Callable[[str, str], Path],
) -> None:
    for name in ["10_later.up.sql", "9_earlier.up.sql"]:
        write_migration(name, "SELECT 1;")

    assert list_migration_files(migrations_dir, ".up.sql") == ["10_later.up.sql", "9_earlier.up.sql"]


def test_read_migration_script_returns_full_text(
    migrations_dir: Path,
    write_migration: Callable[[str, str], Path],
) -> None:
    write_migration("0001_a.up.sql", "CREATE TABLE a (id INTEGER);\nCREATE TABLE b (id INTEGER);\n")

    script = read_migration_script(migrations_dir, "0001_a.up.sql")

    assert script == "CREATE TABLE a (id INTEGER);\nCREATE TABLE b (id INTEGER);\n"


def test_split_sqlite_script_keeps_literals_and_drops_comment_tail() -> None:
    script = "CREATE TABLE a (v TEXT); INSERT INTO a VALUES ('x;y');\n-- trailing note\n"

    assert split_sqlite_script(script) == [
        "CREATE TABLE a (v TEXT);",
        "INSERT INTO a VALUES ('x;y');",
    ]


def test_split_sqlite_script_accepts_missing_final_semicolon() -> None:
    assert split_sqlite_script("CREATE TABLE a (id INTEGER);\nCREATE TABLE b (id INTEGER)") == [
        "CREATE TABLE a (id INTEGER);",
        "CREATE TABLE b (id INTEGER)",
    ]


def test_split_sqlite_script_ignores_empty_statements() -> None:
    assert split_sqlite_script(";;\n  ;") == []
