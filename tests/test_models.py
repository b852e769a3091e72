import re
from pathlib import Path

from groupmatch.config import MIGRATIONS_DIR
from groupmatch.database import Base
from groupmatch import models  # noqa: F401  registers tables on Base.metadata

_CREATE = re.compile(r"CREATE TABLE IF NOT EXISTS (\w+) \((.*?)\n\);", re.S)


def _migration_columns() -> dict[str, set[str]]:
    sql = "\n".join(p.read_text(encoding="utf-8") for p in sorted(Path(MIGRATIONS_DIR).glob("*.sql")))
    tables: dict[str, set[str]] = {}
    for name, body in _CREATE.findall(sql):
        cols = set()
        for line in body.splitlines():
            line = line.strip()
            if not line or line.startswith("PRIMARY KEY"):
                continue
            cols.add(line.split()[0])
        tables[name] = cols
    return tables


def test_models_mirror_migration_tables():
    tables = _migration_columns()
    assert set(tables) == set(Base.metadata.tables)
    for name, table in Base.metadata.tables.items():
        assert {c.name for c in table.columns} == tables[name], name


def test_match_members_primary_key_is_membership_pair():
    table = Base.metadata.tables["match_members"]
    assert [c.name for c in table.primary_key.columns] == ["match_id", "user_id"]
