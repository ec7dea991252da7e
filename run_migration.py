"""
Apply a SQL migration to DATABASE_URL
Usage: python run_migration.py migrations/001_session_pipeline.sql
"""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from sqlalchemy import text

from sessionpay.database import engine

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def split_statements(sql: str) -> list[str]:
    """Split a script on ';', dropping comment lines and empty statements"""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def apply_migration(path: Path) -> int:
    """Run every statement of the file in one transaction; returns the statement count"""
    statements = split_statements(path.read_text())
    logger.info(f"📄 {path.name}: {len(statements)} statement(s)")

    with engine.begin() as conn:
        for number, statement in enumerate(statements, 1):
            logger.debug(f"[{number}/{len(statements)}] {statement.splitlines()[0]}")
            conn.execute(text(statement))
    return len(statements)


def main(argv: list[str]) -> int:
    if len(argv) != 1:
        logger.error("Usage: python run_migration.py <migration_file.sql>")
        return 1

    path = Path(argv[0])
    if not path.is_file():
        logger.error(f"❌ Migration file not found: {path}")
        return 1

    try:
        count = apply_migration(path)
    except Exception as e:
        logger.error(f"❌ Migration {path.name} rolled back: {e}")
        return 1

    logger.info(f"✅ Applied {count} statement(s) from {path.name}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
