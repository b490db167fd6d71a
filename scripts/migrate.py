"""Run or create Alembic migrations for the scheduling database.

Usage:
    python scripts/migrate.py                    upgrade to head
    python scripts/migrate.py create <message>   autogenerate a revision
    python scripts/migrate.py downgrade <rev>    step back to <rev>
    python scripts/migrate.py current            show the applied revision
"""

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.exc import SQLAlchemyError

ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"


def _config() -> Config:
    return Config(str(ALEMBIC_INI))


def upgrade(revision: str = "head") -> None:
    """Apply migrations up to ``revision``."""
    try:
        print(f"Upgrading schema to {revision}...")
        command.upgrade(_config(), revision)
        print("✓ Schema is up to date")
    except SQLAlchemyError as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        sys.exit(1)


def downgrade(revision: str) -> None:
    """Revert migrations down to ``revision``."""
    try:
        print(f"Downgrading schema to {revision}...")
        command.downgrade(_config(), revision)
        print("✓ Downgrade complete")
    except SQLAlchemyError as e:
        print(f"✗ Downgrade failed: {e}", file=sys.stderr)
        sys.exit(1)


def create_migration(message: str) -> None:
    """Autogenerate a revision against ``consultorio.models.metadata``."""
    try:
        print(f"Creating migration: {message}")
        command.revision(_config(), message=message, autogenerate=True)
        print("✓ Migration created")
    except SQLAlchemyError as e:
        print(f"✗ Migration creation failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    args = sys.argv[1:]
    if not args:
        upgrade()
    elif args[0] == "create" and len(args) > 1:
        create_migration(" ".join(args[1:]))
    elif args[0] == "downgrade" and len(args) == 2:
        downgrade(args[1])
    elif args[0] == "current":
        command.current(_config(), verbose=True)
    else:
        print(__doc__)
        sys.exit(2)
