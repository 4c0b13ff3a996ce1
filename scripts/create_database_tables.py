"""
Create Database Tables

Creates the ledger, alert, trigger ledger and scan run tables with
SQLAlchemy's create_all(). Existing tables are left untouched.
"""
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.dxbdata.db.session import create_all_tables, health_check
from src.dxbdata.utils.logger import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


def main() -> int:
    if not health_check():
        logger.error("database_unreachable")
        return 1

    create_all_tables()
    logger.info("database_setup_complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
