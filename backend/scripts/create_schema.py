"""
Simple helper to create the execution log table using SQLAlchemy metadata.

Usage:
    cd backend
    source .venv/bin/activate
    DOCBRIDGE_DATABASE_URL=sqlite:///./docbridge.db python scripts/create_schema.py
"""

import pathlib
import sys

BACKEND_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from docbridge.core.db import create_all  # noqa: E402


def main() -> None:
    create_all()


if __name__ == "__main__":
    main()
