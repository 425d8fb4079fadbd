import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union


def get_db_path() -> Path:
    db_dir = Path(os.getenv("DB_DIR", "./data"))
    db_dir.mkdir(parents=True, exist_ok=True)
    return db_dir / os.getenv("DB_FILE", "organ_care.sqlite")

def get_connection(db_path: Optional[Union[str, Path]] = None):
    con = sqlite3.connect(db_path or get_db_path(), check_same_thread=False)
    con.row_factory = sqlite3.Row
    return con

@contextmanager
def connect(db_path: Optional[Union[str, Path]] = None):
    con = get_connection(db_path)
    try:
        yield con
    finally:
        con.close()
