# jinnie/database.py
"""
Tables kept as CSV files (or xlsx, if a table file is configured that way)
under DATA_DIR, read with pandas as all-string frames.

Reads are lock-free: writers replace the file atomically, so a reader sees the
old table or the new one. Every read-modify-write holds the table's FileLock,
which also serializes worker processes sharing the directory.

    from jinnie.database import db
    db.get_record("wishlists", "share_token", token)
    db.update_record_if("wishes", "id", wish_id, {"status": "available", "version": "3"}, {...})
"""

from contextlib import contextmanager
import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
import uuid

import pandas as pd
from filelock import FileLock

from jinnie.config import settings

DATA_DIR = Path(settings.DATA_DIR)
if not DATA_DIR.exists():
    DATA_DIR.mkdir(parents=True, exist_ok=True)

EXCEL_SUFFIXES = (".xls", ".xlsx")


class ConditionFailed(Exception):
    """update_record_if found the row, but not in the expected state."""

    def __init__(self, current: Dict[str, Any]):
        super().__init__("Stored record does not match the expected values")
        self.current = current


def _table_files() -> Dict[str, str]:
    return {
        "users": settings.USERS_FILE,
        "wishlists": settings.WISHLISTS_FILE,
        "wishes": settings.WISHES_FILE,
    }


def _load(path: Path) -> pd.DataFrame:
    if not path.exists():
        return pd.DataFrame()
    if path.suffix.lower() in EXCEL_SUFFIXES:
        return pd.read_excel(path, dtype=str).fillna("")
    try:
        return pd.read_csv(path, dtype=str).fillna("")
    except pd.errors.EmptyDataError:
        return pd.DataFrame()


def _store(path: Path, df: pd.DataFrame) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    if path.suffix.lower() in EXCEL_SUFFIXES:
        df.to_excel(tmp, index=False, engine="openpyxl")
    else:
        df.to_csv(tmp, index=False)
    os.replace(tmp, path)


def _as_record(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (None if pd.isna(v) else v) for k, v in row.items()}


def _text(v: Any) -> str:
    return "" if v is None else str(v)


def _first_match(df: pd.DataFrame, key: str, value: Any) -> Optional[Any]:
    """Index label of the first row whose `key` column equals `value` as text."""
    if df.empty or key not in df.columns:
        return None
    hits = df.index[df[key].astype(str) == str(value)]
    return hits[0] if len(hits) else None


class FileBackedDB:
    def __init__(self, data_dir: Path = DATA_DIR):
        self.data_dir = Path(data_dir)

    def path_for(self, table: str) -> Path:
        """`wishes` -> DATA_DIR/wishes.csv; explicit file names are used as given."""
        if table.endswith((".csv",) + EXCEL_SUFFIXES):
            return self.data_dir / table
        return self.data_dir / _table_files().get(table, f"{table}.csv")

    @contextmanager
    def _locked(self, table: str) -> Iterator[Path]:
        path = self.path_for(table)
        path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(str(path) + ".lock"):
            yield path

    # --- reads ---

    def list_records(self, table: str) -> List[Dict[str, Any]]:
        df = _load(self.path_for(table))
        return [_as_record(r) for r in df.to_dict(orient="records")]

    def find_records(self, table: str, key: str, value: Any) -> List[Dict[str, Any]]:
        """Every row whose `key` equals `value`, in file order."""
        df = _load(self.path_for(table))
        if df.empty or key not in df.columns:
            return []
        matched = df[df[key].astype(str) == str(value)]
        return [_as_record(r) for r in matched.to_dict(orient="records")]

    def get_record(self, table: str, key: str, value: Any) -> Optional[Dict[str, Any]]:
        df = _load(self.path_for(table))
        idx = _first_match(df, key, value)
        return None if idx is None else _as_record(df.loc[idx].to_dict())

    # --- writes ---

    def create_record(self, table: str, data: Dict[str, Any], id_field: str = "id") -> Dict[str, Any]:
        """Append a row, generating a uuid4 hex `id_field` when none is given."""
        if not data.get(id_field):
            data[id_field] = uuid.uuid4().hex
        row = {k: ("" if v is None else v) for k, v in data.items()}
        with self._locked(table) as path:
            df = _load(path)
            df = pd.concat([df, pd.DataFrame([row])], ignore_index=True, sort=False)
            _store(path, df.fillna(""))
        return data

    def update_record(self, table: str, key: str, value: Any, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.update_record_if(table, key, value, None, updates)

    def update_record_if(
        self,
        table: str,
        key: str,
        value: Any,
        expected: Optional[Dict[str, Any]],
        updates: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Compare-and-set on the first row where `key` == `value`.

        Every field in `expected` must still hold the given value (compared as
        text, a missing column reads as ""). Returns the updated row, or None if
        no row has that key; raises ConditionFailed carrying the current row if
        an expectation does not hold.
        """
        with self._locked(table) as path:
            df = _load(path)
            idx = _first_match(df, key, value)
            if idx is None:
                return None
            current = df.loc[idx].to_dict()
            stale = [f for f, want in (expected or {}).items() if _text(current.get(f)) != _text(want)]
            if stale:
                raise ConditionFailed(_as_record(current))
            for column, v in updates.items():
                if column not in df.columns:
                    df[column] = ""
                df.loc[idx, column] = _text(v)
            _store(path, df)
            return _as_record(df.loc[idx].to_dict())

    def delete_record(self, table: str, key: str, value: Any) -> bool:
        """Drop every row where `key` == `value`; True if anything went."""
        with self._locked(table) as path:
            df = _load(path)
            if df.empty or key not in df.columns:
                return False
            kept = df[df[key].astype(str) != str(value)]
            if len(kept) == len(df):
                return False
            _store(path, kept)
            return True


db = FileBackedDB()
