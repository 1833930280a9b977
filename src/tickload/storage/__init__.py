from __future__ import annotations

from pathlib import Path

from tickload.storage.duckdb_store import Storage


def default_storage() -> Storage:
    return Storage(Path(".tickload/tickload.duckdb"))


__all__ = ["Storage", "default_storage"]
