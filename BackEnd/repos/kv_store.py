import sqlite3
import threading
import zlib
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

from BackEnd.core.exceptions import StoreError

SCHEMA = """
CREATE TABLE IF NOT EXISTS compressed (
	key TEXT PRIMARY KEY,
	value BLOB NOT NULL,
	updated_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_compressed_updated_at ON compressed(updated_at);
"""


class KeyValueStore(Protocol):
	def get(self, key: str) -> Optional[str]: ...

	def put(self, key: str, value: str, updated_at: int) -> None: ...

	def delete(self, key: str) -> None: ...


class SqliteKeyValueStore:
	"""String values stored zlib-compressed in a single SQLite table."""

	def __init__(self, dbfile):
		self.dbfile = Path(dbfile)
		self.dbfile.parent.mkdir(parents=True, exist_ok=True)
		with self.connect() as conn:
			conn.executescript(SCHEMA)

	def connect(self):
		"""Open SQLite connection. Each call gets its own, so any thread may use the store."""
		try:
			conn = sqlite3.connect(self.dbfile)
		except sqlite3.Error as e:
			raise StoreError(f"cannot open {self.dbfile}: {e}") from e
		conn.row_factory = sqlite3.Row
		return conn

	def get(self, key):
		try:
			with self.connect() as conn:
				row = conn.execute("SELECT value FROM compressed WHERE key=?", (key,)).fetchone()
		except sqlite3.Error as e:
			raise StoreError(f"read failed: {e}", key) from e
		if row is None:
			return None
		try:
			return zlib.decompress(row["value"]).decode("utf-8")
		except (zlib.error, UnicodeDecodeError) as e:
			raise StoreError(f"corrupt value: {e}", key) from e

	def put(self, key, value, updated_at):
		blob = zlib.compress(value.encode("utf-8"))
		try:
			with self.connect() as conn:
				conn.execute(
					"""
					INSERT INTO compressed (key, value, updated_at) VALUES (?, ?, ?)
					ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
					""",
					(key, blob, int(updated_at))
				)
		except sqlite3.Error as e:
			raise StoreError(f"write failed: {e}", key) from e

	def delete(self, key):
		try:
			with self.connect() as conn:
				conn.execute("DELETE FROM compressed WHERE key=?", (key,))
		except sqlite3.Error as e:
			raise StoreError(f"delete failed: {e}", key) from e


class MemoryKeyValueStore:
	"""Dict-backed store for tests and throwaway runs."""

	def __init__(self):
		self._data: Dict[str, Tuple[str, int]] = {}
		self._lock = threading.Lock()

	def get(self, key):
		with self._lock:
			entry = self._data.get(key)
		return entry[0] if entry else None

	def put(self, key, value, updated_at):
		with self._lock:
			self._data[key] = (value, int(updated_at))

	def delete(self, key):
		with self._lock:
			self._data.pop(key, None)

	def keys(self):
		with self._lock:
			return sorted(self._data)
