import logging
import queue
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from BackEnd.core.clock import SystemClock

logger = logging.getLogger(__name__)


@dataclass
class _Op:
	kind: str  # 'put' or 'delete'
	key: str
	seq: int
	value: Optional[str] = None
	updated_at: int = 0


_STOP = object()


class WriteBehindWriter:
	"""Fire-and-forget persistence in front of a key-value store.

	``put``/``delete`` return immediately; one worker thread applies the
	operations in the order they were issued. Every operation gets a per-key
	sequence number and the worker drops any operation that a newer one on
	the same key has already superseded, so a slow write can never land on
	top of newer state. Store failures are logged and dropped.
	"""

	def __init__(self, store, clock=None, name="write-behind"):
		self.store = store
		self.clock = clock or SystemClock()
		self._queue: "queue.Queue" = queue.Queue()
		self._latest: Dict[str, int] = {}
		self._seq = 0
		self._lock = threading.Lock()
		self._closed = False
		self._worker = threading.Thread(target=self._run, name=name, daemon=True)
		self._worker.start()

	def put(self, key: str, value: str) -> None:
		self._submit("put", key, value)

	def delete(self, key: str) -> None:
		self._submit("delete", key)

	def get(self, key: str) -> Optional[str]:
		"""Read through to the store once pending writes have landed."""
		self.flush()
		return self.store.get(key)

	def flush(self) -> None:
		"""Block until every operation issued so far has been applied or dropped."""
		if self._worker.is_alive():
			self._queue.join()

	def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		self._queue.put(_STOP)
		self._worker.join()

	def _submit(self, kind, key, value=None):
		if self._closed:
			logger.warning("Write-behind closed; dropping %s of %r", kind, key)
			return
		with self._lock:
			self._seq += 1
			seq = self._seq
			self._latest[key] = seq
		self._queue.put(_Op(kind, key, seq, value, self.clock.now_ms()))

	def _is_superseded(self, op: _Op) -> bool:
		with self._lock:
			return self._latest.get(op.key, 0) > op.seq

	def _run(self):
		while True:
			op = self._queue.get()
			try:
				if op is _STOP:
					return
				if self._is_superseded(op):
					logger.debug("Skipping superseded %s of %r (seq %d)", op.kind, op.key, op.seq)
					continue
				if op.kind == "put":
					self.store.put(op.key, op.value, op.updated_at)
				else:
					self.store.delete(op.key)
			except Exception:
				# the worker must outlive any single failed write
				logger.warning("Persisting %s of %r failed", op.kind, op.key, exc_info=True)
			finally:
				self._queue.task_done()
