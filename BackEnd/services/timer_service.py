import json
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal, QTimer

from BackEnd.core.clock import SystemClock, ms_to_iso
from BackEnd.core.exceptions import StoreError
from BackEnd.core.models import finite_number

logger = logging.getLogger(__name__)

TIMER_KEY = "study-tracker-timer"
MS_PER_MINUTE = 60000


@dataclass(frozen=True)
class TimerResult:
	subject_id: str
	duration: int  # whole minutes, never below 1
	started_at: str
	ended_at: str


def elapsed_to_minutes(elapsed_ms) -> int:
	"""Round half up to whole minutes; anything that ran counts as at least one."""
	return max(1, int(math.floor(elapsed_ms / MS_PER_MINUTE + 0.5)))


class TimerService(QObject):
	"""The study stopwatch: idle -> running <-> paused -> idle.

	Elapsed time is always derived from wall-clock timestamps, never counted
	up tick by tick, so it survives restarts. Each transition writes the
	timer record behind to the store; stop/reset delete it.
	"""

	tick = Signal(object)  # emits elapsed milliseconds
	state_changed = Signal(str)  # emits 'idle', 'running', 'paused'

	def __init__(self, writer, clock=None, tick_interval_ms=100,
			subject_validator: Optional[Callable[[str], bool]] = None):
		super().__init__()
		self.writer = writer
		self.clock = clock or SystemClock()
		self.subject_validator = subject_validator
		self._clear()
		self._timer = QTimer(self)
		self._timer.setInterval(tick_interval_ms)
		self._timer.timeout.connect(self._on_tick)

	def _clear(self):
		self.running = False
		self.paused = False
		self.subject_id = None
		self.start_time = None
		self.paused_time = 0
		self.pause_timestamp = None
		self.elapsed_ms = 0

	@property
	def state(self) -> str:
		if not self.running:
			return 'idle'
		return 'paused' if self.paused else 'running'

	@property
	def is_ticking(self) -> bool:
		return self._timer.isActive()

	def start(self, subject_id) -> bool:
		if self.running:
			logger.debug("start(%r) ignored: a session is already in progress", subject_id)
			return False
		if not subject_id or (self.subject_validator and not self.subject_validator(subject_id)):
			logger.debug("start ignored: invalid subject %r", subject_id)
			return False
		self.running = True
		self.paused = False
		self.subject_id = subject_id
		self.start_time = self.clock.now_ms()
		self.paused_time = 0
		self.pause_timestamp = None
		self.elapsed_ms = 0
		self._timer.start()
		self._save()
		self.state_changed.emit('running')
		return True

	def pause(self):
		if not self.running or self.paused:
			return
		now = self.clock.now_ms()
		self._timer.stop()
		self.pause_timestamp = now
		self.elapsed_ms = max(0, now - self.start_time - self.paused_time)
		self.paused = True
		self._save()
		self.state_changed.emit('paused')

	def resume(self):
		if not self.running or not self.paused:
			return
		if self.pause_timestamp is not None:
			self.paused_time += max(0, self.clock.now_ms() - self.pause_timestamp)
		self.pause_timestamp = None
		self.paused = False
		self._timer.start()
		self._save()
		self.state_changed.emit('running')

	def toggle_pause(self):
		"""Single pause/resume button."""
		if self.paused:
			self.resume()
		else:
			self.pause()

	def stop(self) -> Optional[TimerResult]:
		if not self.running or not self.subject_id:
			return None
		self._timer.stop()
		now = self.clock.now_ms()
		if self.paused:
			final_ms = self.elapsed_ms
		else:
			final_ms = max(0, now - self.start_time - self.paused_time)
		result = TimerResult(
			subject_id=self.subject_id,
			duration=elapsed_to_minutes(final_ms),
			started_at=ms_to_iso(self.start_time),
			ended_at=ms_to_iso(now),
		)
		self._clear()
		self.writer.delete(TIMER_KEY)
		self.state_changed.emit('idle')
		return result

	def reset(self):
		"""Drop whatever is in progress without producing a session."""
		self._timer.stop()
		was_running = self.running
		self._clear()
		self.writer.delete(TIMER_KEY)
		if was_running:
			self.state_changed.emit('idle')

	def shutdown(self):
		"""Stop ticking on teardown. The persisted record stays for the next start."""
		self._timer.stop()

	def _on_tick(self):
		if not self.running or self.paused:
			self._timer.stop()
			return
		self.elapsed_ms = max(0, self.clock.now_ms() - self.start_time - self.paused_time)
		self.tick.emit(self.elapsed_ms)

	# --- persistence ---

	def to_record(self) -> dict:
		return {
			'isRunning': self.running,
			'isPaused': self.paused,
			'subjectId': self.subject_id,
			'startTime': self.start_time,
			'pausedTime': self.paused_time,
			'pauseTimestamp': self.pause_timestamp,
		}

	def _save(self):
		try:
			payload = json.dumps(self.to_record())
		except (TypeError, ValueError) as e:
			logger.warning("Could not serialize timer state: %s", e)
			return
		self.writer.put(TIMER_KEY, payload)

	def restore(self) -> str:
		"""Pick up a session left running or paused by a previous process.

		A paused session comes back paused with the elapsed time it had when
		pausing began. A running one comes back running, and the time the
		process was down counts as study time. Anything unreadable leaves the
		timer idle. Returns the resulting state.
		"""
		if self.running:
			return self.state
		try:
			raw = self.writer.get(TIMER_KEY)
		except StoreError as e:
			logger.warning("Could not read saved timer, starting idle: %s", e)
			return self.state
		if raw is None:
			return self.state
		try:
			record = _parse_record(raw)
		except ValueError as e:
			logger.warning("Discarding corrupt timer record: %s", e)
			self.writer.delete(TIMER_KEY)
			return self.state
		if record is None:
			return self.state

		self.running = True
		self.subject_id = record['subjectId']
		self.start_time = record['startTime']
		self.paused_time = record['pausedTime']
		if record['isPaused']:
			self.paused = True
			self.pause_timestamp = record['pauseTimestamp']
			self.elapsed_ms = max(0, self.pause_timestamp - self.start_time - self.paused_time)
			self.state_changed.emit('paused')
		else:
			self.paused = False
			self.pause_timestamp = None
			self.elapsed_ms = max(0, self.clock.now_ms() - self.start_time - self.paused_time)
			self._timer.start()
			self.state_changed.emit('running')
		logger.info("Restored %s timer for subject %s", self.state, self.subject_id)
		return self.state


def _int_or_none(value, name):
	if value is None:
		return None
	return int(finite_number(value, name))


def _parse_record(raw):
	"""Validated timer record, or None when it holds no running session."""
	record = json.loads(raw)
	if not isinstance(record, dict):
		raise ValueError("timer record must be an object")
	if not record.get('isRunning'):
		return None
	subject_id = record.get('subjectId')
	if not subject_id or not isinstance(subject_id, str):
		raise ValueError("running timer record has no subjectId")
	start_time = _int_or_none(record.get('startTime'), 'startTime')
	if start_time is None:
		raise ValueError("running timer record has no startTime")
	paused_time = _int_or_none(record.get('pausedTime'), 'pausedTime') or 0
	is_paused = bool(record.get('isPaused'))
	pause_timestamp = _int_or_none(record.get('pauseTimestamp'), 'pauseTimestamp')
	if is_paused and pause_timestamp is None:
		raise ValueError("paused timer record has no pauseTimestamp")
	return {
		'subjectId': subject_id,
		'startTime': start_time,
		'pausedTime': max(0, paused_time),
		'isPaused': is_paused,
		'pauseTimestamp': pause_timestamp,
	}
