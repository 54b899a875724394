import json
import logging
from datetime import date
from typing import List, Optional

from PySide6.QtCore import QObject, Signal

from BackEnd.core.clock import SystemClock
from BackEnd.core.exceptions import ImportValidationError, StoreError
from BackEnd.core.models import (
	EXPORT_VERSION,
	PASTEL_COLORS,
	StudySession,
	Subject,
	finite_number,
	generate_id,
	next_available_color,
	parse_date,
	sanitize_name,
	sanitize_notes,
)

logger = logging.getLogger(__name__)

SUBJECTS_KEY = "study-tracker-subjects"
SESSIONS_KEY = "study-tracker-sessions"


class StudyRepository(QObject):
	"""In-memory subjects and sessions, written behind to the key-value store.

	Every mutation changes the lists synchronously, emits the matching
	signal and queues a persistence write. Invalid input is ignored and the
	method returns None instead of raising.
	"""

	subjects_changed = Signal()
	sessions_changed = Signal()

	def __init__(self, writer, clock=None):
		super().__init__()
		self.writer = writer
		self.clock = clock or SystemClock()
		self._subjects: List[Subject] = self._load(SUBJECTS_KEY, Subject)
		self._sessions: List[StudySession] = self._load(SESSIONS_KEY, StudySession)

	@property
	def subjects(self) -> List[Subject]:
		return list(self._subjects)

	@property
	def sessions(self) -> List[StudySession]:
		return list(self._sessions)

	# --- subjects ---

	def get_next_color(self) -> str:
		return next_available_color(
			PASTEL_COLORS, (s.color for s in self._subjects), len(self._subjects))

	def get_subject_by_id(self, subject_id) -> Optional[Subject]:
		for s in self._subjects:
			if s.id == subject_id:
				return s
		return None

	def add_subject(self, name, color=None) -> Optional[Subject]:
		clean = sanitize_name(name)
		if not clean:
			logger.debug("Rejected subject with empty name")
			return None
		if color not in PASTEL_COLORS:
			color = self.get_next_color()
		subject = Subject(
			id=generate_id(),
			name=clean,
			color=color,
			created_at=self.clock.now_iso(),
		)
		self._set_subjects(self._subjects + [subject])
		return subject

	def update_subject(self, subject_id, name=None, color=None) -> Optional[Subject]:
		target = self.get_subject_by_id(subject_id)
		if target is None:
			return None
		clean = sanitize_name(name) if name is not None else ""
		updated = Subject(
			id=target.id,
			name=clean or target.name,
			color=color if color in PASTEL_COLORS else target.color,
			created_at=target.created_at,
		)
		self._set_subjects([updated if s.id == subject_id else s for s in self._subjects])
		return updated

	def delete_subject(self, subject_id) -> None:
		subjects = [s for s in self._subjects if s.id != subject_id]
		sessions = [s for s in self._sessions if s.subject_id != subject_id]
		# swap both lists before anyone hears about it
		self._subjects, self._sessions = subjects, sessions
		self._persist(SUBJECTS_KEY, subjects)
		self._persist(SESSIONS_KEY, sessions)
		self.subjects_changed.emit()
		self.sessions_changed.emit()

	# --- sessions ---

	def add_session(self, subject_id, date, duration, notes=None,
			start_time=None, end_time=None) -> Optional[StudySession]:
		if not subject_id:
			logger.debug("Rejected session without subject")
			return None
		if not _valid_duration(duration):
			logger.debug("Rejected session with duration %r", duration)
			return None
		try:
			session_date = parse_date(date)
		except ValueError:
			logger.debug("Rejected session with date %r", date)
			return None
		session = StudySession(
			id=generate_id(),
			subject_id=subject_id,
			date=session_date,
			duration=int(duration),
			created_at=self.clock.now_iso(),
			notes=sanitize_notes(notes),
			start_time=start_time,
			end_time=end_time,
		)
		self._set_sessions(self._sessions + [session])
		return session

	def update_session(self, session_id, subject_id=None, date=None, duration=None,
			notes=None) -> Optional[StudySession]:
		target = next((s for s in self._sessions if s.id == session_id), None)
		if target is None:
			return None
		new_date = target.date
		if date is not None:
			try:
				new_date = parse_date(date)
			except ValueError:
				logger.debug("Ignoring bad date %r for session %s", date, session_id)
		updated = StudySession(
			id=target.id,
			subject_id=subject_id or target.subject_id,
			date=new_date,
			duration=int(duration) if _valid_duration(duration) else target.duration,
			created_at=target.created_at,
			notes=sanitize_notes(notes) if notes is not None else target.notes,
			start_time=target.start_time,
			end_time=target.end_time,
		)
		self._set_sessions([updated if s.id == session_id else s for s in self._sessions])
		return updated

	def delete_session(self, session_id) -> None:
		self._set_sessions([s for s in self._sessions if s.id != session_id])

	def get_sessions_by_date_range(self, start: date, end: date) -> List[StudySession]:
		"""Sessions dated between start and end, both inclusive."""
		return [s for s in self._sessions if start <= s.date <= end]

	# --- data management ---

	def export_data(self) -> str:
		data = {
			"subjects": [s.to_dict() for s in self._subjects],
			"sessions": [s.to_dict() for s in self._sessions],
			"exportedAt": self.clock.now_iso(),
			"version": EXPORT_VERSION,
		}
		return json.dumps(data, indent=2)

	def import_data(self, text) -> bool:
		"""Replace everything with an export payload. False (and no change) if invalid."""
		try:
			subjects, sessions = _decode_export(text)
		except ImportValidationError as e:
			logger.warning("Import failed: %s", e)
			return False
		self._set_subjects(subjects)
		self._set_sessions(sessions)
		logger.info("Imported %d subjects and %d sessions", len(subjects), len(sessions))
		return True

	def clear_all_data(self) -> None:
		self._set_subjects([])
		self._set_sessions([])

	# --- internals ---

	def _set_subjects(self, subjects):
		self._subjects = subjects
		self._persist(SUBJECTS_KEY, subjects)
		self.subjects_changed.emit()

	def _set_sessions(self, sessions):
		self._sessions = sessions
		self._persist(SESSIONS_KEY, sessions)
		self.sessions_changed.emit()

	def _persist(self, key, records):
		try:
			payload = json.dumps([r.to_dict() for r in records])
		except (TypeError, ValueError) as e:
			logger.warning("Could not serialize %s: %s", key, e)
			return
		self.writer.put(key, payload)

	def _load(self, key, record_type):
		try:
			raw = self.writer.get(key)
		except StoreError as e:
			logger.warning("Could not read %s, starting empty: %s", key, e)
			return []
		if raw is None:
			return []
		try:
			items = json.loads(raw)
			if not isinstance(items, list):
				raise ValueError(f"expected a list, got {type(items).__name__}")
			return _unique_ids([record_type.from_dict(item) for item in items], key)
		except ValueError as e:
			logger.warning("Discarding unreadable %s: %s", key, e)
			return []


def _valid_duration(duration) -> bool:
	try:
		return finite_number(duration, "duration") >= 1
	except ValueError:
		return False


def _unique_ids(records, kind):
	seen = set()
	for r in records:
		if r.id in seen:
			raise ValueError(f"duplicate {kind} id {r.id!r}")
		seen.add(r.id)
	return records


def _decode_export(text):
	try:
		data = json.loads(text)
	except (TypeError, ValueError) as e:
		raise ImportValidationError(f"not valid JSON: {e}") from e
	if not isinstance(data, dict):
		raise ImportValidationError("export payload must be an object")
	if not isinstance(data.get("subjects"), list) or not isinstance(data.get("sessions"), list):
		raise ImportValidationError("subjects and sessions must both be lists")
	try:
		subjects = _unique_ids([Subject.from_dict(item) for item in data["subjects"]], "subject")
		sessions = _unique_ids([StudySession.from_dict(item) for item in data["sessions"]], "session")
	except ValueError as e:
		raise ImportValidationError(f"bad record: {e}") from e
	return subjects, sessions
