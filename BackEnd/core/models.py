"""Plain records shared by the repository, the timer and the stats service.

Field names are snake_case in Python; ``to_dict``/``from_dict`` speak the
camelCase JSON used in storage and export files.
"""

import math
import random
import string
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

PASTEL_COLORS: List[str] = [
	"mint",
	"lavender",
	"peach",
	"pink",
	"blue",
	"yellow",
	"sage",
	"coral",
]

MAX_NAME_LENGTH = 50
MAX_NOTES_LENGTH = 500
EXPORT_VERSION = "1.0.0"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id() -> str:
	"""Return '<epoch ms>-<9 random base36 chars>'."""
	suffix = "".join(random.choices(_ID_ALPHABET, k=9))
	return f"{int(time.time() * 1000)}-{suffix}"


def next_available_color(palette: List[str], used: Iterable[str], count: int) -> str:
	"""First palette color nobody uses yet; once all are taken, cycle by count."""
	taken = set(used)
	for color in palette:
		if color not in taken:
			return color
	return palette[count % len(palette)]


def sanitize_name(name: Optional[str]) -> str:
	return (name or "").strip()[:MAX_NAME_LENGTH]


def sanitize_notes(notes: Optional[str]) -> Optional[str]:
	if notes is None:
		return None
	return notes.strip()[:MAX_NOTES_LENGTH]


def finite_number(value: Any, name: str) -> float:
	"""The value as a JSON number, refusing bools, NaN and infinities."""
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		raise ValueError(f"{name} must be a number, got {type(value).__name__}")
	if not math.isfinite(value):
		raise ValueError(f"{name} must be finite, got {value!r}")
	return value


def _optional_str(value: Any, name: str) -> Optional[str]:
	if value is not None and not isinstance(value, str):
		raise ValueError(f"{name} must be a string, got {type(value).__name__}")
	return value


def parse_date(value: Any) -> date:
	if isinstance(value, date):
		return value
	if not isinstance(value, str):
		raise ValueError(f"expected ISO date string, got {type(value).__name__}")
	# tolerate full timestamps, only the calendar date matters
	return date.fromisoformat(value[:10])


@dataclass
class Subject:
	id: str
	name: str
	color: str
	created_at: str

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"name": self.name,
			"color": self.color,
			"createdAt": self.created_at,
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "Subject":
		if not isinstance(data, dict):
			raise ValueError("subject entry must be an object")
		if not data.get("id") or not isinstance(data.get("name"), str):
			raise ValueError("subject entry needs an id and a name")
		name = sanitize_name(data["name"])
		if not name:
			raise ValueError("subject name is empty")
		color = data.get("color")
		return cls(
			id=str(data["id"]),
			name=name,
			color=color if color in PASTEL_COLORS else PASTEL_COLORS[0],
			created_at=_optional_str(data.get("createdAt"), "createdAt") or "",
		)


@dataclass
class StudySession:
	id: str
	subject_id: str
	date: date
	duration: int
	created_at: str
	notes: Optional[str] = None
	start_time: Optional[str] = None
	end_time: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		data: Dict[str, Any] = {
			"id": self.id,
			"subjectId": self.subject_id,
			"date": self.date.isoformat(),
			"duration": self.duration,
			"createdAt": self.created_at,
		}
		# optional keys are omitted, never written as null
		if self.notes is not None:
			data["notes"] = self.notes
		if self.start_time is not None:
			data["startTime"] = self.start_time
		if self.end_time is not None:
			data["endTime"] = self.end_time
		return data

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "StudySession":
		if not isinstance(data, dict):
			raise ValueError("session entry must be an object")
		if not data.get("id") or not data.get("subjectId"):
			raise ValueError("session entry needs an id and a subjectId")
		duration = finite_number(data.get("duration"), "duration")
		if duration < 1:
			raise ValueError(f"session duration must be at least 1 minute, got {duration}")
		return cls(
			id=str(data["id"]),
			subject_id=str(data["subjectId"]),
			date=parse_date(data.get("date")),
			duration=int(duration),
			created_at=_optional_str(data.get("createdAt"), "createdAt") or "",
			notes=sanitize_notes(_optional_str(data.get("notes"), "notes")),
			start_time=_optional_str(data.get("startTime"), "startTime"),
			end_time=_optional_str(data.get("endTime"), "endTime"),
		)


@dataclass(frozen=True)
class StudyStats:
	today: int = 0
	this_week: int = 0
	this_month: int = 0
	streak: int = 0


@dataclass
class ChartPoint:
	label: str
	total: float = 0.0
	per_subject: Dict[str, float] = field(default_factory=dict)
	is_empty: bool = False
