import time
from datetime import date, datetime, timezone


class SystemClock:
	"""Wall-clock time source. Tests swap in a clock they can advance by hand."""

	def now_ms(self) -> int:
		return int(time.time() * 1000)

	def today(self) -> date:
		"""Local calendar date."""
		return datetime.now().date()

	def now_iso(self) -> str:
		return ms_to_iso(self.now_ms())


def ms_to_iso(ms: int) -> str:
	"""Return a UTC ISO8601 string (millisecond precision) for an epoch-ms value."""
	dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
	return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_time(ms: int) -> str:
	"""Stopwatch display: MM:SS below an hour, H:MM:SS above."""
	total = max(0, int(ms)) // 1000
	if total >= 3600:
		h = total // 3600
		return f"{h}:{(total % 3600) // 60:02}:{total % 60:02}"
	return f"{total // 60:02}:{total % 60:02}"


def format_duration(minutes: int) -> str:
	"""Human duration for minute totals, e.g. 45min, 2h, 1h 30min."""
	hours = int(minutes // 60)
	mins = round(minutes % 60)
	if hours == 0:
		return f"{mins}min"
	if mins == 0:
		return f"{hours}h"
	return f"{hours}h {mins}min"
