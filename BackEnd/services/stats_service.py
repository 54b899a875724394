import calendar
import datetime
import logging
from collections import defaultdict
from typing import Dict, Iterable, List

from PySide6.QtCore import QObject, Signal, QTimer

from BackEnd.core.clock import SystemClock
from BackEnd.core.models import ChartPoint, StudySession, StudyStats, Subject

logger = logging.getLogger(__name__)

CHART_VIEWS = ('daily', 'weekly', 'monthly')
CHART_MODES = ('stacked', 'simple')
DAY_CHECK_INTERVAL_MS = 60000


def week_start(day: datetime.date) -> datetime.date:
	"""Monday of the week containing day."""
	return day - datetime.timedelta(days=day.weekday())


def get_daily_streak(sessions: Iterable[StudySession], today: datetime.date) -> int:
	"""
	Consecutive days with at least one session, counting back from today.
	No session today means the streak is 0, even if yesterday had one.
	"""
	dates = {s.date for s in sessions}
	streak = 0
	current_date = today
	while current_date in dates:
		streak += 1
		current_date -= datetime.timedelta(days=1)
	return streak


def compute_stats(sessions: Iterable[StudySession], today: datetime.date) -> StudyStats:
	sessions = list(sessions)
	monday = week_start(today)
	month_start = today.replace(day=1)
	today_total = week_total = month_total = 0
	for s in sessions:
		if s.date == today:
			today_total += s.duration
		if s.date >= monday:
			week_total += s.duration
		if s.date >= month_start:
			month_total += s.duration
	return StudyStats(
		today=today_total,
		this_week=week_total,
		this_month=month_total,
		streak=get_daily_streak(sessions, today),
	)


def get_total_days_studied(sessions: Iterable[StudySession]) -> int:
	"""Number of distinct days with any study time."""
	return len({s.date for s in sessions if s.duration > 0})


def get_total_hours_studied(sessions: Iterable[StudySession]) -> float:
	return sum(s.duration for s in sessions if s.duration > 0) / 60.0


def _bucket(point: ChartPoint, picked: List[StudySession], subjects: List[Subject], mode: str):
	if mode == 'stacked':
		minutes: Dict[str, int] = defaultdict(int)
		for s in picked:
			minutes[s.subject_id] += s.duration
		for subject in subjects:
			hours = minutes.get(subject.id, 0) / 60
			point.per_subject[subject.id] = hours
			point.total += hours
	else:
		point.total = sum(s.duration for s in picked) / 60
	return point


def build_chart_data(sessions: Iterable[StudySession], subjects: Iterable[Subject],
		view: str, mode: str, today: datetime.date) -> List[ChartPoint]:
	"""Hours per bar for the study chart.

	daily:   every day of the current month, labelled 1..31
	weekly:  Monday to Sunday of the current week, labelled Mon..Sun
	monthly: January to December of the current year, labelled Jan..Dec;
	         months before the first session or after this month are
	         flagged is_empty.

	In stacked mode each point also carries hours per subject. Sessions
	whose subject no longer exists only count towards simple totals.
	"""
	if view not in CHART_VIEWS:
		raise ValueError(f"view must be one of {CHART_VIEWS}, got {view!r}")
	if mode not in CHART_MODES:
		raise ValueError(f"mode must be one of {CHART_MODES}, got {mode!r}")
	sessions = list(sessions)
	subjects = list(subjects)
	by_date: Dict[datetime.date, List[StudySession]] = defaultdict(list)
	for s in sessions:
		by_date[s.date].append(s)

	points = []
	if view == 'daily':
		days_in_month = calendar.monthrange(today.year, today.month)[1]
		for day_num in range(1, days_in_month + 1):
			day = today.replace(day=day_num)
			points.append(_bucket(ChartPoint(label=str(day_num)), by_date.get(day, []), subjects, mode))
	elif view == 'weekly':
		monday = week_start(today)
		for offset in range(7):
			day = monday + datetime.timedelta(days=offset)
			label = calendar.day_abbr[day.weekday()]
			points.append(_bucket(ChartPoint(label=label), by_date.get(day, []), subjects, mode))
	else:
		first = min((s.date for s in sessions), default=today)
		first_month = (first.year, first.month)
		current_month = (today.year, today.month)
		for month in range(1, 13):
			picked = [s for s in sessions if s.date.year == today.year and s.date.month == month]
			point = ChartPoint(
				label=calendar.month_abbr[month],
				is_empty=(today.year, month) < first_month or (today.year, month) > current_month,
			)
			points.append(_bucket(point, picked, subjects, mode))
	return points


class StatsService(QObject):
	"""Keeps StudyStats current by recomputing whenever the sessions change."""

	stats_changed = Signal(object)

	def __init__(self, repository, clock=None, day_check_interval_ms=DAY_CHECK_INTERVAL_MS):
		super().__init__()
		self.repository = repository
		self.clock = clock or SystemClock()
		self._stats = StudyStats()
		self._day = None
		repository.sessions_changed.connect(self.refresh)
		self.refresh()
		# today/week/month/streak depend on the date, not only on the sessions
		self._day_timer = QTimer(self)
		self._day_timer.setInterval(day_check_interval_ms)
		self._day_timer.timeout.connect(self._check_day)
		self._day_timer.start()

	@property
	def stats(self) -> StudyStats:
		return self._stats

	def refresh(self) -> StudyStats:
		self._day = self.clock.today()
		self._stats = compute_stats(self.repository.sessions, self._day)
		logger.debug("Stats recomputed: %s", self._stats)
		self.stats_changed.emit(self._stats)
		return self._stats

	def shutdown(self):
		self._day_timer.stop()

	def _check_day(self):
		if self.clock.today() != self._day:
			logger.info("Date changed to %s, recomputing stats", self.clock.today())
			self.refresh()

	def chart(self, view='weekly', mode='simple') -> List[ChartPoint]:
		return build_chart_data(self.repository.sessions, self.repository.subjects,
			view, mode, self.clock.today())

	def total_days_studied(self) -> int:
		return get_total_days_studied(self.repository.sessions)

	def total_hours_studied(self) -> float:
		return get_total_hours_studied(self.repository.sessions)
