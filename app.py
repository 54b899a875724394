import logging
import sys

from PySide6.QtCore import QCoreApplication

from BackEnd.core.clock import SystemClock, format_duration, format_time
from BackEnd.core.logging_setup import setup_logging
from BackEnd.core.settings import load_settings
from BackEnd.repos.kv_store import SqliteKeyValueStore
from BackEnd.repos.session_repo import StudyRepository
from BackEnd.services.stats_service import StatsService
from BackEnd.services.timer_service import TimerService
from BackEnd.services.write_behind import WriteBehindWriter

logger = logging.getLogger("BackEnd.app")


class StudyApp:
    """Composition root: owns the one timer, the repository and the stats.

    `notifier` is an optional callable(title, description) for toasts.
    """

    def __init__(self, store, clock=None, tick_interval_ms=100, notifier=None):
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.writer = WriteBehindWriter(store, self.clock)
        self.repository = StudyRepository(self.writer, self.clock)
        self.timer = TimerService(
            self.writer,
            self.clock,
            tick_interval_ms=tick_interval_ms,
            subject_validator=lambda sid: self.repository.get_subject_by_id(sid) is not None,
        )
        self.stats = StatsService(self.repository, self.clock)
        self.timer.restore()

    def start_timer(self, subject_id):
        if not self.timer.start(subject_id):
            return False
        subject = self.repository.get_subject_by_id(subject_id)
        self._notify("Timer started", f"Studying {subject.name}")
        return True

    def stop_timer(self):
        """Stop the timer and log the result as a session dated today."""
        result = self.timer.stop()
        if result is None:
            return None
        session = self.repository.add_session(
            result.subject_id,
            self.clock.today(),
            result.duration,
            start_time=result.started_at,
            end_time=result.ended_at,
        )
        subject = self.repository.get_subject_by_id(result.subject_id)
        name = subject.name if subject else "Unknown subject"
        self._notify("Session saved!", f"{name}: {result.duration} minutes logged")
        return session

    def add_manual_session(self, subject_id, date, duration, notes=None):
        session = self.repository.add_session(subject_id, date, duration, notes=notes)
        if session is not None:
            subject = self.repository.get_subject_by_id(subject_id)
            name = subject.name if subject else "Unknown subject"
            self._notify("Session added!", f"{name}: {duration} minutes on {session.date:%b} {session.date.day}")
        return session

    def import_data(self, text):
        ok = self.repository.import_data(text)
        if ok:
            self._notify("Data imported", "Your study data has been restored")
        return ok

    def shutdown(self):
        """Stop ticking and let pending writes land before exit."""
        self.timer.shutdown()
        self.stats.shutdown()
        self.writer.close()

    def _notify(self, title, description):
        if self.notifier is None:
            return
        try:
            self.notifier(title, description)
        except Exception:
            logger.warning("Notifier failed for %r", title, exc_info=True)


def build_app(settings=None, clock=None, notifier=None):
    settings = settings or load_settings()
    setup_logging(settings.log_level, settings.log_path, console=settings.console_log)
    store = SqliteKeyValueStore(settings.db_path)
    logger.info("Using database %s", settings.db_path)
    return StudyApp(store, clock, settings.tick_interval_ms, notifier)


def main():
    qt_app = QCoreApplication(sys.argv)
    app = build_app()
    try:
        stats = app.stats.stats
        print(f"Today:      {format_duration(stats.today)}")
        print(f"This week:  {format_duration(stats.this_week)}")
        print(f"This month: {format_duration(stats.this_month)}")
        print(f"Streak:     {stats.streak} day(s)")
        if app.timer.running:
            subject = app.repository.get_subject_by_id(app.timer.subject_id)
            name = subject.name if subject else app.timer.subject_id
            print(f"Timer {app.timer.state} on {name}: {format_time(app.timer.elapsed_ms)}")
    finally:
        app.shutdown()


if __name__ == "__main__":
    main()
