import json

import pytest

from BackEnd.services.timer_service import (
    TIMER_KEY,
    TimerService,
    elapsed_to_minutes,
)
from BackEnd.services.write_behind import WriteBehindWriter


@pytest.fixture
def timer(writer, clock):
    t = TimerService(writer, clock)
    yield t
    t.shutdown()


def saved_record(writer, store):
    writer.flush()
    raw = store.get(TIMER_KEY)
    return json.loads(raw) if raw is not None else None


class TestTransitions:
    def test_starts_idle(self, timer):
        assert timer.state == 'idle'
        assert not timer.is_ticking
        assert timer.elapsed_ms == 0

    def test_start_runs_and_ticks(self, timer, clock):
        assert timer.start("math") is True
        assert timer.state == 'running'
        assert timer.start_time == clock.now_ms()
        assert timer.paused_time == 0
        assert timer.is_ticking

    @pytest.mark.parametrize("subject_id", ["", None])
    def test_start_without_subject_is_noop(self, timer, subject_id):
        assert timer.start(subject_id) is False
        assert timer.state == 'idle'
        assert not timer.is_ticking

    def test_start_rejected_by_validator(self, writer, clock):
        t = TimerService(writer, clock, subject_validator=lambda sid: sid == "math")
        assert t.start("history") is False
        assert t.start("math") is True
        t.shutdown()

    def test_second_start_keeps_first_session(self, timer, clock):
        timer.start("math")
        first_start = timer.start_time
        clock.advance(5000)
        assert timer.start("physics") is False
        assert timer.subject_id == "math"
        assert timer.start_time == first_start

    def test_pause_freezes_elapsed_and_stops_ticking(self, timer, clock):
        timer.start("math")
        clock.advance(30000)
        timer.pause()
        assert timer.state == 'paused'
        assert timer.elapsed_ms == 30000
        assert not timer.is_ticking
        clock.advance(60000)
        assert timer.elapsed_ms == 30000

    def test_pause_when_idle_or_paused_is_noop(self, timer, clock):
        timer.pause()
        assert timer.state == 'idle'
        timer.start("math")
        clock.advance(1000)
        timer.pause()
        stamp = timer.pause_timestamp
        clock.advance(1000)
        timer.pause()
        assert timer.pause_timestamp == stamp

    def test_resume_accumulates_paused_time(self, timer, clock):
        timer.start("math")
        clock.advance(10000)
        timer.pause()
        clock.advance(25000)
        timer.resume()
        assert timer.state == 'running'
        assert timer.paused_time == 25000
        assert timer.pause_timestamp is None
        assert timer.is_ticking

    def test_immediate_pause_resume_adds_nothing(self, timer, clock):
        timer.start("math")
        clock.advance(10000)
        timer.pause()
        timer.resume()
        assert timer.paused_time == 0

    def test_resume_when_running_is_noop(self, timer, clock):
        timer.start("math")
        clock.advance(10000)
        timer.resume()
        assert timer.paused_time == 0
        assert timer.state == 'running'

    def test_toggle_pause(self, timer, clock):
        timer.start("math")
        timer.toggle_pause()
        assert timer.state == 'paused'
        clock.advance(2000)
        timer.toggle_pause()
        assert timer.state == 'running'
        assert timer.paused_time == 2000

    def test_state_changed_signals(self, timer, clock):
        seen = []
        timer.state_changed.connect(seen.append)
        timer.start("math")
        timer.pause()
        timer.resume()
        timer.stop()
        assert seen == ['running', 'paused', 'running', 'idle']


class TestStop:
    def test_stop_when_idle_returns_none(self, timer):
        assert timer.stop() is None

    def test_ninety_seconds_rounds_to_two_minutes(self, timer, clock):
        timer.start("math")
        clock.advance(90000)
        result = timer.stop()
        assert result.subject_id == "math"
        assert result.duration == 2
        assert timer.state == 'idle'
        assert not timer.is_ticking

    def test_short_session_counts_as_one_minute(self, timer, clock):
        timer.start("math")
        clock.advance(5000)
        assert timer.stop().duration == 1

    def test_stop_while_paused_uses_frozen_elapsed(self, timer, clock):
        timer.start("math")
        clock.advance(10 * 60000)
        timer.pause()
        clock.advance(60 * 60000)
        assert timer.stop().duration == 10

    def test_paused_time_is_excluded(self, timer, clock):
        timer.start("math")
        clock.advance(5 * 60000)
        timer.pause()
        clock.advance(20 * 60000)
        timer.resume()
        clock.advance(5 * 60000)
        assert timer.stop().duration == 10

    def test_result_carries_start_and_end(self, timer, clock):
        timer.start("math")
        started = clock.now_iso()
        clock.advance(120000)
        result = timer.stop()
        assert result.started_at == started
        assert result.ended_at == clock.now_iso()

    @pytest.mark.parametrize("elapsed, minutes", [
        (0, 1),
        (29999, 1),
        (30000, 1),
        (89999, 1),
        (90000, 2),
        (150000, 3),
        (3600000, 60),
    ])
    def test_elapsed_to_minutes(self, elapsed, minutes):
        assert elapsed_to_minutes(elapsed) == minutes

    def test_reset_discards_session(self, timer, clock, writer, memory_store):
        timer.start("math")
        clock.advance(60000)
        timer.pause()
        timer.reset()
        assert timer.state == 'idle'
        assert timer.elapsed_ms == 0
        assert timer.subject_id is None
        assert not timer.is_ticking
        assert timer.stop() is None
        assert saved_record(writer, memory_store) is None


class TestTicking:
    def test_tick_recomputes_from_wall_clock(self, timer, clock):
        ticks = []
        timer.tick.connect(ticks.append)
        timer.start("math")
        clock.advance(100)
        timer._on_tick()
        clock.advance(250)
        timer._on_tick()
        assert ticks == [100, 350]
        assert timer.elapsed_ms == 350

    def test_tick_after_pause_does_not_move_elapsed(self, timer, clock):
        timer.start("math")
        clock.advance(1000)
        timer.pause()
        clock.advance(1000)
        timer._on_tick()
        assert timer.elapsed_ms == 1000
        assert not timer.is_ticking

    def test_tick_interval_is_configurable(self, writer, clock):
        t = TimerService(writer, clock, tick_interval_ms=250)
        assert t._timer.interval() == 250
        t.shutdown()


class TestPersistence:
    def test_each_transition_is_saved(self, timer, clock, writer, memory_store):
        start = clock.now_ms()
        timer.start("math")
        assert saved_record(writer, memory_store) == {
            'isRunning': True,
            'isPaused': False,
            'subjectId': "math",
            'startTime': start,
            'pausedTime': 0,
            'pauseTimestamp': None,
        }
        clock.advance(4000)
        timer.pause()
        record = saved_record(writer, memory_store)
        assert record['isPaused'] is True
        assert record['pauseTimestamp'] == start + 4000
        clock.advance(1000)
        timer.resume()
        record = saved_record(writer, memory_store)
        assert record['pausedTime'] == 1000
        assert record['pauseTimestamp'] is None

    def test_stop_deletes_record(self, timer, clock, writer, memory_store):
        timer.start("math")
        clock.advance(60000)
        timer.stop()
        assert saved_record(writer, memory_store) is None

    def test_ticks_do_not_write(self, timer, clock, writer, memory_store):
        timer.start("math")
        writer.flush()
        memory_store.delete(TIMER_KEY)
        clock.advance(500)
        timer._on_tick()
        assert saved_record(writer, memory_store) is None


class TestRestore:
    def put_record(self, store, **overrides):
        record = {
            'isRunning': True,
            'isPaused': False,
            'subjectId': "math",
            'startTime': 1_000_000,
            'pausedTime': 0,
            'pauseTimestamp': None,
        }
        record.update(overrides)
        store.put(TIMER_KEY, json.dumps(record), 0)

    def test_nothing_saved_stays_idle(self, timer):
        assert timer.restore() == 'idle'

    def test_running_record_counts_downtime(self, writer, memory_store, clock):
        start = clock.now_ms() - 10 * 60000
        self.put_record(memory_store, startTime=start, pausedTime=60000)
        t = TimerService(writer, clock)
        assert t.restore() == 'running'
        assert t.elapsed_ms == 9 * 60000
        assert t.is_ticking
        clock.advance(5000)
        t._on_tick()
        assert t.elapsed_ms == 9 * 60000 + 5000
        t.shutdown()

    def test_running_record_gap_adds_exactly_the_gap(self, writer, memory_store, clock):
        t = TimerService(writer, clock)
        t.start("math")
        clock.advance(3000)
        t.pause()
        clock.advance(2000)
        t.resume()
        clock.advance(7000)
        t._on_tick()
        before = t.elapsed_ms
        t.shutdown()
        writer.flush()

        gap = 45 * 60000
        clock.advance(gap)
        restored = TimerService(writer, clock)
        restored.restore()
        assert restored.elapsed_ms == before + gap
        restored.shutdown()

    def test_paused_record_keeps_frozen_elapsed(self, writer, memory_store, clock):
        t = TimerService(writer, clock)
        t.start("math")
        clock.advance(12 * 60000)
        t.pause()
        frozen = t.elapsed_ms
        t.shutdown()
        writer.flush()

        clock.advance(8 * 3600 * 1000)
        restored = TimerService(writer, clock)
        assert restored.restore() == 'paused'
        assert restored.elapsed_ms == frozen
        assert not restored.is_ticking
        clock.advance(60000)
        restored.resume()
        assert restored.paused_time == 8 * 3600 * 1000 + 60000
        assert restored.stop().duration == 12

    def test_elapsed_is_clamped_at_zero(self, writer, memory_store, clock):
        self.put_record(memory_store, startTime=clock.now_ms() + 60000)
        t = TimerService(writer, clock)
        t.restore()
        assert t.elapsed_ms == 0
        t.shutdown()

    def test_not_running_record_stays_idle(self, writer, memory_store, clock):
        self.put_record(memory_store, isRunning=False)
        t = TimerService(writer, clock)
        assert t.restore() == 'idle'

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        json.dumps({'isRunning': True, 'subjectId': None, 'startTime': 5}),
        json.dumps({'isRunning': True, 'subjectId': "math", 'startTime': None}),
        json.dumps({'isRunning': True, 'isPaused': True, 'subjectId': "math", 'startTime': 5}),
        json.dumps({'isRunning': True, 'subjectId': "math", 'startTime': "yesterday"}),
        '{"isRunning": true, "subjectId": "math", "startTime": 1e999}',
        '{"isRunning": true, "subjectId": "math", "startTime": 5, "pausedTime": Infinity}',
        '{"isRunning": true, "isPaused": true, "subjectId": "math", "startTime": 5, "pauseTimestamp": NaN}',
    ])
    def test_corrupt_record_is_discarded(self, writer, memory_store, clock, raw, caplog):
        memory_store.put(TIMER_KEY, raw, 0)
        t = TimerService(writer, clock)
        assert t.restore() == 'idle'
        writer.flush()
        assert memory_store.get(TIMER_KEY) is None
        assert "corrupt timer record" in caplog.text

    def test_broken_store_leaves_timer_usable(self, broken_store, clock, caplog):
        w = WriteBehindWriter(broken_store, clock)
        t = TimerService(w, clock)
        assert t.restore() == 'idle'
        t.start("math")
        clock.advance(60000)
        assert t.stop().duration == 1
        w.flush()
        assert "failed" in caplog.text
        w.close()
