"""
Tests for Adherence Engine
Tests windowed aggregation, streaks, heatmap cells and trends
"""

import pytest
from dataclasses import replace
from datetime import datetime, date, time, timedelta

from models import DoseStatus
from actions.adherence_engine import AdherenceEngine, day_of_week_key
from tests.fakes import snapshot


@pytest.fixture
def engine():
    return AdherenceEngine()


def day_at(day: date, hour: int = 8) -> datetime:
    return datetime.combine(day, time(hour, 0))


class TestAggregate:
    """Tests for window counts and rates"""

    @pytest.mark.unit
    def test_empty_window_has_zero_rates(self, engine):
        window = engine.aggregate([], datetime(2024, 3, 1), datetime(2024, 3, 8))

        assert window.total == 0
        assert window.adherence_rate == 0
        assert window.to_dict()["missed_rate"] == 0

    @pytest.mark.unit
    def test_counts_by_status(self, engine):
        records = [
            snapshot(datetime(2024, 3, 1, 8)),
            snapshot(datetime(2024, 3, 1, 20)),
            snapshot(datetime(2024, 3, 2, 8), status=DoseStatus.MISSED),
            snapshot(datetime(2024, 3, 2, 20), status=DoseStatus.SKIPPED),
        ]
        window = engine.aggregate(records, datetime(2024, 3, 1), datetime(2024, 3, 3))

        assert (window.total, window.taken, window.missed, window.skipped) == (4, 2, 1, 1)
        assert window.adherence_rate == 50.0
        assert window.missed_rate == 25.0

    @pytest.mark.unit
    def test_taken_late_split(self, engine):
        late = snapshot(datetime(2024, 3, 1, 8), actual_time=datetime(2024, 3, 1, 9))
        late = replace(late, taken_late=True)
        records = [late, snapshot(datetime(2024, 3, 1, 20))]

        window = engine.aggregate(records, datetime(2024, 3, 1), datetime(2024, 3, 2))
        assert window.taken_late == 1
        assert window.taken_on_time == 1
        assert window.taken_on_time_rate + window.taken_late_rate == window.taken_rate

    @pytest.mark.unit
    def test_interval_is_closed(self, engine):
        start, end = datetime(2024, 3, 1, 8), datetime(2024, 3, 1, 20)
        records = [snapshot(start), snapshot(end), snapshot(end + timedelta(seconds=1))]

        assert engine.aggregate(records, start, end).total == 2

    @pytest.mark.unit
    def test_unknown_period(self, engine):
        with pytest.raises(ValueError):
            engine.period_bounds("fortnight", datetime(2024, 3, 15))

    @pytest.mark.unit
    def test_period_bounds_do_not_overlap(self, engine):
        now = datetime(2024, 3, 15, 12)
        start, end, previous_start, previous_end = engine.period_bounds("week", now)

        assert end == now
        assert start == now - timedelta(days=7)
        assert previous_end < start
        assert previous_end - previous_start == timedelta(days=7)


class TestStreaks:
    """Tests for perfect-day streaks"""

    @pytest.mark.unit
    def test_no_history(self, engine):
        state = engine.streaks([], date(2024, 3, 15))
        assert (state.current_streak, state.best_streak) == (0, 0)

    @pytest.mark.unit
    def test_current_streak_includes_perfect_today(self, engine):
        today = date(2024, 3, 15)
        records = [snapshot(day_at(today - timedelta(days=n))) for n in range(3)]

        assert engine.streaks(records, today).current_streak == 3

    @pytest.mark.unit
    def test_unlogged_today_keeps_streak(self, engine):
        today = date(2024, 3, 15)
        records = [snapshot(day_at(today - timedelta(days=n))) for n in range(1, 4)]

        assert engine.streaks(records, today).current_streak == 3

    @pytest.mark.unit
    def test_missed_today_does_not_zero_streak(self, engine):
        today = date(2024, 3, 15)
        records = [snapshot(day_at(today), status=DoseStatus.MISSED)]
        records += [snapshot(day_at(today - timedelta(days=n))) for n in range(1, 3)]

        assert engine.streaks(records, today).current_streak == 2

    @pytest.mark.unit
    def test_missed_dose_breaks_day(self, engine):
        today = date(2024, 3, 15)
        yesterday = today - timedelta(days=1)
        records = [
            snapshot(day_at(yesterday, 8)),
            snapshot(day_at(yesterday, 20), status=DoseStatus.MISSED),
            snapshot(day_at(today - timedelta(days=2))),
        ]

        assert engine.streaks(records, today).current_streak == 0

    @pytest.mark.unit
    def test_skipped_day_is_still_perfect(self, engine):
        today = date(2024, 3, 15)
        records = [snapshot(day_at(today - timedelta(days=1)), status=DoseStatus.SKIPPED)]

        assert engine.streaks(records, today).current_streak == 1

    @pytest.mark.unit
    def test_best_streak_resets_on_gaps(self, engine):
        start = date(2024, 3, 1)
        days = [0, 1, 2, 3, 5, 6]  # day 4 has no records
        records = [snapshot(day_at(start + timedelta(days=d))) for d in days]

        state = engine.streaks(records, date(2024, 3, 7))
        assert state.best_streak == 4
        assert state.current_streak == 2
        assert state.total_perfect_days == 6

    @pytest.mark.unit
    def test_missed_day_resets_best_streak(self, engine):
        start = date(2024, 3, 1)
        records = [snapshot(day_at(start + timedelta(days=d))) for d in [0, 1, 2, 4, 5]]
        records.append(snapshot(day_at(start + timedelta(days=3)), status=DoseStatus.MISSED))

        state = engine.streaks(records, date(2024, 3, 6))
        assert state.current_streak == 2
        assert state.best_streak == 3
        assert state.total_perfect_days == 5


class TestCalendar:

    @pytest.mark.unit
    @pytest.mark.parametrize("fraction,total,level", [
        (0.0, 0, 0),
        (0.0, 2, 0),
        (0.25, 4, 1),
        (0.5, 2, 2),
        (0.75, 4, 3),
        (0.9, 10, 4),
        (1.0, 2, 4),
    ])
    def test_heat_levels(self, engine, fraction, total, level):
        assert engine.heat_level(fraction, total) == level

    @pytest.mark.unit
    def test_every_day_has_a_cell(self, engine):
        records = [
            snapshot(datetime(2024, 3, 2, 8)),
            snapshot(datetime(2024, 3, 2, 20), status=DoseStatus.MISSED),
        ]
        cells = engine.calendar(records, date(2024, 3, 1), date(2024, 3, 3))

        assert [c.day for c in cells] == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]
        assert cells[0].total == 0 and cells[0].level == 0
        assert cells[1].adherence_percentage == 50.0
        assert cells[1].level == 2
        assert cells[1].is_perfect is False


class TestTrends:

    @pytest.mark.unit
    def test_day_of_week_key_starts_on_sunday(self):
        assert day_of_week_key(datetime(2024, 3, 17)) == 1  # Sunday
        assert day_of_week_key(datetime(2024, 3, 16)) == 7  # Saturday

    @pytest.mark.unit
    def test_time_of_day_buckets_and_best(self, engine):
        records = [
            snapshot(datetime(2024, 3, 1, 8)),
            snapshot(datetime(2024, 3, 2, 8), status=DoseStatus.MISSED),
            snapshot(datetime(2024, 3, 1, 20)),
            snapshot(datetime(2024, 3, 2, 20)),
        ]
        buckets = engine.time_of_day_trends(records)

        assert [b.key for b in buckets] == [8, 20]
        assert buckets[0].taken_rate == 50.0
        assert engine.best_bucket(buckets).key == 20

    @pytest.mark.unit
    def test_best_bucket_tie_goes_to_lowest_key(self, engine):
        records = [snapshot(datetime(2024, 3, 1, 20)), snapshot(datetime(2024, 3, 1, 8))]
        assert engine.best_bucket(engine.time_of_day_trends(records)).key == 8

    @pytest.mark.unit
    def test_best_bucket_empty(self, engine):
        assert engine.best_bucket([]) is None

    @pytest.mark.unit
    def test_weekly_trends_oldest_first(self, engine):
        as_of = datetime(2024, 3, 15, 12)
        records = [
            snapshot(datetime(2024, 3, 14, 8)),
            snapshot(datetime(2024, 3, 7, 8), status=DoseStatus.MISSED),
        ]
        windows = engine.weekly_trends(records, as_of, weeks=2)

        assert len(windows) == 2
        assert windows[0].missed == 1
        assert windows[1].taken == 1
        assert windows[1].end.date() == date(2024, 3, 15)

    @pytest.mark.unit
    def test_most_missed_ranking(self, engine):
        records = [
            snapshot(datetime(2024, 3, 1, 8), medication_id=1, medication_name="Metformin", status=DoseStatus.MISSED),
            snapshot(datetime(2024, 3, 1, 20), medication_id=1, medication_name="Metformin"),
            snapshot(datetime(2024, 3, 1, 9), medication_id=2, medication_name="Lisinopril", status=DoseStatus.SKIPPED),
            snapshot(datetime(2024, 3, 1, 21), medication_id=3, medication_name="Atorvastatin"),
        ]
        ranked = engine.most_missed(records)

        assert [s.medication_name for s in ranked] == ["Lisinopril", "Metformin"]
        assert ranked[0].total_missed_percentage == 100.0
        assert ranked[1].missed_percentage == 50.0

    @pytest.mark.unit
    def test_compare_periods(self, engine):
        current = engine.aggregate([snapshot(datetime(2024, 3, 10, 8))], datetime(2024, 3, 8), datetime(2024, 3, 15))
        previous = engine.aggregate(
            [snapshot(datetime(2024, 3, 3, 8), status=DoseStatus.MISSED), snapshot(datetime(2024, 3, 3, 20))],
            datetime(2024, 3, 1),
            datetime(2024, 3, 7)
        )

        deltas = engine.compare_periods(current, previous)
        assert deltas["adherence_rate"] == 50.0
        assert deltas["missed_rate"] == -50.0
