"""Tests for daily and period work summaries."""

import math
from itertools import permutations

import pytest

from conftest import IN, OUT, FixedClock, utc
from timeclock.aggregation import DailyAggregator
from timeclock.models import EventStatus, PeriodSummary


@pytest.fixture
def aggregator(settings, clock):
    return DailyAggregator(settings, clock)


def only_day(summary):
    assert len(summary.daily_summaries) == 1
    return summary.daily_summaries[0]


class TestScenarios:
    def test_single_session(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T09:00", event_id="1"),
                make_event(OUT, "2026-02-02T17:00", event_id="2"),
            ]
        )

        day = only_day(summary)
        assert len(day.pairs) == 1
        assert day.pairs[0].duration_minutes == 480
        assert day.total_hours == 8
        assert day.is_complete

    def test_split_day(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T09:00"),
                make_event(OUT, "2026-02-02T13:00"),
                make_event(IN, "2026-02-02T14:00"),
                make_event(OUT, "2026-02-02T18:00"),
            ]
        )

        day = only_day(summary)
        assert [p.duration_minutes for p in day.pairs] == [240, 240]
        assert day.total_minutes == 480

    def test_leading_orphan_clock_out_dropped(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(OUT, "2026-02-02T08:00", event_id="1"),
                make_event(IN, "2026-02-02T09:00", event_id="2"),
                make_event(OUT, "2026-02-02T17:00", event_id="3"),
            ]
        )

        day = only_day(summary)
        assert [(p.clock_in.id, p.clock_out.id) for p in day.pairs] == [("2", "3")]
        assert day.total_minutes == 480

    def test_consecutive_clock_ins(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T09:00", event_id="1"),
                make_event(IN, "2026-02-02T10:00", event_id="2"),
                make_event(OUT, "2026-02-02T17:00", event_id="3"),
            ]
        )

        day = only_day(summary)
        first, second = day.pairs
        assert (first.clock_in.id, first.clock_out.id) == ("1", "virtual-1")
        assert first.clock_out.is_synthetic
        assert first.duration_minutes == 60
        assert (second.clock_in.id, second.clock_out.id) == ("2", "3")
        assert second.duration_minutes == 420
        assert day.total_minutes == 480
        assert day.total_hours == 8
        assert day.is_complete

    def test_lone_clock_in_on_past_day_closed_at_end_of_day(self, aggregator, make_event):
        summary = aggregator.summarize([make_event(IN, "2026-02-02T08:00")])

        day = only_day(summary)
        [session] = day.pairs
        assert session.clock_out.id == "autoexit-1"
        # 09:00 local until 23:59:59.999 local
        assert session.duration_minutes == pytest.approx(900 - 1 / 60000)
        assert day.is_complete

    def test_synthetic_exit_ids_unique_across_days(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T08:00", event_id="mon"),
                make_event(IN, "2026-02-03T08:00", event_id="tue-1"),
                make_event(IN, "2026-02-03T09:00", event_id="tue-2"),
                make_event(IN, "2026-02-04T08:00", event_id="wed-1"),
                make_event(IN, "2026-02-04T09:00", event_id="wed-2"),
                make_event(OUT, "2026-02-04T17:00", event_id="wed-out"),
            ]
        )

        exit_ids = [
            p.clock_out.id
            for day in summary.daily_summaries
            for p in day.pairs
            if p.clock_out is not None and p.clock_out.is_synthetic
        ]
        assert sorted(exit_ids) == [
            "autoexit-mon",
            "autoexit-tue-2",
            "virtual-tue-1",
            "virtual-wed-1",
        ]

    def test_empty_range(self, aggregator):
        summary = aggregator.summarize([])

        assert summary == PeriodSummary()
        assert summary.daily_summaries == ()
        assert summary.total_days == 0
        assert summary.total_hours == 0
        assert summary.average_hours_per_day == 0


class TestDayFields:
    def test_open_session_today_is_incomplete(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-10T07:00"),
                make_event(OUT, "2026-02-10T09:00"),
                make_event(IN, "2026-02-10T10:00"),
            ]
        )

        day = only_day(summary)
        assert day.pairs[-1].clock_out is None
        assert day.pairs[-1].duration_minutes == 120
        assert day.total_minutes == 240
        assert not day.is_complete

    def test_only_orphan_clock_out(self, aggregator, make_event):
        summary = aggregator.summarize([make_event(OUT, "2026-02-02T17:00")])

        day = only_day(summary)
        assert day.pairs == ()
        assert day.total_minutes == 0
        assert day.total_hours == 0
        assert day.is_complete

    def test_same_timestamp_in_and_out_is_zero_length_session(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T09:00"),
                make_event(OUT, "2026-02-02T09:00"),
            ]
        )

        day = only_day(summary)
        assert len(day.pairs) == 1
        assert day.pairs[0].duration_minutes == 0
        assert day.total_minutes == 0

    def test_duplicate_clock_ins_same_second(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T09:00"),
                make_event(IN, "2026-02-02T09:00"),
                make_event(OUT, "2026-02-02T17:00"),
            ]
        )

        day = only_day(summary)
        assert [p.duration_minutes for p in day.pairs] == [0, 480]
        assert day.is_complete

    def test_has_modifications(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T09:00", status=EventStatus.MODIFIED),
                make_event(OUT, "2026-02-02T17:00"),
                make_event(IN, "2026-02-03T09:00"),
                make_event(OUT, "2026-02-03T17:00"),
            ]
        )

        flags = {day.date: day.has_modifications for day in summary.daily_summaries}
        assert flags == {"2026-02-02": True, "2026-02-03": False}

    def test_manual_flags_preserved_in_pairs(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T09:00", is_manual=True),
                make_event(OUT, "2026-02-02T13:00"),
            ]
        )

        [session] = only_day(summary).pairs
        assert session.clock_in.is_manual
        assert not session.clock_out.is_manual

    def test_events_grouped_by_local_day(self, aggregator, make_event):
        # 23:30 UTC belongs to the next local day at UTC+1.
        event = make_event(OUT, "2026-02-02T23:30")

        assert aggregator.day_key(event) == "2026-02-03"


class TestPeriodTotals:
    def test_totals_and_average(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-01T09:00"),
                make_event(OUT, "2026-02-01T17:00"),
                make_event(IN, "2026-02-02T10:00"),
                make_event(OUT, "2026-02-02T16:00"),
            ]
        )

        assert summary.total_days == 2
        assert summary.total_hours == 14
        assert summary.average_hours_per_day == 7

    def test_days_sorted_newest_first(self, aggregator, make_event):
        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-01T09:00"),
                make_event(OUT, "2026-02-01T17:00"),
                make_event(IN, "2026-02-03T09:00"),
                make_event(OUT, "2026-02-03T17:00"),
                make_event(IN, "2026-02-02T09:00"),
                make_event(OUT, "2026-02-02T17:00"),
            ]
        )

        assert [d.date for d in summary.daily_summaries] == [
            "2026-02-03",
            "2026-02-02",
            "2026-02-01",
        ]

    def test_average_excludes_incomplete_days(self, settings, make_event):
        # Wednesday is "today" and still open.
        aggregator = DailyAggregator(settings, FixedClock(utc("2026-02-04T15:00")))

        summary = aggregator.summarize(
            [
                make_event(IN, "2026-02-02T09:00"),
                make_event(OUT, "2026-02-02T17:00"),
                make_event(IN, "2026-02-03T09:00"),
                make_event(OUT, "2026-02-03T13:00"),
                make_event(IN, "2026-02-03T15:00"),
                make_event(OUT, "2026-02-03T18:00"),
                make_event(IN, "2026-02-04T09:00"),
            ]
        )

        days = {d.date: d for d in summary.daily_summaries}
        assert days["2026-02-02"].total_hours == 8
        assert days["2026-02-03"].total_hours == 7
        assert len(days["2026-02-03"].pairs) == 2
        assert not days["2026-02-04"].is_complete
        assert days["2026-02-04"].total_hours == 6
        assert summary.total_days == 3
        assert summary.total_hours == 21
        assert summary.average_hours_per_day == 10.5

    def test_average_is_zero_without_complete_days(self, aggregator, make_event):
        summary = aggregator.summarize([make_event(IN, "2026-02-10T10:00")])

        assert summary.total_hours == 2
        assert summary.average_hours_per_day == 0
        assert not math.isnan(summary.average_hours_per_day)


SEQUENCES = {
    "regular": [
        (IN, "2026-02-02T09:00"),
        (OUT, "2026-02-02T17:00"),
    ],
    "orphans": [
        (OUT, "2026-02-02T07:00"),
        (OUT, "2026-02-02T07:30"),
        (IN, "2026-02-02T09:00"),
        (OUT, "2026-02-02T12:00"),
        (OUT, "2026-02-02T13:00"),
    ],
    "more_ins_than_outs": [
        (IN, "2026-02-02T08:00"),
        (IN, "2026-02-02T08:30"),
        (IN, "2026-02-02T09:00"),
        (IN, "2026-02-02T09:30"),
        (OUT, "2026-02-02T16:00"),
    ],
    "multi_day_with_open_today": [
        (IN, "2026-02-08T09:00"),
        (IN, "2026-02-09T09:00"),
        (OUT, "2026-02-09T12:00"),
        (OUT, "2026-02-10T06:00"),
        (IN, "2026-02-10T08:00"),
    ],
    "cross_midnight": [
        (IN, "2026-02-05T20:00"),
        (OUT, "2026-02-06T02:00"),
    ],
}


@pytest.mark.parametrize("name", sorted(SEQUENCES))
class TestInvariants:
    def build(self, make_event, name):
        return [
            make_event(kind, when, event_id=f"{name}-{index}")
            for index, (kind, when) in enumerate(SEQUENCES[name])
        ]

    def test_durations_never_negative(self, aggregator, make_event, name):
        summary = aggregator.summarize(self.build(make_event, name))

        for day in summary.daily_summaries:
            assert all(p.duration_minutes >= 0 for p in day.pairs)
            assert day.total_minutes >= 0

    def test_day_total_is_sum_of_pairs(self, aggregator, make_event, name):
        summary = aggregator.summarize(self.build(make_event, name))

        for day in summary.daily_summaries:
            assert day.total_minutes == sum(p.duration_minutes for p in day.pairs)

    def test_complete_iff_every_pair_closed(self, aggregator, make_event, name):
        summary = aggregator.summarize(self.build(make_event, name))

        for day in summary.daily_summaries:
            assert day.is_complete == all(p.clock_out is not None for p in day.pairs)

    def test_orphans_never_used_as_clock_out(self, aggregator, make_event, name):
        events = self.build(make_event, name)
        summary = aggregator.summarize(events)
        used = {
            p.clock_out.id
            for day in summary.daily_summaries
            for p in day.pairs
            if p.clock_out is not None
        }

        for day in summary.daily_summaries:
            for p in day.pairs:
                assert p.clock_out is None or p.clock_out.timestamp >= p.clock_in.timestamp
        if name == "orphans":
            assert used == {"orphans-3"}

    def test_average_is_finite(self, aggregator, make_event, name):
        summary = aggregator.summarize(self.build(make_event, name))

        assert math.isfinite(summary.average_hours_per_day)

    def test_input_order_does_not_matter(self, aggregator, make_event, name):
        events = self.build(make_event, name)

        def shape(summary):
            return [
                (
                    day.date,
                    [
                        (
                            p.clock_in.id,
                            p.clock_out.id if p.clock_out else None,
                            p.duration_minutes,
                        )
                        for p in day.pairs
                    ],
                )
                for day in summary.daily_summaries
            ]

        expected = shape(aggregator.summarize(events))
        for ordering in permutations(events):
            assert shape(aggregator.summarize(list(ordering))) == expected


class TestTodayStatus:
    def test_clocked_in_today(self, aggregator, make_event):
        events = [
            make_event(IN, "2026-02-10T07:00"),
            make_event(OUT, "2026-02-10T09:00"),
            make_event(IN, "2026-02-10T11:00", event_id="last"),
        ]

        status = aggregator.today_status(events)

        assert status.is_clocked_in
        assert status.last_event.id == "last"
        assert status.total_hours_today == 3
        assert len(status.today_events) == 3

    def test_previous_days_ignored(self, aggregator, make_event):
        events = [
            make_event(IN, "2026-02-09T07:00"),
            make_event(OUT, "2026-02-10T09:00"),
        ]

        status = aggregator.today_status(events)

        assert not status.is_clocked_in
        assert status.total_hours_today == 0
        assert [e.timestamp for e in status.today_events] == [utc("2026-02-10T09:00")]

    def test_no_events(self, aggregator):
        status = aggregator.today_status([])

        assert not status.is_clocked_in
        assert status.last_event is None
        assert status.total_hours_today == 0
        assert status.today_events == ()

    def test_explicit_last_event_kept(self, aggregator, make_event):
        yesterday = make_event(IN, "2026-02-09T07:00")

        status = aggregator.today_status([], yesterday)

        assert status.last_event is yesterday
        assert not status.is_clocked_in


def test_default_clock_is_utc_now(settings):
    aggregator = DailyAggregator(settings)

    assert aggregator.summarize([]) == PeriodSummary()
