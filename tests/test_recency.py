from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from fleetview.models import PositionReport
from fleetview.state.recency import filter_today, is_same_local_day, local_date

MANILA = timezone(timedelta(hours=8))


def _report(unit_id: str, updated_at: datetime) -> PositionReport:
    return PositionReport.model_validate({"unitID": unit_id, "updatedAt": updated_at})


def test_yesterday_just_before_midnight_is_excluded() -> None:
    now = datetime(2026, 3, 2, 0, 5, tzinfo=MANILA)
    late_yesterday = _report("U1", datetime(2026, 3, 1, 23, 59, tzinfo=MANILA))

    assert filter_today([late_yesterday], now, MANILA) == ()


def test_early_today_is_included() -> None:
    now = datetime(2026, 3, 2, 23, 55, tzinfo=MANILA)
    early = _report("U1", datetime(2026, 3, 2, 0, 1, tzinfo=MANILA))

    assert filter_today([early], now, MANILA) == (early,)


def test_filter_keeps_exactly_todays_reports_in_order() -> None:
    now = datetime(2026, 3, 2, 12, 0, tzinfo=MANILA)
    reports = [
        _report("A", datetime(2026, 3, 2, 9, 0, tzinfo=MANILA)),
        _report("B", datetime(2026, 3, 1, 9, 0, tzinfo=MANILA)),
        _report("C", datetime(2026, 3, 2, 11, 0, tzinfo=MANILA)),
        _report("D", datetime(2026, 3, 3, 0, 0, tzinfo=MANILA)),
    ]

    assert [r.unit_id for r in filter_today(reports, now, MANILA)] == ["A", "C"]


def test_local_day_uses_zone_not_utc() -> None:
    # 17:00 UTC is already the next day at UTC+8.
    instant = datetime(2026, 3, 1, 17, 0, tzinfo=UTC)

    assert local_date(instant, MANILA) == datetime(2026, 3, 2).date()
    assert local_date(instant, UTC) == datetime(2026, 3, 1).date()
    assert is_same_local_day(instant, datetime(2026, 3, 2, 8, 0, tzinfo=MANILA), MANILA)
