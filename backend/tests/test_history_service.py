from datetime import date

import pytest

from rank_tracker.models.keyword import RankObservation, TrackedKeyword
from rank_tracker.services import history_service


@pytest.mark.parametrize(
    ("today", "months", "expected"),
    [
        (date(2026, 10, 17), 12, date(2025, 10, 17)),
        (date(2026, 3, 31), 1, date(2026, 2, 28)),
        (date(2024, 2, 29), 12, date(2023, 2, 28)),
        (date(2026, 1, 15), 3, date(2025, 10, 15)),
    ],
)
def test_retention_cutoff_clamps_day_to_month_length(today, months, expected):
    assert history_service.retention_cutoff(today, months) == expected


def test_prune_history_drops_rows_older_than_retention(db_session):
    keyword = TrackedKeyword(keyword="widget", active=True)
    db_session.add(keyword)
    db_session.flush()
    today = date(2026, 10, 17)
    db_session.add_all(
        [
            RankObservation(keyword_id=keyword.id, checked_date=date(2025, 9, 17), position=9, url_found=""),
            RankObservation(keyword_id=keyword.id, checked_date=date(2025, 10, 17), position=8, url_found=""),
            RankObservation(keyword_id=keyword.id, checked_date=date(2025, 11, 17), position=7, url_found=""),
        ]
    )
    db_session.commit()

    assert history_service.prune_history(db_session, today, 12) == 1

    remaining = [row.checked_date for row in history_service.list_history(db_session, keyword.id)]
    assert remaining == [date(2025, 11, 17), date(2025, 10, 17)]


def test_list_history_is_newest_first(db_session):
    keyword = TrackedKeyword(keyword="widget", active=True)
    db_session.add(keyword)
    db_session.flush()
    history_service.append_observation(db_session, keyword.id, date(2026, 10, 15), 5, "https://a.com")
    history_service.append_observation(db_session, keyword.id, date(2026, 10, 17), None, "")
    history_service.append_observation(db_session, keyword.id, date(2026, 10, 16), 4, "https://a.com")
    db_session.commit()

    rows = history_service.list_history(db_session, keyword.id)

    assert [row.checked_date.day for row in rows] == [17, 16, 15]
    assert rows[0].position is None
    assert rows[0].url_found == ""
