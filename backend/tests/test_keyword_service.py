from datetime import UTC, date, datetime, timedelta

import pytest
from fastapi import HTTPException

from rank_tracker.models.keyword import RankObservation, TrackedKeyword
from rank_tracker.services import keyword_service


def test_add_keywords_splits_lines_strips_tags_and_skips_blanks(db_session):
    raw = "blue widgets\r\n<b>red widgets</b>\r\n   \n\rgreen <i>widgets</i>  \r"

    inserted = keyword_service.add_keywords(db_session, raw, target_url=" https://target.com/ ", search_engine="google.de")

    assert inserted == 3
    rows = db_session.query(TrackedKeyword).order_by(TrackedKeyword.id).all()
    assert [row.keyword for row in rows] == ["blue widgets", "red widgets", "green widgets"]
    assert {row.target_url for row in rows} == {"https://target.com/"}
    assert {row.search_engine for row in rows} == {"google.de"}
    assert all(row.active for row in rows)
    assert all(row.last_checked_at is None for row in rows)


def test_add_keywords_defaults_engine_and_empty_target(db_session):
    assert keyword_service.add_keywords(db_session, "widget", target_url="  ", search_engine="") == 1
    row = db_session.query(TrackedKeyword).one()
    assert row.target_url is None
    assert row.search_engine == "google.com"


def test_add_keywords_with_only_blank_lines_inserts_nothing(db_session):
    assert keyword_service.add_keywords(db_session, "\n  \r\n<br>") == 0
    assert db_session.query(TrackedKeyword).count() == 0


def test_select_due_keywords_prefers_never_checked_then_oldest(db_session):
    now = datetime.now(UTC)
    checked_yesterday = TrackedKeyword(keyword="k2", active=True, last_checked_at=now - timedelta(days=1))
    checked_last_week = TrackedKeyword(keyword="k3", active=True, last_checked_at=now - timedelta(days=7))
    never_checked = TrackedKeyword(keyword="k1", active=True)
    paused = TrackedKeyword(keyword="paused", active=False)
    db_session.add_all([checked_yesterday, checked_last_week, never_checked, paused])
    db_session.commit()

    assert [row.keyword for row in keyword_service.select_due_keywords(db_session, 1)] == ["k1"]
    assert [row.keyword for row in keyword_service.select_due_keywords(db_session, 10)] == ["k1", "k3", "k2"]
    assert keyword_service.select_due_keywords(db_session, 0) == []


def test_list_keywords_pages_newest_first(db_session):
    base = datetime(2026, 1, 1, tzinfo=UTC)
    db_session.add_all(
        [TrackedKeyword(keyword=f"kw-{index}", active=True, created_at=base + timedelta(minutes=index)) for index in range(105)]
    )
    db_session.commit()

    first = keyword_service.list_keywords(db_session, page=1)
    second = keyword_service.list_keywords(db_session, page=2)

    assert first["total"] == 105
    assert first["total_pages"] == 2
    assert len(first["items"]) == 100
    assert first["items"][0].keyword == "kw-104"
    assert [row.keyword for row in second["items"]] == ["kw-4", "kw-3", "kw-2", "kw-1", "kw-0"]


def test_set_active_and_delete_cascade(db_session):
    keyword_service.add_keywords(db_session, "widget")
    row = db_session.query(TrackedKeyword).one()
    db_session.add(RankObservation(keyword_id=row.id, checked_date=date(2026, 10, 1), position=4, url_found="https://a.com"))
    db_session.commit()

    assert keyword_service.set_active(db_session, row.id, False).active is False

    keyword_service.delete_keyword(db_session, row.id)
    assert db_session.query(TrackedKeyword).count() == 0
    assert db_session.query(RankObservation).count() == 0


def test_get_keyword_or_404_raises_for_unknown_id(db_session):
    with pytest.raises(HTTPException) as exc_info:
        keyword_service.get_keyword_or_404(db_session, 9999)
    assert exc_info.value.status_code == 404


@pytest.mark.parametrize(
    ("best", "position", "expected_best"),
    [
        (None, 7, 7),
        (5, 3, 3),
        (3, 9, 3),
        (3, None, 3),
        (None, None, None),
        (None, 0, None),
        (4, -1, 4),
        (4, 4, 4),
    ],
)
def test_apply_observation_best_position_rule(best, position, expected_best):
    keyword = TrackedKeyword(keyword="widget", active=True, best_position=best, last_position=2)
    checked_at = datetime(2026, 10, 17, 9, 0, tzinfo=UTC)

    keyword_service.apply_observation(keyword, position, checked_at)

    assert keyword.best_position == expected_best
    assert keyword.last_position == position
    assert keyword.last_checked_at == checked_at
