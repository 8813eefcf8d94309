import pytest

from clubsphere.exceptions import InvalidInputError
from clubsphere.utils.object_ids import parse_object_id
from clubsphere.utils.query_filters import CLUB_SORTS, EVENT_SORTS, build_club_filter, build_event_filter, build_sort


def test_club_filter_escapes_search_text():
    query = build_club_filter(search="  c++ (beginners) ", category="tech", status="approved")

    assert query["status"] == "approved"
    assert query["category"] == "tech"
    assert query["$or"][0] == {"clubName": {"$regex": r"c\+\+\ \(beginners\)", "$options": "i"}}
    assert query["$or"][1]["description"]["$regex"] == r"c\+\+\ \(beginners\)"


def test_blank_search_is_ignored():
    assert build_club_filter(search="   ") == {}


def test_event_filter_keeps_false_is_paid():
    query = build_event_filter(club_id="abc", is_paid=False)

    assert query == {"clubId": "abc", "isPaid": False}


def test_build_sort_defaults_to_newest():
    assert build_sort(None, CLUB_SORTS) == [("createdAt", -1)]
    assert build_sort("date_asc", EVENT_SORTS) == [("eventDate", 1)]


def test_build_sort_rejects_unknown_key():
    with pytest.raises(InvalidInputError):
        build_sort("date_asc", CLUB_SORTS)


@pytest.mark.parametrize("value", ["", "123", "zzzzzzzzzzzzzzzzzzzzzzzz", None])
def test_parse_object_id_rejects_malformed(value):
    with pytest.raises(InvalidInputError):
        parse_object_id(value, "Club ID")
