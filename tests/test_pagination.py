"""Tests for Link-header parsing and paginated traversal."""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prdecorator.errors import ApiError
from prdecorator.pagination import PageTraverser, find_next_link
from prdecorator.rest import RestClient


def _response(status_code: int, payload=None, headers: dict | None = None, text: str = ""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else []
    return response


def _traverser(responses, max_pages: int = PageTraverser.DEFAULT_MAX_PAGES):
    session = Mock()
    session.headers = {}
    session.request.side_effect = responses
    client = RestClient("https://api.example.com", session=session)
    return PageTraverser(client, max_pages=max_pages), session


@pytest.mark.parametrize(
    "header, expected",
    [
        ('<http://other>; rel="next"', "http://other"),
        ('<http://other>; rel="last", <http://other2>; rel="next"', "http://other2"),
        ("<http://other>; rel=next", "http://other"),
        ('<http://other>; REL="next"', "http://other"),
        ('<http://other>; rel="last"', None),
        ('<http://other>; rel="prev", <http://first>; rel="first"', None),
        ('http://other>; rel="next"', None),
        ('<http://other; rel="next"', None),
        ("<http://other>", None),
        ("", None),
        (None, None),
    ],
)
def test_find_next_link(header, expected):
    """Verify the next-link grammar accepts quoted and unquoted rel values only for next."""
    assert find_next_link(header) == expected


def test_traverse_stops_fetching_after_first_match():
    """Verify no page after the one holding the match is requested."""
    traverser, session = _traverser(
        [
            _response(200, [{"id": 1}], headers={"Link": '<https://api.example.com/items?page=2>; rel="next"'}),
            _response(200, [{"id": 2}, {"id": 3}], headers={"Link": '<https://api.example.com/items?page=3>; rel="next"'}),
            _response(200, [{"id": 4}]),
        ]
    )

    match = traverser.traverse(
        "https://api.example.com/items",
        lambda item: item if item["id"] == 2 else None,
    )

    assert match == {"id": 2}
    assert session.request.call_count == 2
    assert session.request.call_args_list[1].args == ("GET", "https://api.example.com/items?page=2")


def test_traverse_returns_none_when_pages_are_exhausted():
    """Verify traversal ends with None once a page carries no next link."""
    traverser, session = _traverser(
        [
            _response(200, [{"id": 1}], headers={"Link": '<https://api.example.com/items?page=2>; rel="next"'}),
            _response(200, [{"id": 2}], headers={"Link": '<https://api.example.com/items?page=1>; rel="first"'}),
        ]
    )

    assert traverser.traverse("https://api.example.com/items", lambda item: None) is None
    assert session.request.call_count == 2


def test_iter_items_uses_item_extractor_and_sends_params_on_first_page_only():
    """Verify wrapped listings are unwrapped and query params are not repeated on next pages."""
    traverser, session = _traverser(
        [
            _response(200, {"repositories": [{"id": 1}]}, headers={"Link": '<https://api.example.com/r?page=2>; rel="next"'}),
            _response(200, {"repositories": [{"id": 2}]}),
        ]
    )

    items = list(
        traverser.iter_items(
            "https://api.example.com/r",
            items=lambda body: body["repositories"],
            params={"per_page": 100},
        )
    )

    assert items == [{"id": 1}, {"id": 2}]
    assert session.request.call_args_list[0].kwargs["params"] == {"per_page": 100}
    assert session.request.call_args_list[1].kwargs["params"] is None


def test_iter_items_raises_when_page_bound_is_exceeded():
    """Verify an endless next chain is cut off with an ApiError."""
    looping = _response(200, [{"id": 1}], headers={"Link": '<https://api.example.com/items>; rel="next"'})
    traverser, session = _traverser([looping, looping, looping], max_pages=2)

    with pytest.raises(ApiError, match="exceeded 2 pages"):
        list(traverser.iter_items("https://api.example.com/items"))

    assert session.request.call_count == 2


def test_traverse_fails_whole_traversal_on_http_error():
    """Verify a failed page aborts traversal with an ApiError carrying the status."""
    traverser, _ = _traverser(
        [
            _response(200, [{"id": 1}], headers={"Link": '<https://api.example.com/items?page=2>; rel="next"'}),
            _response(502, text="bad gateway"),
        ]
    )

    with pytest.raises(ApiError) as exc_info:
        traverser.traverse("https://api.example.com/items", lambda item: None)

    assert exc_info.value.status_code == 502


def test_iter_items_rejects_non_list_pages():
    """Verify an object page without an extractor is reported as an API error."""
    traverser, _ = _traverser([_response(200, {"unexpected": True})])

    with pytest.raises(ApiError):
        list(traverser.iter_items("https://api.example.com/items"))
