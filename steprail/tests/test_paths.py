from __future__ import annotations

import pytest

from steprail.bindings.paths import EACH, IndexSegment, KeySegment, get_path, has_each, parse_path, root_key

OUTPUT = {
    "total": 42,
    "customer": {"name": "Ada", "tags": ["vip", "beta"]},
    "rows": [{"email": "a@example.com"}, {"email": "b@example.com"}, {"other": 1}],
    "first name": "Grace",
}


def test_parse_path_segments() -> None:
    assert parse_path("rows[0].email") == (KeySegment("rows"), IndexSegment(0), KeySegment("email"))
    assert parse_path("rows[].email") == (KeySegment("rows"), EACH, KeySegment("email"))
    assert parse_path("data['first name']") == (KeySegment("data"), KeySegment("first name"))
    assert parse_path("") == ()
    assert parse_path(None) == ()


@pytest.mark.parametrize(
    "path, expected",
    [
        ("", OUTPUT),
        ("total", 42),
        ("customer.name", "Ada"),
        ("customer.tags[1]", "beta"),
        ("customer.tags.0", "vip"),
        ("customer.tags[-1]", "beta"),
        ("rows[1].email", "b@example.com"),
        ("['first name']", "Grace"),
    ],
)
def test_get_path_resolves_nested_values(path: str, expected) -> None:
    assert get_path(OUTPUT, path) == expected


@pytest.mark.parametrize(
    "path",
    ["missing", "customer.missing.deeper", "customer.tags[9]", "total.value", "rows[x]", "customer.name[0]"],
)
def test_missing_paths_yield_none(path: str) -> None:
    assert get_path(OUTPUT, path) is None


def test_each_segment_maps_over_arrays() -> None:
    assert get_path(OUTPUT, "rows[].email") == ["a@example.com", "b@example.com", None]
    assert get_path(OUTPUT, "customer[].name") is None
    assert has_each("rows[].email")
    assert not has_each("rows[0].email")


def test_resolution_is_idempotent() -> None:
    first = get_path(OUTPUT, "rows[].email")
    second = get_path(OUTPUT, "rows[].email")
    assert first == second
    assert get_path(None, "anything") is None


def test_root_key() -> None:
    assert root_key("rows[0].email") == "rows"
    assert root_key("[0]") is None
    assert root_key("") is None
