from datetime import datetime, timedelta, timezone

import pytest

from core.errors import ValidationError
from clients.wanikani.inputs import (
    make_cache_key,
    make_marker_key,
    normalize_levels,
    normalize_subject_id,
    normalize_token,
    normalize_updated_after,
    sanitize_endpoint,
    with_query,
)
from clients.wanikani.policies import ResourceKind, TTL_CONFIG, get_ttl_for_kind, parse_kind


def test_normalize_token():
    assert normalize_token("  abcd-1234  ") == "abcd-1234"
    with pytest.raises(ValidationError):
        normalize_token("")
    with pytest.raises(ValidationError):
        normalize_token("abc/../def")


def test_cache_key_uses_endpoint_and_token_suffix():
    token = "0123456789abcdef0123456789abcdef"
    assert make_cache_key("wanikani", "/user", token) == "wanikani-_user-89abcdef"
    assert make_cache_key("wanikani", "/subjects?levels=1,2", token) == "wanikani-_subjects_levels_1_2-89abcdef"
    assert make_marker_key("wanikani", "reviewStats", token) == "wanikani-last-sync-reviewStats-89abcdef"


def test_cache_keys_differ_per_account():
    a = make_cache_key("wanikani", "/user", "aaaaaaaa11111111")
    b = make_cache_key("wanikani", "/user", "aaaaaaaa22222222")
    assert a != b


def test_sanitize_endpoint():
    assert sanitize_endpoint("/assignments?updated_after=2024-01-01T00%3A00%3A00Z") == (
        "_assignments_updated_after_2024_01_01T00_3A00_3A00Z"
    )
    assert sanitize_endpoint("") == ""


def test_normalize_levels():
    assert normalize_levels(None) == []
    assert normalize_levels([3, 1, 3, "2"]) == [1, 2, 3]
    with pytest.raises(ValidationError):
        normalize_levels([0])
    with pytest.raises(ValidationError):
        normalize_levels([61])
    with pytest.raises(ValidationError):
        normalize_levels(["ten"])


def test_normalize_subject_id():
    assert normalize_subject_id("440") == 440
    with pytest.raises(ValidationError):
        normalize_subject_id(-1)
    with pytest.raises(ValidationError):
        normalize_subject_id("abc")


def test_normalize_updated_after():
    assert normalize_updated_after(None) is None
    assert normalize_updated_after("   ") is None
    assert normalize_updated_after("2024-01-01T00:00:00.000000Z") == "2024-01-01T00:00:00.000000Z"
    assert normalize_updated_after(datetime(2024, 1, 1)) == "2024-01-01T00:00:00Z"

    jst = timezone(timedelta(hours=9))
    assert normalize_updated_after(datetime(2024, 1, 1, 9, tzinfo=jst)) == "2024-01-01T00:00:00Z"

    with pytest.raises(ValidationError):
        normalize_updated_after("yesterday")


def test_with_query_picks_separator_and_encodes():
    assert with_query("/reviews", "updated_after", "2024-01-01T00:00:00Z") == (
        "/reviews?updated_after=2024-01-01T00%3A00%3A00Z"
    )
    assert with_query("/subjects?levels=1", "updated_after", "a+b") == "/subjects?levels=1&updated_after=a%2Bb"


def test_ttl_table():
    hour = 60 * 60 * 1000
    assert get_ttl_for_kind(ResourceKind.SUBJECTS) == 24 * hour
    assert get_ttl_for_kind(ResourceKind.USER) == hour
    assert get_ttl_for_kind(ResourceKind.ASSIGNMENTS) == hour // 2
    assert get_ttl_for_kind(ResourceKind.REVIEW_STATISTICS) == hour // 2
    assert get_ttl_for_kind(ResourceKind.REVIEWS) is None
    assert get_ttl_for_kind(ResourceKind.SUMMARY) == hour
    assert get_ttl_for_kind(ResourceKind.LEVEL_PROGRESSIONS) == 4 * hour
    assert get_ttl_for_kind(ResourceKind.SPACED_REPETITION_SYSTEMS) == 48 * hour
    assert set(TTL_CONFIG) == set(ResourceKind)


@pytest.mark.parametrize(
    "raw",
    ["reviewStats", "review_statistics", "REVIEW_STATISTICS", ResourceKind.REVIEW_STATISTICS],
)
def test_parse_kind_spellings(raw):
    assert parse_kind(raw) is ResourceKind.REVIEW_STATISTICS


def test_parse_kind_unknown():
    with pytest.raises(ValidationError):
        parse_kind("vocabulary")
