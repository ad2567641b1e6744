"""Tests for semver tag matching."""

import pytest

from errors import InvalidSpecifier, InvalidVersionRange
from versioning.matcher import match_tag, parse_tag_version

TAGS = ["v1.0.0", "v1.1.0", "v2.0.0"]


@pytest.mark.parametrize("version_range,expected", [
    ("^1.0.0", "v1.1.0"),
    ("^1.1.0", "v1.1.0"),
    ("^2.0.0", "v2.0.0"),
    ("^3.0.0", None),
    ("~1.0.0", "v1.0.0"),
    ("~1.1.0", "v1.1.0"),
    ("1.0.0", "v1.0.0"),
    ("2.0.0", "v2.0.0"),
    ("1.2.0", None),
])
def test_basic_ranges(version_range, expected):
    assert match_tag(TAGS, version_range) == expected


def test_caret_with_zero_major_stays_within_minor():
    tags = ["v0.1.0", "v0.1.5", "v0.2.0"]
    assert match_tag(tags, "^0.1.0") == "v0.1.5"


def test_tilde_stays_within_minor():
    tags = ["1.2.3", "1.2.9", "1.3.0"]
    assert match_tag(tags, "~1.2.3") == "1.2.9"


def test_unparsable_tags_are_skipped():
    tags = ["latest", "release-1.4", "v1.0", "v1.0.1", "vv1.0.2", ""]
    assert match_tag(tags, "^1.0.0") == "v1.0.1"


def test_input_order_does_not_change_choice():
    assert match_tag(list(reversed(TAGS)), "^1.0.0") == "v1.1.0"


def test_tie_resolves_to_first_in_input_order():
    assert match_tag(["1.1.0", "v1.1.0"], "^1.0.0") == "1.1.0"
    assert match_tag(["v1.1.0", "1.1.0"], "^1.0.0") == "v1.1.0"


def test_prerelease_ranks_below_release():
    tags = ["v1.1.0-rc.1", "v1.1.0", "v1.0.0"]
    assert match_tag(tags, "^1.0.0") == "v1.1.0"


def test_prerelease_excluded_unless_range_names_one():
    assert match_tag(["v1.1.0-rc.1", "v1.0.0"], "^1.0.0") == "v1.0.0"
    assert match_tag(["v1.1.0-rc.1", "v1.1.0-rc.2"], "^1.1.0-rc.1") == "v1.1.0-rc.2"


def test_empty_tag_list():
    assert match_tag([], "^1.0.0") is None


def test_accepts_any_iterable():
    assert match_tag(iter(TAGS), "^1.0.0") == "v1.1.0"


def test_invalid_range():
    with pytest.raises(InvalidVersionRange) as excinfo:
        match_tag(TAGS, "^^nope")
    assert isinstance(excinfo.value, InvalidSpecifier)


def test_result_is_maximal_member():
    tags = ["v1.0.0", "v1.4.2", "v1.10.0", "v1.9.9", "v2.0.0-beta", "junk"]
    chosen = match_tag(tags, "^1.0.0")
    assert chosen in tags
    chosen_version = parse_tag_version(chosen)
    for tag in tags:
        version = parse_tag_version(tag)
        if version is not None and version.major == 1:
            assert version <= chosen_version
    assert chosen == "v1.10.0"


class TestParseTagVersion:
    """Tests for tag -> Version parsing."""

    def test_strips_single_v(self):
        assert str(parse_tag_version("v1.2.3")) == "1.2.3"

    def test_plain_version(self):
        assert str(parse_tag_version("1.2.3")) == "1.2.3"

    def test_not_semver(self):
        assert parse_tag_version("v1.2") is None
        assert parse_tag_version("vv1.2.3") is None
        assert parse_tag_version(None) is None
