"""Semantic version matching of repository tags against npm-style ranges."""

from typing import Iterable, Optional

import semantic_version

from errors import InvalidVersionRange


def parse_tag_version(tag: str) -> Optional[semantic_version.Version]:
    """Parse a tag such as ``v1.2.3`` into a Version, or None if it is not semver."""
    if not isinstance(tag, str):
        return None
    text = tag[1:] if tag.startswith('v') else tag
    try:
        return semantic_version.Version(text)
    except ValueError:
        return None


def parse_range(version_range: str) -> semantic_version.NpmSpec:
    """Parse a caret/tilde/exact range, raising InvalidVersionRange on bad syntax."""
    try:
        return semantic_version.NpmSpec(version_range.strip())
    except ValueError as exc:
        raise InvalidVersionRange(version_range, str(exc)) from exc


def match_tag(tags: Iterable[str], version_range: str) -> Optional[str]:
    """Select the highest tag whose version satisfies ``version_range``.

    Tags that do not parse as semver are skipped. When several tags normalize
    to the same version (``v1.0.0`` and ``1.0.0``), the first one in input
    order wins.

    Args:
        tags: Tag names, in listing order.
        version_range: npm-style range such as ``^1.2.3``, ``~1.1.0`` or ``1.0.0``.

    Returns:
        The chosen tag name, or None when nothing satisfies the range.
    """
    spec = parse_range(version_range)

    best_tag = None
    best_version = None
    for tag in tags:
        version = parse_tag_version(tag)
        if version is None or not spec.match(version):
            continue
        # Build metadata carries no precedence.
        version = version.truncate('prerelease')
        if best_version is None or version > best_version:
            best_tag, best_version = tag, version
    return best_tag
