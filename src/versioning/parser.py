"""Specifier parsing and expansion into candidate repository locations.

Both functions are pure: the mirror registry is passed in explicitly and
never mutated, reordered or deduplicated.
"""

import os

from constants import Constants
from errors import MalformedSpecifier, UnknownScheme
from .models import MirrorRegistry, ResolvedSource, SourceSpecifier


def parse_specifier(text: str) -> SourceSpecifier:
    """Parse ``scheme:path@range`` into a SourceSpecifier.

    The scheme ends at the first ':' and the range starts after the last '@',
    so the path may itself contain ':' or '@'.

    Raises:
        MalformedSpecifier: if a separator or any of the three parts is missing.
    """
    raw = text.strip() if isinstance(text, str) else ""
    if ':' not in raw:
        raise MalformedSpecifier(raw, "missing ':' after scheme")
    scheme, rest = raw.split(':', 1)
    if '@' not in rest:
        raise MalformedSpecifier(raw, "missing '@' before version range")
    path, version_range = rest.rsplit('@', 1)

    if not scheme:
        raise MalformedSpecifier(raw, "empty scheme")
    if not path.strip('/'):
        raise MalformedSpecifier(raw, "empty path")
    if '..' in path.split('/'):
        raise MalformedSpecifier(raw, "path must not contain '..' segments")
    if not version_range:
        raise MalformedSpecifier(raw, "empty version range")
    return SourceSpecifier(scheme=scheme, path=path, range=version_range, raw=raw)


def _join_remote(base: str, path: str) -> str:
    """Join a network mirror base with a repository path and the .git suffix."""
    return f"{base.rstrip('/')}/{path.strip('/')}{Constants.GIT_SUFFIX}"


def _join_local(base: str, path: str) -> str:
    """Join a local base directory with a repository path and its .git directory."""
    return os.path.join(base, path.strip('/'), Constants.GIT_SUFFIX)


def expand_source(registry: MirrorRegistry, text: str) -> ResolvedSource:
    """Expand a specifier into one candidate location per registered mirror.

    Args:
        registry: Scheme name -> ordered mirror bases.
        text: Specifier string such as ``github:org/repo@^1.2.3``.

    Returns:
        ResolvedSource with candidates in registry order and the raw range.

    Raises:
        MalformedSpecifier: bad specifier syntax.
        UnknownScheme: the scheme is not in the registry (or lists no mirrors).
    """
    spec = parse_specifier(text)
    bases = registry.get(spec.scheme)
    if not bases:
        raise UnknownScheme(spec.scheme, sorted(registry))

    join = _join_local if spec.scheme == Constants.FILE_SCHEME else _join_remote
    return ResolvedSource(
        git=tuple(join(base, spec.path) for base in bases),
        version=spec.range,
    )
