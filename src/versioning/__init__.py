"""Specifier expansion and semantic version matching.

- models.py: SourceSpecifier / ResolvedSource data models
- parser.py: ``scheme:path@range`` parsing and mirror expansion
- matcher.py: tag parsing and npm-style range matching
"""

from .models import MirrorRegistry, ResolvedSource, SourceSpecifier
from .parser import expand_source, parse_specifier
from .matcher import match_tag, parse_tag_version

__all__ = [
    "MirrorRegistry",
    "ResolvedSource",
    "SourceSpecifier",
    "expand_source",
    "parse_specifier",
    "match_tag",
    "parse_tag_version",
]
