"""Data models for source specifiers and their expansion."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

# Scheme name -> ordered mirror base locations. Order is fallback priority.
MirrorRegistry = Mapping[str, Sequence[str]]


@dataclass(frozen=True)
class SourceSpecifier:
    """A parsed ``scheme:path@range`` specifier."""
    scheme: str
    path: str
    range: str
    raw: str = field(default="", compare=False)


@dataclass(frozen=True)
class ResolvedSource:
    """Ordered candidate repository locations plus the unvalidated version range.

    Every location in ``git`` is expected to host identical content.
    """
    git: Tuple[str, ...]
    version: str

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping form, e.g. for JSON output."""
        locations: List[str] = list(self.git)
        return {"git": locations, "version": self.version}
