"""Error taxonomy for source resolution, cloning and verification.

Each failure is a distinct class so callers can separate conditions worth
retrying later (transport) from conditions that must never be trusted
(verification). The CLI maps every class onto an exit code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from constants import ExitCodes

if TYPE_CHECKING:
    from repository.cloner import CloneResult


class MirrorFetchError(Exception):
    """Base class for every error raised by mirrorfetch."""

    exit_code = ExitCodes.REPOSITORY_ERROR
    retryable = False


class InvalidSpecifier(MirrorFetchError, ValueError):
    """Raised when user input cannot be interpreted."""

    exit_code = ExitCodes.INVALID_INPUT


class MalformedSpecifier(InvalidSpecifier):
    """Raised when a specifier does not match ``scheme:path@range``."""

    def __init__(self, specifier: str, reason: str):
        super().__init__(f"Malformed specifier '{specifier}': {reason}")
        self.specifier = specifier
        self.reason = reason


class InvalidVersionRange(InvalidSpecifier):
    """Raised when a version range is not valid semver range syntax."""

    def __init__(self, version_range: str, reason: str = ""):
        msg = f"Invalid version range '{version_range}'"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.version_range = version_range


class UnknownScheme(MirrorFetchError, KeyError):
    """Raised when a specifier names a scheme missing from the registry."""

    exit_code = ExitCodes.INVALID_INPUT

    def __init__(self, scheme: str, known: Sequence[str] = ()):
        super().__init__(scheme)
        self.scheme = scheme
        self.known = list(known)

    def __str__(self) -> str:
        known = ", ".join(self.known) if self.known else "none"
        return f"Unknown scheme '{self.scheme}' (known schemes: {known})"


class UnreachableRepository(MirrorFetchError):
    """Raised when the transport to a repository location fails."""

    exit_code = ExitCodes.CONNECTION_ERROR
    retryable = True

    def __init__(self, location: str, reason: str = ""):
        msg = f"Repository unreachable: {location}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.location = location
        self.reason = reason


class AllRemotesUnreachable(UnreachableRepository):
    """Raised when every candidate location failed at transport level."""

    def __init__(self, attempts: List[Tuple[str, str]]):
        locations = ", ".join(location for location, _ in attempts) or "none"
        super().__init__(locations, f"all {len(attempts)} remote(s) failed")
        self.attempts = list(attempts)


class NotAGitRepository(MirrorFetchError):
    """Raised when a local path exists but is not a git repository."""

    def __init__(self, location: str, reason: str = ""):
        msg = f"Not a git repository: {location}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.location = location


class GitCommandError(MirrorFetchError):
    """Raised when a local git operation fails for a non-transport reason."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        super().__init__(
            f"git {' '.join(command)} failed (rc={returncode}): {stderr}".rstrip(": ")
        )
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr


class NoMatchingVersion(MirrorFetchError):
    """Raised when no tag satisfies the requested range."""

    exit_code = ExitCodes.NO_MATCHING_VERSION

    def __init__(self, version_range: str, tags: Sequence[str] = ()):
        super().__init__(
            f"No tag satisfies '{version_range}' ({len(tags)} tag(s) available)"
        )
        self.version_range = version_range
        self.tags = list(tags)


class SignatureVerificationFailed(MirrorFetchError):
    """Raised when the resolved revision fails signature verification.

    The checkout is left on disk and marked untrusted; ``result`` describes it.
    """

    exit_code = ExitCodes.VERIFICATION_FAILED

    def __init__(self, reason: str, result: Optional["CloneResult"] = None):
        super().__init__(f"Signature verification failed: {reason}")
        self.reason = reason
        self.result = result


class DestinationNotEmpty(MirrorFetchError):
    """Raised when the clone destination already holds files."""

    exit_code = ExitCodes.FILE_ERROR

    def __init__(self, path: str):
        super().__init__(f"Destination is not empty: {path}")
        self.path = path


class ConfigError(MirrorFetchError):
    """Raised when registry or key material configuration is unusable."""

    exit_code = ExitCodes.FILE_ERROR
