"""Verified cloning of a resolved source from redundant mirrors.

Candidates are tried strictly in order and the first transport success wins;
mirror order is an availability policy only. Integrity is established after
the clone by verifying the signature on the selected tag, and a failed
verification is never retried against another mirror.

Destination policy:

* the destination must be absent or empty before cloning;
* a failed transport attempt is discarded so the next mirror starts clean;
* a transport cancelled or interrupted after git created ``.git`` is marked
  untrusted and left in place, like any later failure;
* once a transport succeeds, an untrusted marker is written into the clone's
  ``.git`` directory and only removed on VERIFIED. Any later failure,
  timeout or cancellation leaves the checkout and the marker in place for
  inspection; removing it is the caller's job.
"""
from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from errors import (
    AllRemotesUnreachable,
    DestinationNotEmpty,
    NoMatchingVersion,
    NotAGitRepository,
    SignatureVerificationFailed,
    UnreachableRepository,
)
from repository.git_client import GitClient
from repository.signature import split_tag_signature
from versioning.matcher import match_tag, parse_range, parse_tag_version
from versioning.models import MirrorRegistry, ResolvedSource
from versioning.parser import expand_source

logger = logging.getLogger(__name__)


class CloneState(Enum):
    """States of a verified clone."""
    PENDING = "pending"
    TRYING_REMOTE = "trying_remote"
    CLONED = "cloned"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"
    ALL_REMOTES_UNREACHABLE = "all_remotes_unreachable"


@dataclass
class CloneResult:
    """Where a clone landed and how far it got."""
    path: str
    state: CloneState = CloneState.PENDING
    remote: Optional[str] = None
    tag: Optional[str] = None
    version: Optional[str] = None
    commit: Optional[str] = None
    fingerprint: Optional[str] = None
    attempts: List[Tuple[str, str]] = field(default_factory=list)
    history: List[CloneState] = field(default_factory=lambda: [CloneState.PENDING])

    @property
    def verified(self) -> bool:
        return self.state is CloneState.VERIFIED

    def transition(self, state: CloneState) -> None:
        self.state = state
        self.history.append(state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "state": self.state.value,
            "verified": self.verified,
            "remote": safe_url(self.remote) if self.remote else None,
            "tag": self.tag,
            "version": self.version,
            "commit": self.commit,
            "fingerprint": self.fingerprint,
            "attempts": [
                {"remote": safe_url(location), "error": error} for location, error in self.attempts
            ],
        }


class VerifiedCloner:
    """Clone the first reachable mirror, pin the best matching tag and verify it.

    ``git`` must provide ``clone``, ``list_tags``, ``rev_parse``, ``checkout``
    and ``read_tag`` (see GitClient); ``verifier`` must provide
    ``verify(revision, payload, signature)`` returning a SignatureCheck.
    """

    def __init__(self, verifier, git: Optional[GitClient] = None):
        self.verifier = verifier
        self.git = git if git is not None else GitClient()

    def clone(self, resolved: ResolvedSource, destination: str) -> CloneResult:
        """Clone and verify ``resolved`` into ``destination``.

        Returns:
            CloneResult in state VERIFIED.

        Raises:
            InvalidVersionRange: the range does not parse (checked before any transport).
            DestinationNotEmpty: destination already holds files.
            AllRemotesUnreachable: no candidate completed a transport.
            NoMatchingVersion: the clone has no tag satisfying the range.
            SignatureVerificationFailed: the selected revision is not validly signed.
        """
        parse_range(resolved.version)
        destination = os.path.abspath(destination)
        existed = self._check_destination(destination)
        result = CloneResult(path=destination)

        self._clone_first_reachable(resolved, destination, existed, result)
        result.transition(CloneState.CLONED)
        self._mark_untrusted(destination, "verification pending")

        tags = list(self.git.list_tags(destination))
        tag = match_tag(tags, resolved.version)
        if tag is None:
            logger.error("No tag in %s satisfies %s", destination, resolved.version)
            raise NoMatchingVersion(resolved.version, tags)
        result.tag = tag
        result.version = str(parse_tag_version(tag))
        result.commit = self.git.rev_parse(destination, f"refs/tags/{tag}^{{commit}}")
        self.git.checkout(destination, result.commit)
        logger.info("Checked out %s (%s) at %s", tag, result.version, result.commit)

        result.transition(CloneState.VERIFYING)
        self._verify(destination, result)
        result.transition(CloneState.VERIFIED)
        self._clear_untrusted(destination)
        logger.info("Verified %s signed by %s", tag, result.fingerprint)
        return result

    def _clone_first_reachable(
        self, resolved: ResolvedSource, destination: str, existed: bool, result: CloneResult
    ) -> None:
        for index, location in enumerate(resolved.git):
            result.transition(CloneState.TRYING_REMOTE)
            result.remote = location
            if is_debug_enabled(logger):
                logger.debug(
                    "Trying remote",
                    extra=extra_context(
                        event="decision",
                        component="cloner",
                        action="clone",
                        target=safe_url(location),
                        attempt=index + 1,
                        candidates=len(resolved.git),
                    )
                )
            try:
                self.git.clone(location, destination)
                return
            except (UnreachableRepository, NotAGitRepository) as exc:
                logger.warning("Remote %s failed: %s", safe_url(location), exc)
                result.attempts.append((location, str(exc)))
                self._discard_attempt(destination, existed)
            except BaseException:
                self._abandon_attempt(destination, existed)
                raise

        result.remote = None
        result.transition(CloneState.ALL_REMOTES_UNREACHABLE)
        logger.error("All %d remote(s) unreachable", len(result.attempts))
        raise AllRemotesUnreachable(result.attempts)

    def _verify(self, destination: str, result: CloneResult) -> None:
        raw_tag = self.git.read_tag(destination, result.tag)
        if raw_tag is None:
            self._fail(destination, result, f"tag {result.tag} is not an annotated, signed tag")
        payload, signature = split_tag_signature(raw_tag)
        check = self.verifier.verify(result.commit, payload, signature)
        result.fingerprint = check.fingerprint
        if not check.valid:
            self._fail(destination, result, check.reason or "invalid signature")

    def _fail(self, destination: str, result: CloneResult, reason: str) -> None:
        result.transition(CloneState.VERIFICATION_FAILED)
        self._mark_untrusted(destination, reason)
        logger.error("Signature verification failed for %s: %s", result.tag, reason)
        raise SignatureVerificationFailed(reason, result)

    @staticmethod
    def _check_destination(destination: str) -> bool:
        """Return whether the destination exists; refuse non-empty ones."""
        if not os.path.exists(destination):
            return False
        if not os.path.isdir(destination) or os.listdir(destination):
            raise DestinationNotEmpty(destination)
        return True

    @staticmethod
    def _discard_attempt(destination: str, existed: bool) -> None:
        """Restore the destination to its state before a failed transport."""
        if not os.path.exists(destination):
            if existed:
                os.makedirs(destination)
            return
        if not existed:
            shutil.rmtree(destination)
            return
        for entry in os.listdir(destination):
            path = os.path.join(destination, entry)
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.unlink(path)

    def _abandon_attempt(self, destination: str, existed: bool) -> None:
        """Leave an interrupted transport either marked untrusted or discarded."""
        if os.path.isdir(os.path.join(destination, Constants.GIT_SUFFIX)):
            self._mark_untrusted(destination, "clone interrupted")
            logger.error("Clone into %s interrupted; partial checkout is UNTRUSTED", destination)
        else:
            self._discard_attempt(destination, existed)

    @staticmethod
    def _marker_path(destination: str) -> str:
        return os.path.join(destination, Constants.GIT_SUFFIX, Constants.UNTRUSTED_MARKER)

    def _mark_untrusted(self, destination: str, reason: str) -> None:
        with open(self._marker_path(destination), "w", encoding="utf-8") as handle:
            handle.write(f"{reason}\n")

    def _clear_untrusted(self, destination: str) -> None:
        marker = self._marker_path(destination)
        if os.path.exists(marker):
            os.unlink(marker)


def clone(
    registry: MirrorRegistry,
    specifier: str,
    destination: str,
    verifier,
    git: Optional[GitClient] = None,
) -> CloneResult:
    """Expand ``specifier`` against ``registry`` and perform a verified clone."""
    resolved = expand_source(registry, specifier)
    return VerifiedCloner(verifier, git=git).clone(resolved, destination)


def is_untrusted(destination: str) -> bool:
    """True when a checkout carries the untrusted marker."""
    return os.path.exists(VerifiedCloner._marker_path(destination))
