"""Thin client over the git command line.

Wraps the handful of git operations the cloner needs (reference listing,
clone, checkout, rev-parse, tag object reads) behind one class so tests can
swap in a fake. Transport is entirely git's: https, ssh and local paths are
handled by git itself; this module only runs commands and parses output.
"""
from __future__ import annotations

import logging
import os
import subprocess
from typing import Dict, Iterator, Optional, Sequence, Tuple, Union

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from errors import GitCommandError, MalformedSpecifier, NotAGitRepository, UnreachableRepository

logger = logging.getLogger(__name__)

_TAG_PREFIX = "refs/tags/"
_PEELED_SUFFIX = "^{}"


def _stderr(result: subprocess.CompletedProcess) -> str:
    stderr = result.stderr or ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return stderr.strip()[:Constants.GIT_STDERR_MAX]


class GitClient:
    """Run git subcommands with a timeout and a non-interactive environment."""

    def __init__(
        self,
        git_binary: str = Constants.GIT_BINARY,
        timeout: Optional[float] = Constants.GIT_TIMEOUT_SEC,
        env: Optional[Dict[str, str]] = None,
    ):
        """Initialize the client.

        Args:
            git_binary: git executable name or path.
            timeout: Seconds allowed per git invocation (None disables the bound).
            env: Extra environment variables (e.g. GIT_SSH_COMMAND for onion mirrors).
        """
        self.git_binary = git_binary
        self.timeout = timeout
        self.env = dict(env or {})

    def _environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.update(self.env)
        return env

    def _run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        config: Sequence[str] = (),
        binary: bool = False,
    ) -> subprocess.CompletedProcess:
        """Run ``git <args>``; raises subprocess.TimeoutExpired and OSError unchanged.

        Output is decoded as UTF-8 with surrogate escapes (git does not require
        ref names to be UTF-8), or returned as raw bytes when ``binary`` is set.
        """
        cmd = [self.git_binary, "-c", "protocol.ext.allow=never"]
        for item in config:
            cmd.extend(["-c", item])
        cmd.extend(args)
        with Timer() as t:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=self._environment(),
                capture_output=True,
                encoding=None if binary else "utf-8",
                errors=None if binary else "surrogateescape",
                timeout=self.timeout,
                check=False,
            )
        if is_debug_enabled(logger):
            logger.debug(
                "git command finished",
                extra=extra_context(
                    event="git_command",
                    component="git_client",
                    action=args[0] if args else None,
                    outcome="success" if result.returncode == 0 else "failure",
                    returncode=result.returncode,
                    duration_ms=t.duration_ms(),
                )
            )
        return result

    def _local(self, destination: str, args: Sequence[str], binary: bool = False) -> Union[str, bytes]:
        """Run a git command inside a local repository and return stdout."""
        try:
            result = self._run(args, cwd=destination, binary=binary)
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(args, -1, f"timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise GitCommandError(args, -1, str(exc)) from exc
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, _stderr(result))
        return result.stdout

    @staticmethod
    def _check_location(location: str) -> None:
        if not location or location.startswith("-"):
            raise MalformedSpecifier(location, "repository location must not start with '-'")

    def _transport_error(self, location: str, reason: str) -> Exception:
        if os.path.exists(location):
            return NotAGitRepository(location, reason)
        return UnreachableRepository(safe_url(location), reason)

    def list_references(self, location: str, tags_only: bool = False) -> Iterator[Tuple[str, str]]:
        """Yield ``(sha, refname)`` pairs as reported by ``git ls-remote``.

        The command runs when iteration starts, so every call is independent.

        Raises:
            UnreachableRepository: transport failed or timed out.
            NotAGitRepository: the location is an existing path git rejects.
        """
        self._check_location(location)
        args = ["ls-remote"]
        if tags_only:
            args.append("--tags")
        args.extend(["--", location])
        try:
            result = self._run(args)
        except subprocess.TimeoutExpired as exc:
            raise UnreachableRepository(safe_url(location), f"timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise UnreachableRepository(safe_url(location), str(exc)) from exc
        if result.returncode != 0:
            raise self._transport_error(location, _stderr(result))

        for line in result.stdout.splitlines():
            parts = line.split("\t", 1)
            if len(parts) != 2:
                continue
            yield parts[0].strip(), parts[1].strip()

    def list_tags(self, location: str) -> Iterator[str]:
        """Yield tag names in listing order, each once (peeled entries folded)."""
        seen = set()
        for _, ref in self.list_references(location, tags_only=True):
            if not ref.startswith(_TAG_PREFIX):
                continue
            name = ref[len(_TAG_PREFIX):]
            if name.endswith(_PEELED_SUFFIX):
                name = name[:-len(_PEELED_SUFFIX)]
            if name in seen:
                continue
            seen.add(name)
            yield name

    def clone(self, location: str, destination: str) -> None:
        """Clone ``location`` into ``destination``.

        Raises:
            UnreachableRepository: transport failed or timed out.
            NotAGitRepository: the location is an existing path git rejects.
        """
        self._check_location(location)
        logger.info("Cloning %s into %s", safe_url(location), destination)
        try:
            result = self._run(
                ["clone", "--quiet", "--no-local", "--", location, destination],
                config=("transfer.fsckObjects=true",),
            )
        except subprocess.TimeoutExpired as exc:
            raise UnreachableRepository(safe_url(location), f"timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise UnreachableRepository(safe_url(location), str(exc)) from exc
        if result.returncode != 0:
            raise self._transport_error(location, _stderr(result))

    def rev_parse(self, destination: str, revision: str) -> str:
        """Resolve a revision expression to a full object id."""
        return self._local(destination, ["rev-parse", "--verify", "--quiet", revision]).strip()

    def checkout(self, destination: str, revision: str) -> None:
        """Check out ``revision`` as a detached HEAD."""
        self._local(destination, ["checkout", "--quiet", "--detach", revision])

    def object_type(self, destination: str, revision: str) -> str:
        """Return the git object type (commit, tag, tree, blob) of a revision."""
        return self._local(destination, ["cat-file", "-t", revision]).strip()

    def read_tag(self, destination: str, tag: str) -> Optional[bytes]:
        """Return the annotated tag object byte for byte, or None for a lightweight tag.

        The bytes are exactly what the tagger signed; tag messages may use any
        encoding and line endings.
        """
        ref = f"{_TAG_PREFIX}{tag}"
        if self.object_type(destination, ref) != "tag":
            return None
        return self._local(destination, ["cat-file", "tag", ref], binary=True)

