"""mirrorfetch - verified git checkouts from redundant mirrors

    Returns:
        int: Exit code (0 only when a fetch reaches VERIFIED)
"""
import json
import logging
import os
import sys

from constants import ExitCodes, Constants
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from args import parse_args
from cli_config import get_git_timeout, get_gnupghome, load_registry, load_trusted_keys
from errors import ConfigError, MirrorFetchError, SignatureVerificationFailed
from repository.cloner import VerifiedCloner
from repository.git_client import GitClient
from repository.signature import GpgSignatureVerifier
from versioning.matcher import match_tag
from versioning.parser import expand_source

logger = logging.getLogger(__name__)


def _setup_logging(args):
    """Configure logging based on CLI arguments."""
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging()

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(Constants.LOG_FILE_FORMAT))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _emit(data):
    sys.stdout.write(json.dumps(data, indent=2) + "\n")


def run_expand(args):
    """Print the resolved source for a specifier."""
    registry = load_registry(args.REGISTRY)
    _emit(expand_source(registry, args.SPECIFIER).to_dict())
    return ExitCodes.SUCCESS


def run_tags(args):
    """Print every tag of a repository, or the best match for --match."""
    git = GitClient(timeout=get_git_timeout(args.TIMEOUT))
    tags = git.list_tags(args.LOCATION)
    if args.MATCH:
        best = match_tag(tags, args.MATCH)
        if best is None:
            logger.warning("No tag satisfies %s", args.MATCH)
            return ExitCodes.NO_MATCHING_VERSION
        sys.stdout.write(best + "\n")
        return ExitCodes.SUCCESS
    for tag in tags:
        sys.stdout.write(tag + "\n")
    return ExitCodes.SUCCESS


def _build_verifier(keyring, keys, fingerprints):
    try:
        return GpgSignatureVerifier(gnupghome=keyring, trusted_keys=keys, fingerprints=fingerprints)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Cannot initialize GnuPG: {exc}") from exc


def run_fetch(args):
    """Clone, pin and verify; exit 0 only on VERIFIED."""
    registry = load_registry(args.REGISTRY)
    resolved = expand_source(registry, args.SPECIFIER)
    keys = load_trusted_keys(args.KEYS)
    keyring = get_gnupghome(args.KEYRING)
    if not keys and not keyring:
        logger.warning("No trusted key material supplied; verification cannot succeed.")

    git = GitClient(timeout=get_git_timeout(args.TIMEOUT))
    with _build_verifier(keyring, keys, args.FINGERPRINTS) as verifier:
        try:
            result = VerifiedCloner(verifier, git=git).clone(resolved, args.DESTINATION)
        except SignatureVerificationFailed as exc:
            if exc.result is not None:
                _emit(exc.result.to_dict())
            logger.error("Checkout left in %s is UNTRUSTED; remove it or inspect it.", args.DESTINATION)
            raise
    _emit(result.to_dict())
    return ExitCodes.SUCCESS


_COMMANDS = {
    "fetch": run_fetch,
    "expand": run_expand,
    "tags": run_tags,
}


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND)
        )

    try:
        code = _COMMANDS[args.COMMAND](args)
    except MirrorFetchError as exc:
        logger.error("%s", exc)
        code = exc.exit_code
    except KeyboardInterrupt:
        logger.error("Interrupted; any partial checkout is untrusted.")
        code = ExitCodes.INTERRUPTED

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(
                event="function_exit", component="cli", action=args.COMMAND, outcome=code.name.lower()
            )
        )
    return code.value


if __name__ == "__main__":
    sys.exit(main())
