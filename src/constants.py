"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    INVALID_INPUT = 3
    NO_MATCHING_VERSION = 4
    VERIFICATION_FAILED = 5
    REPOSITORY_ERROR = 6
    INTERRUPTED = 130


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    FILE_SCHEME = "file"
    GIT_SUFFIX = ".git"
    DEFAULT_REGISTRY = {
        "github": ["https://github.com"],
        "gitlab": ["https://gitlab.com"],
    }
    REGISTRY_SECTION = "remotes"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for key material downloads
    HTTP_RETRY_MAX = 3
    GIT_BINARY = "git"
    GIT_TIMEOUT_SEC = 300
    GIT_STDERR_MAX = 300
    UNTRUSTED_MARKER = "MIRRORFETCH_UNTRUSTED"
    PGP_SIGNATURE_BEGIN = "-----BEGIN PGP SIGNATURE-----"

    # Environment variables
    ENV_LOG_LEVEL = "MIRRORFETCH_LOG_LEVEL"
    ENV_REGISTRY = "MIRRORFETCH_REGISTRY"
    ENV_GIT_TIMEOUT = "MIRRORFETCH_GIT_TIMEOUT"
    ENV_GNUPGHOME = "MIRRORFETCH_GNUPGHOME"
