"""Argument parsing functionality for mirrorfetch."""

import argparse


def _add_common(parser):
    """Options shared by every subcommand."""
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="Seconds allowed per git command (0 disables the limit)",
                        action="store",
                        type=float)


def _add_registry(parser):
    parser.add_argument("-r", "--registry",
                        dest="REGISTRY",
                        help="Mirror registry file (YAML or JSON)",
                        action="store",
                        type=str)


def build_parser():
    """Build the top-level parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="mirrorfetch",
        description=(
            "mirrorfetch - resolve scheme:path@range specifiers to verified git checkouts"
        ),
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    subparsers.required = True

    fetch = subparsers.add_parser(
        "fetch", help="Clone the best matching tag from the first reachable mirror and verify it"
    )
    fetch.add_argument("SPECIFIER", help="Source specifier, i.e: github:org/repo@^1.2.3")
    fetch.add_argument("DESTINATION", help="Directory to clone into (absent or empty)")
    _add_registry(fetch)
    fetch.add_argument("-k", "--key",
                       dest="KEYS",
                       help="Trusted armored public key file or https URL (repeatable)",
                       action="append",
                       type=str,
                       default=[])
    fetch.add_argument("--keyring",
                       dest="KEYRING",
                       help=("GnuPG home directory holding trusted keys; it is only read, "
                             "--key material is combined with it in a temporary keyring"),
                       action="store",
                       type=str)
    fetch.add_argument("--fingerprint",
                       dest="FINGERPRINTS",
                       help="Only accept signatures from this key fingerprint (repeatable)",
                       action="append",
                       type=str,
                       default=[])
    _add_common(fetch)

    expand = subparsers.add_parser("expand", help="Print candidate repository locations for a specifier")
    expand.add_argument("SPECIFIER", help="Source specifier, i.e: github:org/repo@^1.2.3")
    _add_registry(expand)
    _add_common(expand)

    tags = subparsers.add_parser("tags", help="List tags of a local or remote repository")
    tags.add_argument("LOCATION", help="Repository URL or path")
    tags.add_argument("--match",
                      dest="MATCH",
                      help="Print only the best tag satisfying this range",
                      action="store",
                      type=str)
    _add_common(tags)

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
