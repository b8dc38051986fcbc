"""
Command-line interface.

Usage:
    backcompat test [--dir DIR] [--version CONSTRAINT] [--save VERSION] ...
    backcompat import --out DIR FILE.har [FILE.har ...]
    backcompat list [--dir DIR] [--version CONSTRAINT] [--long]
    backcompat curl [-X METHOD] [-H HEADER]... [-d DATA] --dir DIR URL
    backcompat cp [--dir DIR] [--name NAME]... FROM TO
    backcompat mv [--dir DIR] [--name NAME]... FROM TO
    backcompat version

Exit status:
    0   every fixture passed, or there was nothing to run
    1   a fixture failed or errored, a save failed, or a command could not finish
    2   configuration or usage error
    130 interrupted
"""

import argparse
import sys
from typing import List, Optional, TextIO

from semver import Version

from backcompat import __version__
from backcompat.capture import CaptureRequest, capture, merge_data, read_data_argument
from backcompat.comparison.reporter import ConsoleReporter, Verbosity
from backcompat.config.settings import (
    DEFAULT_TARGET_HOST,
    DEFAULT_TESTS_DIR,
    RunSettings,
    build_policy_matcher,
)
from backcompat.exceptions import (
    BackcompatError,
    ConfigError,
    FixtureParseError,
    NetworkError,
    SaveError,
)
from backcompat.fixtures.har import import_har_file
from backcompat.fixtures.repository import FilesystemFixtureRepository
from backcompat.fixtures.store import FixtureStore
from backcompat.fixtures.transfer import transfer_fixtures
from backcompat.runner.engine import TestRunner
from backcompat.runner.replay import Replayer, TargetEndpoint
from backcompat.runner.save import SaveUpdater
from backcompat.utils.logger import VALID_LOG_LEVELS, configure_logging, get_logger
from backcompat.versions import VersionConstraint, parse_version

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


class _DataAction(argparse.Action):
    """Collects curl data arguments in order; --data-raw never reads files."""

    def __call__(self, parser, namespace, values, option_string=None):
        chunks = list(getattr(namespace, self.dest, None) or [])
        chunks.append((values, option_string == "--data-raw"))
        setattr(namespace, self.dest, chunks)


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dir",
        default=DEFAULT_TESTS_DIR,
        help=f"Tests root holding one directory per version (default: {DEFAULT_TESTS_DIR})",
    )
    parser.add_argument(
        "--version",
        default="*",
        help="Version constraint, e.g. '>=1.2.0, <2.0.0' (default: all versions)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="backcompat",
        description="Check that a service still answers recorded requests the way it used to",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  backcompat test --target-host localhost:8080
  backcompat test --version '^1.2' --base-host api.example.com --base-use-https
  backcompat import --out backcomp-tests/1.0.0 session.har
  backcompat curl -H 'Accept: application/json' --dir backcomp-tests/1.0.0 http://localhost:8080/users
  backcompat cp --name -users 1.0.0 1.1.0
        """,
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=sorted(VALID_LOG_LEVELS),
        default=None,
        help="Log level for stderr diagnostics (default: BACKCOMP_LOG_LEVEL or WARNING)",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    test = commands.add_parser("test", help="Replay fixtures and compare responses")
    _add_selection_arguments(test)
    test.add_argument("--save", metavar="VERSION", help="Save target responses under VERSION")
    verbosity = test.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="List every fixture")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Print only the tallies")
    test.add_argument("--conf", default=None, help="Policy file (default: backcomp.json)")
    test.add_argument("--base-host", default=None, help="Live reference host")
    test.add_argument("--base-use-https", action="store_true", help="Use https for the base host")
    test.add_argument(
        "--target-host",
        default=DEFAULT_TARGET_HOST,
        help=f"Host under test (default: {DEFAULT_TARGET_HOST})",
    )
    test.add_argument(
        "--target-use-https", action="store_true", help="Use https for the target host"
    )
    test.add_argument("--workers", type=int, default=None, help="Concurrent fixtures")
    test.add_argument("--timeout", type=float, default=None, help="Per-request timeout (s)")
    test.add_argument(
        "--grace-period",
        type=float,
        default=None,
        help="Seconds to wait for in-flight fixtures after Ctrl-C",
    )

    har = commands.add_parser("import", help="Import HAR archives as fixtures")
    har.add_argument("--out", required=True, help="Directory receiving the fixtures")
    har.add_argument("files", nargs="+", metavar="FILE", help="HAR file(s)")

    listing = commands.add_parser("list", help="List fixtures per version")
    _add_selection_arguments(listing)
    listing.add_argument("--long", action="store_true", help="Show file and stored response")

    curl = commands.add_parser("curl", help="Capture a live request as a fixture")
    curl.add_argument("url", help="Absolute URL to request")
    curl.add_argument("-X", "--request", dest="method", default=None, help="Request method")
    curl.add_argument(
        "-H", "--header", dest="headers", action="append", default=[], help="'Name: value'"
    )
    curl.add_argument(
        "-d",
        "--data",
        "--data-ascii",
        "--data-binary",
        "--data-raw",
        dest="data",
        action=_DataAction,
        metavar="DATA",
        help="Request body; '@file' reads a file except with --data-raw (can be repeated)",
    )
    curl.add_argument("--name", default=None, help="Fixture name (default: normalized URL path)")
    curl.add_argument("--dir", required=True, help="Directory receiving the fixture")
    curl.add_argument("--timeout", type=float, default=None, help="Request timeout (s)")

    for command, verb in (("cp", "Copy"), ("mv", "Move")):
        transfer = commands.add_parser(command, help=f"{verb} fixtures to another version")
        transfer.add_argument(
            "--dir",
            default=DEFAULT_TESTS_DIR,
            help=f"Tests root holding one directory per version (default: {DEFAULT_TESTS_DIR})",
        )
        transfer.add_argument(
            "--name",
            dest="names",
            action="append",
            default=[],
            help="Fixture name or URL path to select (can be repeated; default: all)",
        )
        transfer.add_argument("source", metavar="FROM", help="Source version")
        transfer.add_argument("destination", metavar="TO", help="Destination version")

    commands.add_parser("version", help="Print the version")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _verbosity(args: argparse.Namespace) -> Verbosity:
    if args.verbose:
        return Verbosity.VERBOSE
    if args.quiet:
        return Verbosity.QUIET
    return Verbosity.NORMAL


def run_test(args: argparse.Namespace, stdout: TextIO) -> int:
    """
    Replay every selected fixture and report.

    Raises:
        ConfigError: If any part of the run configuration is invalid
    """
    settings = RunSettings.from_args(args)
    constraint = VersionConstraint.parse(settings.constraint)
    matcher = build_policy_matcher(settings.policy_file, settings.policy_explicit)
    repository = FilesystemFixtureRepository(settings.tests_dir)
    save_updater = SaveUpdater.for_tag(repository, settings.save_version)

    base = None
    if settings.base_host:
        base = TargetEndpoint(settings.base_host, settings.base_use_https)

    runner = TestRunner(
        repository=repository,
        target=TargetEndpoint(settings.target_host, settings.target_use_https),
        matcher=matcher,
        base=base,
        replayer=Replayer(timeout=settings.timeout),
        save_updater=save_updater,
        workers=settings.workers,
        grace_period=settings.grace_period,
    )
    refs = runner.collect_fixtures(constraint)
    summary = runner.run(refs)

    ConsoleReporter(stream=stdout, verbosity=_verbosity(args)).report(summary)
    if summary.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_OK if summary.ok else EXIT_FAILURE


def run_import(args: argparse.Namespace, stdout: TextIO) -> int:
    store = FixtureStore()
    status = EXIT_OK
    for path in args.files:
        try:
            written = import_har_file(path, args.out, store)
        except (FixtureParseError, SaveError) as e:
            print(f"error: {e}", file=sys.stderr)
            status = EXIT_FAILURE
            continue
        print(f"{path}: {len(written)} fixture(s) imported into {args.out}", file=stdout)
    return status


def run_list(args: argparse.Namespace, stdout: TextIO) -> int:
    constraint = VersionConstraint.parse(args.version)
    repository = FilesystemFixtureRepository(args.dir)
    status = EXIT_OK
    for version in repository.list_versions(constraint):
        print(f"{repository.directory_for(version)}:", file=stdout)
        for ref in repository.open_fixtures_for_version(version):
            try:
                request = repository.load_request(ref)
            except FixtureParseError as e:
                print(f"error: {e}", file=sys.stderr)
                status = EXIT_FAILURE
                continue
            print(f"\t{request.method} {request.url}", file=stdout)
            if not args.long:
                continue

            print(f"\t\tPath:           {ref.location}", file=stdout)
            try:
                response = repository.load_response(ref)
            except FixtureParseError as e:
                print(f"error: {e}", file=sys.stderr)
                response = None
                status = EXIT_FAILURE
            if response is None:
                print("\t\t(response missing)", file=stdout)
                continue
            content_length = response.headers.get("Content-Length") or str(len(response.body))
            print(f"\t\tStatus:         {response.status_line}", file=stdout)
            print(f"\t\tContent-Length: {content_length}", file=stdout)
    return status


def run_curl(args: argparse.Namespace, stdout: TextIO) -> int:
    chunks = [read_data_argument(value, raw=raw) for value, raw in (args.data or [])]
    wanted = CaptureRequest(
        url=args.url,
        method=args.method,
        headers=list(args.headers),
        data=merge_data(chunks),
    )
    replayer = Replayer(timeout=args.timeout) if args.timeout else Replayer()
    try:
        written = capture(wanted, args.dir, name=args.name, replayer=replayer)
    except (NetworkError, SaveError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"saved {written} in {args.dir}", file=stdout)
    return EXIT_OK


def _version_argument(tag: str) -> Version:
    version = parse_version(tag)
    if version is None:
        raise ConfigError(f"{tag!r} is not a semantic version")
    return version


def _run_transfer(args: argparse.Namespace, stdout: TextIO, move: bool) -> int:
    source = _version_argument(args.source)
    destination = _version_argument(args.destination)
    repository = FilesystemFixtureRepository(args.dir)
    results = transfer_fixtures(repository, source, destination, names=args.names, move=move)

    verb = "moved" if move else "copied"
    status = EXIT_OK
    for result in results:
        if result.destination is not None:
            print(f"{verb} {result.source} -> {result.destination}", file=stdout)
        if not result.ok:
            print(f"error: {result.source}: {result.error}", file=sys.stderr)
            status = EXIT_FAILURE
    if not results:
        print(f"no fixtures to {args.command} in {source}", file=stdout)
    return status


def run_cp(args: argparse.Namespace, stdout: TextIO) -> int:
    return _run_transfer(args, stdout, move=False)


def run_mv(args: argparse.Namespace, stdout: TextIO) -> int:
    return _run_transfer(args, stdout, move=True)


COMMANDS = {
    "test": run_test,
    "import": run_import,
    "list": run_list,
    "curl": run_curl,
    "cp": run_cp,
    "mv": run_mv,
}


def main(argv: Optional[List[str]] = None, stdout: Optional[TextIO] = None) -> int:
    """Entry point for the `backcompat` command."""
    args = parse_args(argv)
    stdout = stdout or sys.stdout
    configure_logging(args.log_level)

    if args.command == "version":
        print(f"backcompat {__version__}", file=stdout)
        return EXIT_OK

    try:
        return COMMANDS[args.command](args, stdout)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except BackcompatError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
