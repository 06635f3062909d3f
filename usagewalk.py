#!/usr/bin/env python3

"""
Filesystem Usage Summary Tool

Summarizes file, directory and symlink counts, sizes, blocks and file size
distribution per group and per user for one or more paths of a snapshot
or a live Qumulo cluster.

Usage:
    ./usagewalk.py --snapshot <tree.jsonl> --path <path> [OPTIONS]
    ./usagewalk.py --host <cluster> --path <path> [OPTIONS]

"""

import argparse
import sys
from typing import List, Optional, TextIO

import aiohttp

from usagestats import (
    AsyncQumuloClient,
    ProgressTracker,
    QumuloTreeDriver,
    ReportOptions,
    SnapshotError,
    SnapshotLoader,
    SortMetric,
    compute_report,
    credential_store_filename,
    format_http_error,
    get_credentials,
    load_identity_cache,
    parse_bucket_borders,
    render_report,
    save_identity_cache,
)
from usagestats.tuning import (
    PROFILE_NAMES,
    effective_settings,
    format_profile_summary,
    generate_tuning_profile,
    get_profile_path,
    load_tuning_profile,
    save_tuning_profile,
)


class ConfigurationError(Exception):
    """Invalid settings, detected before any traversal starts."""


def build_driver(args):
    """Create the traversal driver selected on the command line."""
    if args.snapshot:
        return SnapshotLoader.load(args.snapshot, max_workers=args.max_workers, verbose=args.verbose)

    creds_path = credential_store_filename(args.credentials_store)
    bearer_token = get_credentials(creds_path)
    if not bearer_token:
        raise ConfigurationError(
            f"No credentials found in {creds_path}. Run: qq --host {args.host} login"
        )

    client = AsyncQumuloClient(
        args.host,
        args.port,
        bearer_token,
        max_concurrent=args.max_concurrent,
        connector_limit=args.connector_limit,
        identity_cache=load_identity_cache(verbose=bool(args.verbose)),
        verbose=args.verbose,
    )
    return QumuloTreeDriver(client, verbose=args.verbose)


def report_paths(args, driver, options: ReportOptions, borders, out: TextIO) -> int:
    """Report each path in turn; a failing path is skipped, not fatal. Returns the failure count."""
    failures = 0
    for path in args.paths:
        progress = ProgressTracker(verbose=True) if args.progress else None
        try:
            report = compute_report(driver, path, verbose=args.verbose, progress=progress, borders=borders)
        except SnapshotError as e:
            print(f"\n[ERROR] {e}", file=sys.stderr)
            failures += 1
            continue
        except aiohttp.ClientResponseError as e:
            print(format_http_error(e.status, str(e.request_info.url), path), file=sys.stderr)
            failures += 1
            continue
        except aiohttp.ClientConnectorError as e:
            print(f"\n[ERROR] Cannot connect to cluster: {args.host}:{args.port}", file=sys.stderr)
            print("[HINT] Check that the cluster is reachable and the hostname/port are correct", file=sys.stderr)
            if args.verbose:
                print(f"[DEBUG] {e}", file=sys.stderr)
            failures += 1
            continue
        except aiohttp.ClientError as e:
            print(f"\n[ERROR] Network error while visiting {path}: {e}", file=sys.stderr)
            failures += 1
            continue
        except ValueError as e:
            # Undecodable API response body
            print(f"\n[ERROR] Invalid response while visiting {path}: {e}", file=sys.stderr)
            failures += 1
            continue

        render_report(options, report, out)
        out.flush()

    return failures


def run(args, out: Optional[TextIO] = None) -> int:
    """Validate settings, build the driver and print one report per path. Returns the exit code."""
    out = out or sys.stdout

    try:
        options = ReportOptions(args.sort, args.user_filter)
        borders = parse_bucket_borders(args.bucket_borders) if args.bucket_borders else None
        driver = build_driver(args)
    except (ValueError, ConfigurationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"\n[ERROR] {e}", file=sys.stderr)
        return 1

    failures = report_paths(args, driver, options, borders, out)

    if isinstance(driver, QumuloTreeDriver):
        resolved = {
            auth_id: identity
            for auth_id, identity in driver.client.persistent_identity_cache.items()
            if identity.get("resolved")
        }
        save_identity_cache(resolved, verbose=bool(args.verbose))

    if failures and args.verbose:
        print(f"[INFO] {failures} of {len(args.paths)} paths failed", file=sys.stderr)
    return 1 if failures else 0


def build_parser(settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Filesystem usage summary by group and user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Summarize a snapshot, largest block consumers last
  ./usagewalk.py --snapshot tree.jsonl --path /home

  # Several paths, sorted by file count, only users starting with 'a'
  ./usagewalk.py --snapshot tree.jsonl --path /home --path /data --sort files --user-filter '^a'

  # Walk a live Qumulo cluster with custom histogram buckets
  ./usagewalk.py --host cluster.example.com --path /projects --bucket-borders 0,4KiB,1MiB,1GiB

  # Generate a tuning profile for this machine
  ./usagewalk.py --tune balanced
        """,
    )

    # ============================================================================
    # SOURCE
    # ============================================================================
    source = parser.add_argument_group('Source', 'Snapshot file or live cluster (one is required)')
    source.add_argument("--snapshot", help="JSON-lines snapshot file to summarize")
    source.add_argument("--host", help="Qumulo cluster hostname or IP")
    source.add_argument("--port", type=int, default=8000, help="Qumulo API port (default: 8000)")
    source.add_argument(
        "--credentials-store",
        default=".qfsd_cred",
        help="Credentials file with bearer token (default: ~/.qfsd_cred)",
    )
    source.add_argument(
        "--path",
        dest="paths",
        action="append",
        help="Directory path to summarize (repeatable, default: /)",
    )

    # ============================================================================
    # REPORT
    # ============================================================================
    report = parser.add_argument_group('Report')
    report.add_argument(
        "--sort",
        choices=[m.value for m in SortMetric],
        default=SortMetric.BLOCKS.value,
        help="Order group and user rows by this metric, ascending (default: blocks)",
    )
    report.add_argument(
        "--user-filter",
        help="Only show users whose name matches this regular expression",
    )
    report.add_argument(
        "--bucket-borders",
        help="Comma separated file size bucket borders, e.g. 0,1KiB,1MiB,1GiB",
    )

    # ============================================================================
    # PERFORMANCE
    # ============================================================================
    perf = parser.add_argument_group('Performance')
    perf.add_argument(
        "--max-workers",
        type=int,
        default=settings['max_workers'],
        help=f"Snapshot visitor threads (default: {settings['max_workers']})",
    )
    perf.add_argument(
        "--max-concurrent",
        type=int,
        default=settings['max_concurrent'],
        help=f"Concurrent cluster API requests (default: {settings['max_concurrent']})",
    )
    perf.add_argument(
        "--connector-limit",
        type=int,
        default=settings['connector_limit'],
        help=f"HTTP connection pool size (default: {settings['connector_limit']})",
    )
    perf.add_argument(
        "--tune",
        choices=PROFILE_NAMES,
        help="Write a tuning profile for this machine and exit",
    )

    # ============================================================================
    # OUTPUT
    # ============================================================================
    output = parser.add_argument_group('Output')
    output.add_argument("--progress", action="store_true", help="Show progress while visiting")
    output.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Informational messages on stderr; repeat (-vv) for debug messages",
    )

    return parser


def main(argv: Optional[List[str]] = None):
    settings = effective_settings(load_tuning_profile())
    parser = build_parser(settings)
    args = parser.parse_args(argv)

    if args.tune:
        profile = generate_tuning_profile(args.tune)
        if not save_tuning_profile(profile):
            print(f"Error: Could not write tuning profile to {get_profile_path()}", file=sys.stderr)
            sys.exit(1)
        print(format_profile_summary(profile))
        sys.exit(0)

    if bool(args.snapshot) == bool(args.host):
        print("Error: Exactly one of --snapshot or --host is required", file=sys.stderr)
        sys.exit(2)

    if args.max_workers < 1 or args.max_concurrent < 1 or args.connector_limit < 1:
        print("Error: --max-workers, --max-concurrent and --connector-limit must be positive", file=sys.stderr)
        sys.exit(2)

    if not args.paths:
        args.paths = ["/"]

    try:
        sys.exit(run(args))
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted by user", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
