#!/usr/bin/env python3
"""Datto RMM command-line interface.

Fetches account resources from the Datto RMM API as JSON, and performs the
small set of writes the API exposes (site variables, device UDFs, quick
jobs). Every collection command follows pageDetails.nextPageUrl until the
last page and waits out rate limits (429, or a 403 whose body says it is a
rate limit) before retrying.

Environment Variables Required:
    - DRMM_API_KEY: API key
    - DRMM_API_SECRET: API secret key
    - DRMM_API_URL: Platform URL (optional, default: pinotage)

Example Usage:
    $ dattormm devices                              # All devices in the account
    $ dattormm devices --site <site-uid>            # Devices in one site
    $ dattormm inventory --output inventory.json    # Devices, sites and users
    $ dattormm software <device-uid> <device-uid>   # Software audits
    $ dattormm set-udf <device-uid> udf5=Finance    # Write a user-defined field
"""
import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .api import (
    AccountAPI,
    DeviceAPI,
    ErrorSanitizer,
    JobAPI,
    RMMClient,
    RMMError,
    SiteAPI,
    TokenProvider,
    run_concurrent_tasks,
)
from .config import RMMSettings
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


# ============================================
# Argument helpers
# ============================================

def _key_value(text: str) -> tuple[str, str]:
    name, sep, value = text.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got '{text}'")
    return name.strip(), value


def _non_negative_int(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError("must be 0 or greater")
    return value


def _non_negative_float(text: str) -> float:
    value = float(text)
    if value < 0:
        raise argparse.ArgumentTypeError("must be 0 or greater")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dattormm",
        description="Query and update a Datto RMM account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dattormm sites                                  # List all sites
  dattormm devices --filter-id 12                 # Devices matching a device filter
  dattormm variables --site <site-uid>            # Site variables
  dattormm job <job-uid> --device <device-uid>    # Job result and output on one device
  dattormm quick-job <device-uid> <component-uid> --var Mode=full
        """,
    )

    # Connection options
    conn_group = parser.add_argument_group("Connection Options")
    conn_group.add_argument(
        "--api-url",
        metavar="URL",
        help="Platform URL (default: DRMM_API_URL or the pinotage platform)",
    )
    conn_group.add_argument(
        "--max-retries",
        type=_non_negative_int,
        metavar="N",
        help="Attempts per rate-limited request, 0 for no limit (default: 10)",
    )
    conn_group.add_argument(
        "--retry-delay",
        type=_non_negative_float,
        metavar="SECONDS",
        help="Wait between rate-limit retries (default: 60)",
    )

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--output",
        metavar="FILE",
        help="Write JSON to FILE instead of stdout",
    )
    output_group.add_argument(
        "--log-file",
        metavar="FILE",
        help="Also write log records to FILE",
    )
    output_group.add_argument(
        "--event-log",
        action="store_true",
        default=None,
        help="Also send warnings and errors to the Windows Event Log / syslog",
    )
    output_group.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=None,
        help="Log at debug level",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    devices = commands.add_parser("devices", help="List devices")
    devices.add_argument("--site", metavar="SITE_UID", help="Only devices in this site")
    devices.add_argument("--filter-id", type=int, metavar="N", help="Apply a device filter")

    commands.add_parser("sites", help="List sites")
    commands.add_parser("users", help="List users")

    variables = commands.add_parser("variables", help="List account or site variables")
    variables.add_argument("--site", metavar="SITE_UID", help="Site variables instead of account variables")

    software = commands.add_parser("software", help="Software audit of one or more devices")
    software.add_argument("device_uids", nargs="+", metavar="DEVICE_UID")

    job = commands.add_parser("job", help="Show a job, or its result on one device")
    job.add_argument("job_uid", metavar="JOB_UID")
    job.add_argument("--device", metavar="DEVICE_UID", help="Include result and output for this device")

    commands.add_parser("inventory", help="Devices, sites and users fetched concurrently")

    set_variable = commands.add_parser("set-variable", help="Create or update a site variable")
    set_variable.add_argument("site_uid", metavar="SITE_UID")
    set_variable.add_argument("name", metavar="NAME")
    set_variable.add_argument("value", metavar="VALUE")
    set_variable.add_argument("--masked", action="store_true", help="Mask the value in the web portal")

    set_udf = commands.add_parser("set-udf", help="Set user-defined fields on a device")
    set_udf.add_argument("device_uid", metavar="DEVICE_UID")
    set_udf.add_argument(
        "assignments",
        nargs="+",
        type=_key_value,
        metavar="udfN=VALUE",
        help="Field assignment; an empty VALUE clears the field",
    )

    quick_job = commands.add_parser("quick-job", help="Run a component on a device now")
    quick_job.add_argument("device_uid", metavar="DEVICE_UID")
    quick_job.add_argument("component_uid", metavar="COMPONENT_UID")
    quick_job.add_argument("--name", metavar="JOB_NAME", help="Job name (default: generated)")
    quick_job.add_argument(
        "--var",
        dest="variables",
        action="append",
        type=_key_value,
        default=[],
        metavar="NAME=VALUE",
        help="Component variable (repeatable)",
    )

    return parser


# ============================================
# Commands
# ============================================

async def _inventory(account: AccountAPI) -> dict[str, Any]:
    results = await run_concurrent_tasks({
        "devices": account.get_devices,
        "sites": account.get_sites,
        "users": account.get_users,
    })

    failures = {name: result for name, result in results.items() if isinstance(result, Exception)}
    for name, error in failures.items():
        logger.error(f"Inventory: {name} fetch failed: {error}")
    if failures:
        raise next(iter(failures.values()))

    for name, items in results.items():
        logger.info(f"Inventory: {len(items):,} {name}")
    return results


async def _job(jobs: JobAPI, job_uid: str, device_uid: Optional[str]) -> dict[str, Any]:
    result: dict[str, Any] = {"job": await jobs.get_job(job_uid)}
    if device_uid:
        result["result"] = await jobs.get_results(job_uid, device_uid)
        result["stdout"] = await jobs.get_stdout(job_uid, device_uid)
        result["stderr"] = await jobs.get_stderr(job_uid, device_uid)
    return result


async def dispatch(args: argparse.Namespace, client: RMMClient) -> Any:
    """Run the selected subcommand against an open client."""
    account = AccountAPI(client)
    sites = SiteAPI(client)
    devices = DeviceAPI(client)

    if args.command == "devices":
        if args.site:
            return await sites.get_devices(args.site)
        return await account.get_devices(filter_id=args.filter_id)

    if args.command == "sites":
        return await account.get_sites()

    if args.command == "users":
        return await account.get_users()

    if args.command == "variables":
        if args.site:
            return await sites.get_variables(args.site)
        return await account.get_variables()

    if args.command == "software":
        return await devices.get_software_audits(args.device_uids)

    if args.command == "job":
        return await _job(JobAPI(client), args.job_uid, args.device)

    if args.command == "inventory":
        return await _inventory(account)

    if args.command == "set-variable":
        return await sites.set_variable(args.site_uid, args.name, args.value, masked=args.masked)

    if args.command == "set-udf":
        udfs = {name: (value if value != "" else None) for name, value in args.assignments}
        return await devices.set_udfs(args.device_uid, udfs)

    if args.command == "quick-job":
        job_name = args.name or f"dattormm quick job {datetime.now(timezone.utc):%Y-%m-%d %H:%M:%S}"
        return await devices.start_quick_job(
            args.device_uid,
            job_name,
            args.component_uid,
            variables=dict(args.variables),
        )

    raise ValueError(f"Unknown command: {args.command}")


def write_output(data: Any, output: Optional[str]) -> None:
    text = json.dumps(data, indent=2, default=str)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        logger.info(f"Wrote {output}")
    else:
        print(text)


async def run(args: argparse.Namespace, settings: RMMSettings) -> Any:
    """Authenticate, then run one subcommand.

    Returns:
        JSON-serializable command result
    """
    settings.require_credentials()

    provider = TokenProvider(
        api_key=settings.api_key,
        api_secret=settings.api_secret,
        api_url=settings.api_url,
    )
    token = await provider.authenticate()
    logger.debug("Authenticated")

    async with RMMClient(
        token,
        base_url=settings.api_url,
        retry_policy=settings.retry_policy(),
    ) as client:
        return await dispatch(args, client)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    sanitizer = ErrorSanitizer()
    try:
        settings = RMMSettings(
            api_url=args.api_url,
            max_retries=args.max_retries,
            retry_delay=args.retry_delay,
            log_file=args.log_file,
            event_log=args.event_log,
            verbose=args.verbose,
        )
        sanitizer.add_secret(settings.api_secret)
        configure_logging(
            log_file=settings.log_file,
            event_log=settings.event_log,
            verbose=settings.verbose,
        )
        logger.debug(f"Settings: {settings}")

        start_time = datetime.now(timezone.utc)
        result = asyncio.run(run(args, settings))
        write_output(result, args.output)

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(f"{args.command} completed in {duration:.1f} seconds")
        return 0

    except RMMError as e:
        message = sanitizer.sanitize(str(e)).sanitized_message
        logger.error(message)
        print(f"Error: {message}", file=sys.stderr)
        return 1
    except OSError as e:
        message = sanitizer.sanitize(str(e)).sanitized_message
        print(f"Error: {message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
