import logging
import argparse
from pathlib import Path
from typing import List, Optional

from sppmon.catalog import Catalog
from sppmon.config import effective_settings
from sppmon.log import set_console_level
from sppmon.errors import SppmonError
from sppmon.release import ReleaseBuilder, parse_service_list, resolve_services
from sppmon.deploy import DeploymentManager, FleetResult, RollbackMode, RollbackSelector
from sppmon.deploy.operations import LocalExecutor, RemoteExecutor, SSHExecutor
from sppmon.supervisor import ALL, ServiceSupervisor

log = logging.getLogger(__name__)


class UsageError(SppmonError):
    """Invalid command line."""


class _Parser(argparse.ArgumentParser):
    """ArgumentParser raising UsageError instead of exiting the process."""

    def error(self, message: str) -> None:
        raise UsageError(f"{self.prog}: {message}")


def _executor(remote: bool) -> RemoteExecutor:
    return SSHExecutor() if remote else LocalExecutor()


def _targets(raw: str) -> List[str]:
    targets = parse_service_list(raw)
    if not targets:
        raise UsageError("At least one target is required (--targets t1,t2).")
    return targets


def _print_fleet(fleet: FleetResult) -> int:
    print(f"\n--- Release {fleet.release_id} ---")
    for target, result in fleet.results.items():
        status = "OK" if result.ok else f"FAILED ({result.state.value})"
        print(f"  - {target:<25} : {status}")
        if result.error:
            print(f"      {result.error}")
    print(f"{len(fleet.succeeded)} succeeded, {len(fleet.failed)} failed.\n")
    return 0 if fleet.ok else 1


#* --- Build & Deploy ---
def handle_resolve_command(args: List[str]) -> int:
    """Prints the resolved, dependency-ordered service list."""
    parser = _Parser(prog="sppmon resolve")
    parser.add_argument("--services", default="")
    parser.add_argument("--app", default=None)
    opts = parser.parse_args(args)

    catalog = Catalog.from_directory(effective_settings.CATALOG_DIR)
    tokens = parse_service_list(opts.services)
    if not tokens and opts.app:
        tokens = catalog.default_services(opts.app)
    for service_id in resolve_services(tokens, catalog):
        print(service_id)
    return 0


def handle_deploy_command(args: List[str]) -> int:
    """
    Builds a release (or takes an existing archive) and deploys it to every target.

    :param args: The arguments following 'deploy'.
    :return: The process exit code.
    """
    parser = _Parser(prog="sppmon deploy")
    parser.add_argument("--app")
    parser.add_argument("--env")
    parser.add_argument("--targets", required=True)
    parser.add_argument("--services", default="")
    parser.add_argument("--strict", action="store_true", default=None)
    parser.add_argument("--remote", action="store_true")
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--archive", help="Deploy an existing archive (path or http(s) URL) instead of building.")
    parser.add_argument("--release", help="Release id packaged in --archive.")
    opts = parser.parse_args(args)
    targets = _targets(opts.targets)

    if opts.archive:
        if not opts.release:
            raise UsageError("--archive requires --release <id>.")
        release_id, archive = opts.release, opts.archive
    else:
        if not opts.app or not opts.env:
            raise UsageError("--app and --env are required to build a release.")
        catalog = Catalog.from_directory(effective_settings.CATALOG_DIR)
        tokens = parse_service_list(opts.services) or catalog.default_services(opts.app)
        services = resolve_services(tokens, catalog)
        log.info(f"Services: {', '.join(services)}")
        result = ReleaseBuilder(catalog, strict=opts.strict).build(services, opts.app, opts.env)
        for warning in result.warnings:
            print(f"WARNING: {warning}")
        release_id, archive = result.release_id, str(result.archive_path)

    manager = DeploymentManager(_executor(opts.remote))
    fleet = manager.deploy_all(targets, release_id, archive, workers=opts.workers)
    return _print_fleet(fleet)


def handle_rollback_command(args: List[str]) -> int:
    """Lists installed releases, or reactivates one on every target."""
    parser = _Parser(prog="sppmon rollback")
    parser.add_argument("--targets", required=True)
    parser.add_argument("--remote", action="store_true")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--release")
    mode.add_argument("--previous", action="store_true")
    mode.add_argument("--latest", action="store_true")
    mode.add_argument("--list", action="store_true")
    opts = parser.parse_args(args)

    selector = RollbackSelector(DeploymentManager(_executor(opts.remote)))
    targets = _targets(opts.targets)

    if opts.list:
        for target in targets:
            print(f"\n--- Releases on {target} ---")
            releases = selector.list(target)
            if not releases:
                print("  (none)")
            for info in releases:
                print(f"  {'*' if info.current else ' '} {info.release_id}")
        print()
        return 0

    if opts.release:
        rollback_mode = RollbackMode.EXPLICIT
    elif opts.previous:
        rollback_mode = RollbackMode.PREVIOUS
    else:
        rollback_mode = RollbackMode.LATEST

    exit_code = 0
    for target in targets:
        result = selector.rollback(target, rollback_mode, opts.release)
        if result.ok:
            print(f"  - {target:<25} : current -> {result.release_id}")
        else:
            print(f"  - {target:<25} : FAILED ({result.error})")
            exit_code = 1
    return exit_code


#* --- Supervisor ---
def display_status(supervisor: ServiceSupervisor, service: Optional[str] = None) -> None:
    """Prints running/stopped and pid for one or every launchable service."""
    statuses = supervisor.status(service)
    print("\n--- Service Status ---")
    if not statuses:
        print("  (no launchable services in the active release)")
    for status in statuses:
        state = f"RUNNING | PID {status.pid}" if status.running else "STOPPED"
        print(f"  - {status.service_id:<25} : {state}")
    print("-" * 22 + "\n")


def handle_logs_command(supervisor: ServiceSupervisor, args: List[str]) -> None:
    """Prints the tail of a service log, optionally following it until interrupted."""
    parser = _Parser(prog="sppmon control logs")
    parser.add_argument("service")
    parser.add_argument("tail_word", nargs="?", choices=["tail"], help=argparse.SUPPRESS)
    parser.add_argument("tail_count", nargs="?", type=int, help=argparse.SUPPRESS)
    parser.add_argument("--tail", "-n", type=int, default=None)
    parser.add_argument("--follow", "-f", action="store_true")
    opts = parser.parse_args(args)

    tail = opts.tail if opts.tail is not None else opts.tail_count
    try:
        for line in supervisor.logs(opts.service, tail=tail, follow=opts.follow):
            print(line, flush=opts.follow)
    except KeyboardInterrupt:
        print("\n--- Log tailing stopped. ---")


def handle_control_command(args: List[str]) -> int:
    """
    Handles the supervisor command surface for the active release on this host.

    :param args: The arguments following 'control'.
    :return: The process exit code.
    """
    if not args:
        print_control_help()
        return 1

    supervisor = ServiceSupervisor(effective_settings.BASE_DIR)
    sub_command, rest = args[0].lower(), args[1:]

    if sub_command == "list":
        for entry in supervisor.list_services():
            print(f"{entry.id:<25} {entry.binary:<20} {entry.description}")
    elif sub_command == "status":
        display_status(supervisor, rest[0] if rest else None)
    elif sub_command in ("start", "stop", "restart"):
        service = rest[0] if rest else ALL
        getattr(supervisor, sub_command)(service)
    elif sub_command == "logs":
        handle_logs_command(supervisor, rest)
    elif sub_command == "clean":
        if not rest:
            raise UsageError("clean expects: logs|run|data --force [service]")
        force = "--force" in rest
        names = [a for a in rest[1:] if a != "--force"]
        supervisor.clean(rest[0], force=force, service=names[0] if names else None)
    elif sub_command in ("help", "--help", "-h"):
        print_control_help()
    else:
        raise UsageError(f"Unknown control command: '{sub_command}'.")
    return 0


#* --- Console ---
def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    effective_settings.VERBOSE_LOGGING = not effective_settings.VERBOSE_LOGGING
    new_level = logging.DEBUG if effective_settings.VERBOSE_LOGGING else logging.INFO
    if set_console_level(new_level):
        log.debug("Verbose console logging enabled.")


def print_control_help() -> None:
    print("\nSupervisor commands (sppmon control ...):")
    print("  list                          - List launchable services of the active release.")
    print("  status [service]              - Show running/stopped and PID.")
    print("  start <service|all>           - Start services in declared order.")
    print("  stop <service|all>            - Stop services (reverse order for 'all').")
    print("  restart <service|all>         - Stop then start.")
    print("  logs <service> [--tail N] [-f]- Show the end of a service log, optionally following it.")
    print("  clean logs|run                - Delete log or PID files (safe).")
    print("  clean data --force [service]  - DANGEROUS: wipe persistent data.")
    print()


def print_help(args: Optional[List[str]] = None) -> int:
    """Prints the main help text."""
    print("\nAvailable commands:")
    print("  deploy   --app A --env E --targets t1,t2 [--services s1,s2] [--strict] [--remote]")
    print("           [--archive PATH|URL --release ID] [--workers N]")
    print("                                - Build a release and deploy it to every target.")
    print("  rollback --targets t1,t2 (--release ID | --previous | --latest | --list) [--remote]")
    print("                                - Reactivate an installed release.")
    print("  resolve  --services s1,s2 [--app A]")
    print("                                - Print the resolved service order.")
    print("  control  <command>            - Manage services of the active release. See 'control help'.")
    print("  --verbose                     - Enable DEBUG console output.")
    print()
    return 0
