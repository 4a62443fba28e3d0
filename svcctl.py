#!/usr/bin/env python3
import argparse
import sys

import console
from console import log_error, log_info, log_success, log_warning
from models import ServiceMapError, ServiceNotFoundError
from probe import ServiceProbe
from scm import ScManager

COMMANDS = ["status", "start", "stop", "restart", "command"]


def run_command(probe: ServiceProbe, command: str, code: int | None = None) -> int:
    """Run one control command against probe. Returns the process exit code."""
    if command == "status":
        if not probe.exists():
            log_warning(f"{probe} not found")
            return 1
        log_info(f"{probe} ({probe.ip_address or 'no address'}): {probe.status.name}")
        return 0

    if command == "start":
        changed = probe.start()
    elif command == "stop":
        changed = probe.stop()
    elif command == "restart":
        changed = probe.restart()
        if not changed:
            log_warning(f"{probe} not found")
            return 1
    else:
        probe.send_command(code)
        log_success(f"Sent control code {code} to {probe}")
        return 0

    if changed:
        log_success(f"{command} {probe}: done")
    else:
        status = probe.status
        log_info(f"{command} {probe}: nothing to do (status {status.name if status else 'unknown'})")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Query or control one Windows service on a network host.",
        epilog="Example usage: python svcctl.py restart FILESRV01 Spooler",
    )
    parser.add_argument("command", choices=COMMANDS, help="Action to perform on the service.")
    parser.add_argument("machine", help="Host running the service (NetBIOS or DNS name).")
    parser.add_argument("service", help="Service name (case-sensitive, e.g. Spooler).")
    parser.add_argument("code", nargs="?", type=int, help="Custom control code (128-255) for 'command'.")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds allowed for each sc call (default: no limit)")
    parser.add_argument(
        "--wait-timeout",
        type=float,
        default=None,
        help="Seconds to wait for each restart transition (default: no limit)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    args = parser.parse_args(argv)

    if args.command == "command" and args.code is None:
        parser.error("the 'command' action requires a control code")

    console.VERBOSE_OUTPUT = args.verbose
    manager = ScManager(timeout=args.timeout, wait_timeout=args.wait_timeout)
    probe = ServiceProbe(args.machine, args.service, manager=manager)

    try:
        return run_command(probe, args.command, args.code)
    except ServiceNotFoundError as e:
        log_error(str(e))
        return 1
    except ServiceMapError as e:
        log_error(f"{args.command} {probe} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
