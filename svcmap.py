#!/usr/bin/env python3
"""
Map the Windows services running on every host visible in the local network
neighborhood and write them to windowsNetworkServices.csv / serviceMap.xml.
"""

# Standard library imports
import argparse
import os
import queue
import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from functools import partial

# Third-party imports
from colorama import Fore

# Local imports
import console
import export
import netview
from console import colorize, log_debug, log_error, log_exception, log_info, log_phase, log_success, log_warning
from models import DiscoveryLaunchError, RemoteAccessError, ServiceMapError, ServiceSnapshot, SnapshotCreationError
from probe import ServiceProbe, host_services, local_services
from scm import ScManager

VERSION = "0.1.0"

# ----------------------- Configuration -----------------------
DEFAULT_HOST_THREADS = 10
DEFAULT_SERVICE_THREADS = 10
DEFAULT_FORMAT = "both"
OUTPUT_FORMATS = ["csv", "xml", "both"]

# Global variables that can be modified by command line arguments
HOST_THREADS = DEFAULT_HOST_THREADS
SERVICE_THREADS = DEFAULT_SERVICE_THREADS
SC_TIMEOUT = None
RESULTS_DIR = "."
# ----------------------- End Configuration -------------------

scan_stats = {
    "hosts_found": 0,
    "hosts_mapped": 0,
    "services_mapped": 0,
    "services_failed": 0,
    "scan_start_time": None,
    "lock": threading.Lock(),
}


def reset_stats():
    with scan_stats["lock"]:
        scan_stats.update(hosts_found=0, hosts_mapped=0, services_mapped=0, services_failed=0)


def count(stat: str, amount: int = 1):
    with scan_stats["lock"]:
        scan_stats[stat] += amount


def run_tasks_in_parallel(
    func,
    tasks,
    key_field="machine_name",
    max_workers=None,
    task_label=None,
):
    """
    Run a function concurrently over a list of tasks.

    Args:
        func: The function to execute, called as func(**task).
        tasks (list[dict]): Task dictionaries. Each must contain the key key_field.
        key_field (str): The field in each task used as the result key.
        max_workers (int): Maximum number of threads to use.
        task_label (str, optional): A friendly label for the task (default is func.__name__).

    Returns:
        dict: A mapping of each task's key to the result of func(**task), or to
              {"error": message} when the call raised.
    """
    if task_label is None:
        task_label = func.__name__
    if max_workers is None:
        max_workers = HOST_THREADS
    results = {}
    if not tasks:
        return results
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_key = {}
        for task in tasks:
            key = task.get(key_field)
            if key is None:
                raise ValueError(f"Task {task} is missing the required key field '{key_field}'")
            future = executor.submit(func, **task)
            future_to_key[future] = key
        for future in as_completed(future_to_key):
            key = future_to_key[future]
            try:
                results[key] = future.result()
            except Exception as e:
                error_msg = f"{task_label} failed for {key}: {e.__class__.__name__} - {str(e)}"
                log_error(error_msg)
                results[key] = {"error": error_msg}
    return results


def unique_hosts(host_names: list[str]) -> list[str]:
    """Drop repeated host names, keeping the first occurrence and the original order."""
    return list(dict.fromkeys(host_names))


def create_snapshot(probe: ServiceProbe) -> ServiceSnapshot:
    """
    Capture the current state of one service.

    Raises SnapshotCreationError if the live service cannot be read; no
    partial snapshot is ever returned.
    """
    try:
        service = probe.resolve()
        if service is None:
            raise SnapshotCreationError(f"Service {probe} is no longer available")
        dependents = "|".join(dependent.display_name for dependent in service.dependent_services())
        return ServiceSnapshot(
            service_name=probe.service_name,
            machine_name=probe.machine_name,
            display_name=service.display_name,
            ip_address=probe.ip_address,
            service_type=service.service_type,
            state=service.status.name if service.status else "",
            dependent_services=dependents,
        )
    except SnapshotCreationError:
        raise
    except Exception as e:
        raise SnapshotCreationError(f"Unable to read {probe}: {e}") from e


def snapshot_service(probe: ServiceProbe, sink: queue.Queue) -> bool:
    """Snapshot one service into sink. Failures are logged and the service skipped."""
    log_debug(str(probe))
    try:
        sink.put(create_snapshot(probe))
    except SnapshotCreationError as e:
        count("services_failed")
        log_exception(f"Error accessing services on {probe.machine_name} ({probe.service_name})", e.__cause__ or e)
        return False
    count("services_mapped")
    return True


def snapshot_services(probes: list[ServiceProbe], sink: queue.Queue, service_threads: int) -> int:
    """Snapshot services concurrently into sink. Returns the number captured."""
    results = run_tasks_in_parallel(
        partial(snapshot_service, sink=sink),
        [{"probe": probe} for probe in probes],
        key_field="probe",
        max_workers=service_threads,
        task_label="Service snapshot",
    )
    return sum(1 for result in results.values() if result is True)


def map_host(machine_name: str, sink: queue.Queue, manager: ScManager, service_threads: int) -> int:
    """
    Snapshot every service of one host concurrently. Returns the number of
    services captured. A host whose service manager cannot be reached is
    logged and does not count as mapped.
    """
    try:
        probes = host_services(machine_name, manager)
    except RemoteAccessError as e:
        log_error(f"Unable to access service manager on {machine_name}: {e}")
        return 0
    captured = snapshot_services(probes, sink, service_threads)
    count("hosts_mapped")
    return captured


def drain(sink: queue.Queue) -> list[ServiceSnapshot]:
    snapshots = []
    while True:
        try:
            snapshots.append(sink.get_nowait())
        except queue.Empty:
            return snapshots


def sort_snapshots(snapshots: list[ServiceSnapshot]) -> list[ServiceSnapshot]:
    """Order by machine name; snapshots of the same machine keep their relative order."""
    return sorted(snapshots, key=lambda snapshot: snapshot.machine_name)


def build_inventory(
    manager: ScManager | None = None,
    command=None,
    host_threads: int | None = None,
    service_threads: int | None = None,
    keep_duplicates: bool = False,
) -> list[ServiceSnapshot]:
    """
    Discover the network's hosts and snapshot every service on each of them.

    Hosts, then the services of each host, are processed concurrently with at
    most host_threads / service_threads workers per level. A failing host or
    service is logged and left out. Returns the snapshots sorted by machine name.
    Raises DiscoveryLaunchError if host discovery cannot start.
    """
    manager = manager or ScManager(timeout=SC_TIMEOUT)
    host_threads = host_threads or HOST_THREADS
    service_threads = service_threads or SERVICE_THREADS

    host_names = netview.discover(command).result()
    log_info(f"Found {len(host_names)} computers in local network neighborhood")
    if not keep_duplicates:
        host_names = unique_hosts(host_names)
    with scan_stats["lock"]:
        scan_stats["hosts_found"] = len(host_names)

    sink = queue.Queue()
    run_tasks_in_parallel(
        partial(map_host, sink=sink, manager=manager, service_threads=service_threads),
        [{"machine_name": machine_name} for machine_name in host_names],
        key_field="machine_name",
        max_workers=host_threads,
        task_label="Service enumeration",
    )
    return sort_snapshots(drain(sink))


def build_local_inventory(manager: ScManager | None = None, service_threads: int | None = None) -> list[ServiceSnapshot]:
    """Snapshot every service installed on this machine, without host discovery."""
    manager = manager or ScManager(timeout=SC_TIMEOUT)
    service_threads = service_threads or SERVICE_THREADS
    with scan_stats["lock"]:
        scan_stats["hosts_found"] = 1

    probes = list(local_services(manager))
    log_info(f"Found {len(probes)} services on this machine")
    sink = queue.Queue()
    snapshot_services(probes, sink, service_threads)
    count("hosts_mapped")
    return sort_snapshots(drain(sink))


def save_map(snapshots: list[ServiceSnapshot], out_dir: str, output_format: str = DEFAULT_FORMAT) -> list[str]:
    """Write the requested export files. Returns the written paths."""
    os.makedirs(out_dir, exist_ok=True)
    paths = []
    if output_format in ("csv", "both"):
        paths.append(export.store_map(snapshots, out_dir))
    if output_format in ("xml", "both"):
        paths.append(export.persist_service_map(snapshots, out_dir))
    return paths


def signal_handler(signum, frame):
    """Handle interrupt signals gracefully."""
    log_info("Interrupt received. Exiting...")
    sys.exit(0)


def print_completion_banner(duration_str: str, paths: list[str]):
    print("\n")
    header = "=" * 80
    print(colorize(header, Fore.GREEN))
    print(colorize("=" * 31 + " MAP COMPLETE " + "=" * 35, Fore.GREEN))
    print(colorize(header, Fore.GREEN))
    print("")
    print(colorize("SUMMARY", Fore.CYAN))
    print(colorize(f"  Duration: {duration_str}", Fore.WHITE))
    print(colorize(f"  Hosts mapped: {scan_stats['hosts_mapped']} of {scan_stats['hosts_found']} discovered", Fore.WHITE))
    print(colorize(f"  Services mapped: {scan_stats['services_mapped']}", Fore.WHITE))
    print(colorize(f"  Services skipped after errors: {scan_stats['services_failed']}", Fore.WHITE))
    print(colorize(f"  Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", Fore.WHITE))
    for path in paths:
        print(colorize(f"  Saved: {os.path.abspath(path)}", Fore.WHITE))
    print("")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Map the Windows services of every host in the local network neighborhood",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Map the network into the current directory:
    python svcmap.py

  Limit concurrency and give each sc call 30 seconds:
    python svcmap.py --host-threads 4 --service-threads 8 --timeout 30

  Write only the XML map, with per-service progress:
    python svcmap.py --format xml -v

  Map just this machine:
    python svcmap.py --local
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--host-threads",
        type=int,
        default=DEFAULT_HOST_THREADS,
        help=f"Hosts mapped concurrently (default: {DEFAULT_HOST_THREADS})",
    )
    parser.add_argument(
        "--service-threads",
        type=int,
        default=DEFAULT_SERVICE_THREADS,
        help=f"Services snapshotted concurrently per host (default: {DEFAULT_SERVICE_THREADS})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds allowed for each sc call (default: no limit)",
    )
    parser.add_argument("--out-dir", default=".", help="Directory to save the map (default: current directory)")
    parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default=DEFAULT_FORMAT,
        help=f"Output files to write (default: {DEFAULT_FORMAT})",
    )
    parser.add_argument(
        "--keep-duplicates",
        action="store_true",
        help="Map a host once per net view entry instead of once per name",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Map only the services installed on this machine (no net view discovery)",
    )
    return parser


def main(argv=None):
    """Main function."""
    args = build_parser().parse_args(argv)

    global HOST_THREADS, SERVICE_THREADS, SC_TIMEOUT, RESULTS_DIR
    console.VERBOSE_OUTPUT = args.verbose
    HOST_THREADS = args.host_threads
    SERVICE_THREADS = args.service_threads
    SC_TIMEOUT = args.timeout
    RESULTS_DIR = args.out_dir

    if HOST_THREADS < 1 or SERVICE_THREADS < 1:
        log_error("Thread counts must be at least 1")
        return 1

    print(f"Windows network service mapper {VERSION}")
    config_items = [
        ("Host threads", HOST_THREADS),
        ("Service threads", SERVICE_THREADS),
        ("sc timeout", f"{SC_TIMEOUT}s" if SC_TIMEOUT else "None"),
        ("Scope", "This machine" if args.local else "Network neighborhood"),
        ("Output format", args.format),
        ("Verbose output", "Enabled" if args.verbose else "Disabled"),
        ("Results directory", os.path.abspath(RESULTS_DIR)),
    ]
    print("=" * 80)
    for label, value in config_items:
        print(f"* {label:<20}: {value}")
    print("=" * 80)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    reset_stats()
    scan_stats["scan_start_time"] = datetime.now()

    try:
        if args.local:
            log_phase("LOCAL SERVICE DISCOVERY")
            snapshots = build_local_inventory()
        else:
            log_phase("NETWORK SERVICE DISCOVERY")
            snapshots = build_inventory(keep_duplicates=args.keep_duplicates)
    except DiscoveryLaunchError as e:
        log_error(str(e))
        return 1
    except ServiceMapError as e:
        log_error(f"Mapping failed: {e}")
        return 1

    if not snapshots:
        log_warning("No services were mapped.")

    log_phase("SAVING RESULTS")
    try:
        paths = save_map(snapshots, RESULTS_DIR, args.format)
    except OSError as e:
        log_error(f"Unable to write the service map: {e}")
        return 1
    log_success(f"Saved {len(snapshots)} service record(s)")

    duration = datetime.now() - scan_stats["scan_start_time"]
    print_completion_banner(str(timedelta(seconds=int(duration.total_seconds()))), paths)
    return 0


if __name__ == "__main__":
    sys.exit(main())
