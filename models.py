from dataclasses import dataclass
from enum import Enum


class ServiceStatus(Enum):
    """Service control manager states, keyed by the numeric code sc.exe prints."""

    STOPPED = 1
    START_PENDING = 2
    STOP_PENDING = 3
    RUNNING = 4
    CONTINUE_PENDING = 5
    PAUSE_PENDING = 6
    PAUSED = 7


@dataclass(frozen=True)
class ServiceSnapshot:
    service_name: str
    machine_name: str
    display_name: str
    ip_address: str | None
    service_type: str
    state: str
    start_mode: str = ""
    dependent_services: str = ""


# Column order of every export. (header, attribute) pairs.
SNAPSHOT_FIELDS = [
    ("ServiceName", "service_name"),
    ("MachineName", "machine_name"),
    ("DisplayName", "display_name"),
    ("IPAddress", "ip_address"),
    ("Type", "service_type"),
    ("State", "state"),
    ("StartMode", "start_mode"),
    ("DependentServices", "dependent_services"),
]


class ServiceMapError(Exception):
    """Base class for all mapping errors."""


class DiscoveryLaunchError(ServiceMapError):
    """The host discovery command could not be started."""


class RemoteAccessError(ServiceMapError):
    """A host's service manager is unreachable or refused the request."""

    def __init__(self, machine_name: str, message: str, returncode: int | None = None):
        super().__init__(f"{machine_name}: {message}")
        self.machine_name = machine_name
        self.returncode = returncode


class ServiceNotFoundError(ServiceMapError):
    """An operation needs a live service but none resolves."""

    def __init__(self, machine_name: str, service_name: str, message: str | None = None):
        super().__init__(message or f"Service {machine_name}.{service_name} not found")
        self.machine_name = machine_name
        self.service_name = service_name


class ServiceTimeoutError(ServiceMapError):
    """A service did not reach the awaited status in time."""


class SnapshotCreationError(ServiceMapError):
    """A snapshot could not be assembled from a live service."""
