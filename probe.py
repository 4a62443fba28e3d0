# probe.py
"""
Locate and control Windows services on hosts of the local network.
"""
import socket

import psutil

import netview
from console import log_error, log_warning
from models import RemoteAccessError, ServiceNotFoundError, ServiceStatus
from scm import LiveService, ScManager

_UNSET = object()


class ServiceProbe:
    """
    One service on one host: (machine_name, service_name), an IP address
    resolved once, and the live service binding, looked up on first use.
    """

    def __init__(self, machine_name: str, service_name: str, manager: ScManager | None = None, ip_address=_UNSET):
        self.machine_name = machine_name
        self.service_name = service_name
        self.manager = manager or ScManager()
        self._service: LiveService | None = None
        if ip_address is _UNSET:
            ip_address = self.manager.resolve_address(machine_name)
        self.ip_address = ip_address

    @classmethod
    def from_service(cls, service: LiveService, ip_address=_UNSET) -> "ServiceProbe":
        probe = cls(service.machine_name, service.service_name, manager=service.manager, ip_address=ip_address)
        probe._service = service
        return probe

    def __repr__(self):
        return f"ServiceProbe({self.machine_name!r}, {self.service_name!r})"

    def __str__(self):
        return f"{self.machine_name}.{self.service_name}"

    def find(self) -> LiveService | None:
        """Query the host for the service with exactly this name (case-sensitive)."""
        try:
            services = self.manager.list_services(self.machine_name)
        except RemoteAccessError:
            return None
        for service in services:
            if service.service_name == self.service_name:
                return service
        return None

    def resolve(self) -> LiveService | None:
        """The live service binding, looked up once and then cached."""
        if self._service is None:
            self._service = self.find()
        return self._service

    def _current(self) -> LiveService | None:
        # Status-sensitive operations read a fresh status from the host.
        service = self.resolve()
        if service is not None:
            service.refresh()
        return service

    @property
    def status(self) -> ServiceStatus | None:
        service = self.resolve()
        return service.status if service else None

    @property
    def service_type(self) -> str:
        service = self.resolve()
        return service.service_type if service else ""

    def dependent_services(self) -> list[LiveService]:
        service = self.resolve()
        return service.dependent_services() if service else []

    def exists(self) -> bool:
        try:
            service = self._current()
        except RemoteAccessError:
            return False
        return service is not None and service.status is not None

    def is_running(self) -> bool:
        try:
            service = self._current()
        except RemoteAccessError:
            return False
        return service is not None and service.status == ServiceStatus.RUNNING

    def start(self) -> bool:
        """Start the service if it is stopped."""
        service = self._current()
        if service is not None and service.status == ServiceStatus.STOPPED:
            service.start()
            return True
        return False

    def stop(self) -> bool:
        """Stop the service if it is running."""
        service = self._current()
        if service is not None and service.status == ServiceStatus.RUNNING:
            service.stop()
            return True
        return False

    def restart(self) -> bool:
        """
        Stop the service, whatever its status, then start it again.

        A service that is still starting or resuming is first allowed to reach
        RUNNING. Each transition is waited for, bounded by the manager's
        wait_timeout.
        """
        service = self._current()
        if service is None:
            return False
        if service.status in (ServiceStatus.START_PENDING, ServiceStatus.CONTINUE_PENDING):
            service.wait_for_status(ServiceStatus.RUNNING)
        if service.status not in (ServiceStatus.STOPPED, ServiceStatus.STOP_PENDING):
            service.stop()
        service.wait_for_status(ServiceStatus.STOPPED)
        service.start()
        service.wait_for_status(ServiceStatus.RUNNING)
        return True

    def send_command(self, code: int):
        """Send a custom control code to the service."""
        service = self.resolve()
        if service is None:
            raise ServiceNotFoundError(
                self.machine_name,
                self.service_name,
                f"Unable to execute custom command {code} on service {self.machine_name}.{self.service_name} - service not found",
            )
        service.execute_command(code)


def host_services(machine_name: str, manager: ScManager | None = None) -> list[ServiceProbe]:
    """
    A bound ServiceProbe for every service the host reports.

    Raises RemoteAccessError if the host's service manager cannot be reached.
    """
    manager = manager or ScManager()
    services = manager.list_services(machine_name)
    ip_address = manager.resolve_address(machine_name)
    return [ServiceProbe.from_service(service, ip_address=ip_address) for service in services]


def enumerate_all_on_host(machine_name: str, manager: ScManager | None = None):
    """
    Yield a ServiceProbe for every service the host reports.

    If the host's service manager cannot be reached the failure is logged and
    nothing is yielded.
    """
    try:
        probes = host_services(machine_name, manager)
    except RemoteAccessError as e:
        log_error(f"Unable to access service manager on {machine_name}: {e}")
        return
    yield from probes


def enumerate_discoverable(manager: ScManager | None = None, command=None):
    """
    Yield a ServiceProbe for every service on every host `net view` finds.

    Blocks until discovery completes; DiscoveryLaunchError propagates. A host
    whose enumeration fails is logged and skipped.
    """
    manager = manager or ScManager()
    host_names = netview.discover(command).result()
    for machine_name in host_names:
        try:
            probes = list(enumerate_all_on_host(machine_name, manager))
        except Exception as e:
            log_warning(f"Skipping {machine_name}: {e.__class__.__name__} - {e}")
            continue
        yield from probes


def local_services(manager: ScManager | None = None):
    """
    Yield a ServiceProbe for every service installed on this machine.

    Backs `svcmap.py --local`. Windows only: psutil exposes the service
    table through win_service_iter there.
    """
    manager = manager or ScManager()
    machine_name = socket.gethostname()
    ip_address = manager.resolve_address(machine_name)
    for service in psutil.win_service_iter():
        yield ServiceProbe(machine_name, service.name(), manager=manager, ip_address=ip_address)
