# scm.py
"""
Thin wrapper around the Windows service control tool (sc.exe).

Every call addresses a remote host with the `\\\\HOST` argument and parses the
`KEY : value` blocks sc prints, one block per service.
"""
import re
import socket
import subprocess
import time

from models import RemoteAccessError, ServiceStatus, ServiceTimeoutError

SC_COMMAND = "sc"
# sc exit code for "The specified service does not exist as an installed service."
ERROR_SERVICE_DOES_NOT_EXIST = 1060
DEFAULT_QUERY_BUFFER_SIZE = 262144
DEFAULT_DEPEND_BUFFER_SIZE = 16384
DEFAULT_POLL_INTERVAL = 0.25

SC_FIELD_RE = re.compile(r"^\s*([A-Z][A-Z0-9_]*)\s*:\s*(.*?)\s*$")


def run_subprocess_safely(cmd, **kwargs):
    """
    Run a subprocess with stdin detached and in its own session.
    """
    default_kwargs = {
        "stdin": subprocess.DEVNULL,
        "start_new_session": True,
    }
    subprocess_kwargs = {**default_kwargs, **kwargs}
    return subprocess.run(cmd, **subprocess_kwargs)


def parse_sc_output(output: str) -> list[dict[str, str]]:
    """
    Split sc output into one dict per SERVICE_NAME block.

    Lines that are not `KEY : value` pairs (flags, blank lines, the
    "Enum: entriesRead" header) are skipped.
    """
    records = []
    current = None
    for line in output.splitlines():
        match = SC_FIELD_RE.match(line)
        if not match:
            continue
        key, value = match.groups()
        if key == "SERVICE_NAME":
            current = {key: value}
            records.append(current)
        elif current is not None:
            current.setdefault(key, value)
    return records


def parse_state(value: str | None) -> ServiceStatus | None:
    """Map an sc STATE value such as "4  RUNNING" to a ServiceStatus."""
    if not value:
        return None
    code = value.split()[0]
    try:
        return ServiceStatus(int(code))
    except ValueError:
        return None


def parse_type(value: str | None) -> str:
    """Return the symbolic part of an sc TYPE value ("10  WIN32_OWN_PROCESS")."""
    if not value:
        return ""
    parts = value.split()
    if parts[0].isdigit() or parts[0].startswith("0x"):
        parts = parts[1:]
    return " ".join(parts)


def sc_error_message(proc) -> str:
    """Condense sc's failure text (it prints errors on stdout) to one line."""
    text = " ".join(line.strip() for line in f"{proc.stdout or ''}\n{proc.stderr or ''}".splitlines() if line.strip())
    return text or f"sc exited with code {proc.returncode}"


class LiveService:
    """
    A service as currently exposed by a host's service manager.

    Identity fields are fixed at construction; status is the last observed
    value and is only updated by refresh().
    """

    def __init__(self, manager, machine_name, service_name, display_name="", service_type="", status=None):
        self.manager = manager
        self.machine_name = machine_name
        self.service_name = service_name
        self.display_name = display_name
        self.service_type = service_type
        self.status = status

    def __repr__(self):
        return f"LiveService({self.machine_name}.{self.service_name}, {self.status.name if self.status else None})"

    def refresh(self) -> ServiceStatus | None:
        self.status = self.manager.query_status(self.machine_name, self.service_name)
        return self.status

    def dependent_services(self) -> list["LiveService"]:
        return self.manager.dependent_services(self.machine_name, self.service_name)

    def start(self):
        self.manager.start_service(self.machine_name, self.service_name)

    def stop(self):
        self.manager.stop_service(self.machine_name, self.service_name)

    def execute_command(self, code: int):
        self.manager.control_service(self.machine_name, self.service_name, code)

    def wait_for_status(self, status: ServiceStatus, timeout: float | None = None):
        """Poll until the service reports status. timeout defaults to the manager's wait timeout."""
        if timeout is None:
            timeout = self.manager.wait_timeout
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.refresh() != status:
            if deadline is not None and time.monotonic() >= deadline:
                raise ServiceTimeoutError(
                    f"{self.machine_name}.{self.service_name} did not reach {status.name} within {timeout}s"
                    f" (last seen {self.status.name if self.status else 'unknown'})"
                )
            time.sleep(self.manager.poll_interval)


class ScManager:
    """
    Service control manager access for remote hosts through sc.exe.

    runner and resolver default to subprocess and DNS; both can be replaced,
    which is how the tests feed canned sc output.
    """

    def __init__(
        self,
        runner=None,
        resolver=None,
        timeout: float | None = None,
        wait_timeout: float | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        query_buffer_size: int = DEFAULT_QUERY_BUFFER_SIZE,
        depend_buffer_size: int = DEFAULT_DEPEND_BUFFER_SIZE,
    ):
        self.runner = runner or run_subprocess_safely
        self.resolver = resolver or socket.gethostbyname
        self.timeout = timeout
        self.wait_timeout = wait_timeout
        self.poll_interval = poll_interval
        self.query_buffer_size = query_buffer_size
        self.depend_buffer_size = depend_buffer_size

    def _sc(self, machine_name: str, *args):
        cmd = [SC_COMMAND, f"\\\\{machine_name}", *args]
        try:
            return self.runner(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise RemoteAccessError(machine_name, f"sc {args[0]} timed out after {self.timeout}s") from e
        except OSError as e:
            raise RemoteAccessError(machine_name, f"unable to run sc: {e}") from e

    def _check(self, machine_name: str, proc):
        if proc.returncode != 0:
            raise RemoteAccessError(machine_name, sc_error_message(proc), proc.returncode)
        return proc

    def _to_services(self, machine_name: str, output: str) -> list[LiveService]:
        services = []
        for record in parse_sc_output(output):
            services.append(
                LiveService(
                    self,
                    machine_name,
                    record["SERVICE_NAME"],
                    display_name=record.get("DISPLAY_NAME", ""),
                    service_type=parse_type(record.get("TYPE")),
                    status=parse_state(record.get("STATE")),
                )
            )
        return services

    def resolve_address(self, machine_name: str) -> str | None:
        """Best-effort IPv4 address of a host; None when the name does not resolve."""
        try:
            return self.resolver(machine_name)
        except (OSError, UnicodeError):
            return None

    def list_services(self, machine_name: str) -> list[LiveService]:
        proc = self._sc(machine_name, "query", "state=", "all", "bufsize=", str(self.query_buffer_size))
        self._check(machine_name, proc)
        return self._to_services(machine_name, proc.stdout)

    def query_status(self, machine_name: str, service_name: str) -> ServiceStatus | None:
        """Fresh status of one service, None if the host reports no such service."""
        proc = self._sc(machine_name, "query", service_name)
        if proc.returncode == ERROR_SERVICE_DOES_NOT_EXIST:
            return None
        self._check(machine_name, proc)
        records = parse_sc_output(proc.stdout)
        if not records:
            return None
        return parse_state(records[0].get("STATE"))

    def dependent_services(self, machine_name: str, service_name: str) -> list[LiveService]:
        proc = self._sc(machine_name, "enumdepend", service_name, str(self.depend_buffer_size))
        self._check(machine_name, proc)
        return self._to_services(machine_name, proc.stdout)

    def start_service(self, machine_name: str, service_name: str):
        self._check(machine_name, self._sc(machine_name, "start", service_name))

    def stop_service(self, machine_name: str, service_name: str):
        self._check(machine_name, self._sc(machine_name, "stop", service_name))

    def control_service(self, machine_name: str, service_name: str, code: int):
        self._check(machine_name, self._sc(machine_name, "control", service_name, str(code)))
