# netview.py
import subprocess
import threading
from concurrent.futures import Future

from models import DiscoveryLaunchError

NET_VIEW_COMMAND = ["net", "view"]
HOST_PREFIX = "\\\\"


def parse_host_line(line: str) -> str | None:
    """
    Return the host name announced by one line of `net view` output, or None.

    A host line starts with a double backslash; the name is the first
    whitespace-delimited token after it.
    """
    if not line.startswith(HOST_PREFIX):
        return None
    tokens = line[len(HOST_PREFIX):].split(None, 1)
    if not tokens:
        return None
    return tokens[0]


def parse_host_lines(lines) -> list[str]:
    """Collect host names from `net view` output lines, in the order read."""
    hosts = []
    for line in lines:
        name = parse_host_line(line)
        if name:
            hosts.append(name)
    return hosts


class HostBrowser:
    """
    Runs one `net view` process and collects the announced host names while it runs.

    The future returned by start() resolves with the host list only once the
    process has exited and its output has been read to the end.
    """

    def __init__(self, command=None, on_complete=None, encoding=None):
        self.command = list(command) if command else list(NET_VIEW_COMMAND)
        self.encoding = encoding
        self.host_names: list[str] = []
        self.process: subprocess.Popen | None = None
        self.future: Future = Future()
        if on_complete is not None:
            self.future.add_done_callback(on_complete)
        self._thread: threading.Thread | None = None

    def start(self) -> Future:
        if self.process is not None or self.future.done():
            raise RuntimeError("Host discovery already started")

        try:
            self.process = subprocess.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding=self.encoding,
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            error = DiscoveryLaunchError(f"Unable to start {' '.join(self.command)}: {e}")
            error.__cause__ = e
            self.future.set_exception(error)
            return self.future

        self.future.set_running_or_notify_cancel()
        self._thread = threading.Thread(target=self._read_output, name="netview-reader", daemon=True)
        self._thread.start()
        return self.future

    def _read_output(self):
        try:
            with self.process.stdout as stream:
                for line in stream:
                    name = parse_host_line(line)
                    if name:
                        self.host_names.append(name)
            self.process.wait()
        except Exception as e:
            self.future.set_exception(e)
            return
        self.future.set_result(list(self.host_names))


def discover(command=None, on_complete=None, encoding=None) -> Future:
    """
    Start host discovery in the background.

    Returns a Future resolving to the list of host names in the order `net view`
    printed them. If the command cannot be launched the future fails with
    DiscoveryLaunchError. on_complete, when given, is called once with the
    future after it resolves.
    """
    return HostBrowser(command, on_complete=on_complete, encoding=encoding).start()
