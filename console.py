# console.py
import os
import sys
import threading
import traceback

from colorama import Back, Fore, Style, init

# Initialize colorama
init(autoreset=True)

# Set by the command line tools (-v/--verbose).
VERBOSE_OUTPUT = False

# Frames printed for a failing service.
TRACE_DEPTH = 5


def supports_color():
    """Returns True if the terminal supports color, False otherwise."""
    if hasattr(sys.stdout, "isatty") and sys.stdout.isatty():
        return True

    if "COLORTERM" in os.environ:
        return True

    term = os.environ.get("TERM", "")
    if term in (
        "xterm",
        "xterm-color",
        "xterm-256color",
        "linux",
        "screen",
        "screen-256color",
    ):
        return True

    return False


USE_COLOR = supports_color()

# Use print_lock to control printing on screen by potentially multiple threads.
print_lock = threading.Lock()


def colorize(text: str, color: str) -> str:
    """Return text wrapped in color codes if USE_COLOR is True, otherwise return plain text."""
    return f"{color}{text}{Style.RESET_ALL}" if USE_COLOR else text


def log_info(message):
    """Log an informational message."""
    with print_lock:
        print(f"{colorize('[INFO]', Fore.BLUE)} {message}", flush=True)


def log_debug(message):
    """Log a debug message, only if verbose output is enabled."""
    if VERBOSE_OUTPUT:
        with print_lock:
            print(f"{colorize('[DEBUG]', Fore.CYAN)} {message}", file=sys.stderr, flush=True)


def log_warning(message):
    """Log a warning message."""
    with print_lock:
        print(f"{colorize('[WARNING]', Fore.YELLOW)} {message}", file=sys.stderr, flush=True)


def log_error(message):
    """Log an error message."""
    with print_lock:
        print(f"{colorize('[ERROR]', Fore.RED)} {message}", file=sys.stderr, flush=True)


def log_success(message):
    """Log a success message."""
    with print_lock:
        print(f"{colorize('[SUCCESS]', Fore.GREEN)} {message}", flush=True)


def log_phase(phase):
    """Log the start of a new mapping phase."""
    with print_lock:
        print("\n" + "=" * 80, flush=True)
        if USE_COLOR:
            print(f"{Back.BLUE}{Fore.WHITE}PHASE: {phase}{Style.RESET_ALL}", flush=True)
        else:
            print(f"PHASE: {phase}", flush=True)
        print("=" * 80, flush=True)


def format_trace(exc: BaseException, depth: int | None = None) -> list[str]:
    """
    Summarize the innermost frames of an exception as "function file line" strings.
    """
    if depth is None:
        depth = TRACE_DEPTH
    frames = traceback.extract_tb(exc.__traceback__)
    lines = []
    for frame in frames[-depth:] if depth > 0 else []:
        lines.append(f"{frame.name} {os.path.basename(frame.filename)} {frame.lineno}")
    return lines


def log_exception(context: str, exc: BaseException):
    """Log a failure with its message and a truncated trace, as one uninterrupted block."""
    lines = [f"{colorize('[ERROR]', Fore.RED)} {context}: {exc.__class__.__name__} - {exc}"]
    lines.extend(f"    at {frame}" for frame in format_trace(exc))
    with print_lock:
        for line in lines:
            print(line, file=sys.stderr, flush=True)
