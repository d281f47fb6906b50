"""
Build logging for the bundle builder.

Every message goes to the console and to build.log. Warnings and errors are
also remembered so the end of a build can report them in one place.

Usage:
    from utils import log, logWarning, logError, logDebug, init_logging, print_summary

    init_logging(Path("build.log"))   # optional, first log call does it too

    log("[2/4] Collecting closure...")    # Info - stage banners, progress
    logWarning("no schema for class 21")  # Output may be incomplete
    logError("cannot open template")      # Output is unusable
    logDebug("  * (Shader) Standard")     # build.log only

    print_summary()
"""

import sys
import atexit
from pathlib import Path
from datetime import datetime
from typing import List, Optional, Tuple


class Colors:
    YELLOW = '\033[93m'
    RED = '\033[91m'
    GREEN = '\033[92m'
    BOLD = '\033[1m'
    RESET = '\033[0m'


_log_file = None
_log_path: Optional[Path] = None
_initialized = False
_warnings: List[str] = []
_errors: List[str] = []


def init_logging(log_path: Path = None):
    """
    Open the build log. Calling it again while a log is open does nothing.

    Args:
        log_path: Log file location. Defaults to build.log in the project root.
    """
    global _log_file, _log_path, _initialized, _warnings, _errors

    if _initialized:
        return

    _warnings = []
    _errors = []

    if log_path is None:
        log_path = Path(__file__).parent.parent.parent / "build.log"

    _log_path = Path(log_path)
    _log_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        _log_file = open(_log_path, 'w', encoding='utf-8')
        _initialized = True

        stamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        _log_file.write(f"Bundle build started: {stamp}\n")
        _log_file.write("=" * 70 + "\n\n")
        _log_file.flush()

        atexit.register(close_logging)

    except OSError as e:
        print(f"Warning: Could not open log file {_log_path}: {e}", file=sys.stderr)
        _log_file = None


def close_logging():
    """Finish and close build.log."""
    global _log_file, _initialized

    if _log_file is not None:
        try:
            stamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
            _log_file.write(f"\n{'=' * 70}\n")
            _log_file.write(f"Bundle build finished: {stamp}\n")
            _log_file.close()
        except OSError:
            pass
        _log_file = None

    _initialized = False


def _report(title: str, messages: List[str], color: str):
    print(f"\n{color}{Colors.BOLD}{title} ({len(messages)}):{Colors.RESET}")
    for msg in messages:
        print(f"  {color}- {msg}{Colors.RESET}")
    if _log_file:
        _log_file.write(f"\n{title} ({len(messages)}):\n")
        for msg in messages:
            _log_file.write(f"  - {msg}\n")


def print_summary():
    """Print the collected errors and warnings, then the totals."""
    log("\n" + "=" * 70)
    log("BUILD SUMMARY")
    log("=" * 70)

    if _errors:
        _report("Errors", _errors, Colors.RED)
    if _warnings:
        _report("Warnings", _warnings, Colors.YELLOW)

    print()
    if _errors:
        print(f"{Colors.RED}{Colors.BOLD}{len(_errors)} Error(s){Colors.RESET}", end="")
    else:
        print(f"{Colors.GREEN}0 Errors{Colors.RESET}", end="")
    print(" | ", end="")
    if _warnings:
        print(f"{Colors.YELLOW}{Colors.BOLD}{len(_warnings)} Warning(s){Colors.RESET}")
    else:
        print(f"{Colors.GREEN}0 Warnings{Colors.RESET}")

    if _log_file:
        _log_file.write(f"\n{len(_errors)} Error(s) | {len(_warnings)} Warning(s)\n")
        _log_file.flush()


def get_counts() -> Tuple[int, int]:
    """(errors, warnings) logged since init_logging."""
    return len(_errors), len(_warnings)


def _write_to_file(msg: str, end: str = "\n"):
    if _log_file is not None:
        try:
            _log_file.write(msg + end)
            _log_file.flush()
        except OSError:
            pass


def log(msg: str = "", end: str = "\n"):
    """Progress line: stage banners and the sizes of what was built."""
    if not _initialized:
        init_logging()

    print(msg, end=end)
    _write_to_file(msg, end)


def logWarning(msg: str, end: str = "\n"):
    """
    Something was skipped (a class without schema, a pointer into a missing
    file); the bundle is still written but may lack assets.
    """
    if not _initialized:
        init_logging()

    formatted = f"Warning: {msg}"
    print(f"{Colors.YELLOW}{formatted}{Colors.RESET}", end=end)
    _write_to_file(formatted, end)
    _warnings.append(msg)


def logError(msg: str, end: str = "\n"):
    """Build failure reported by build_bundle before it exits with status 1."""
    if not _initialized:
        init_logging()

    formatted = f"ERROR: {msg}"
    print(f"{Colors.RED}{formatted}{Colors.RESET}", end=end, file=sys.stderr)
    _write_to_file(formatted, end)
    _errors.append(msg)


def logDebug(msg: str, end: str = "\n"):
    """Per-object detail such as each closure member; build.log only."""
    if not _initialized:
        init_logging()

    _write_to_file(f"[DEBUG] {msg}", end)
