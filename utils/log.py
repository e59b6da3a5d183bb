"""
Console output and logging setup for ETL runs.

Console helpers print colored, timestamped lines for the operator; library code
logs through the standard logging tree configured by setup_verbose_logging().
Uses colorama for cross-platform terminal color support.
"""

import datetime
import logging
import os
import sys
from typing import Iterable, Mapping, Optional

from colorama import Fore, Style, init

# Initialize colorama (auto-reset after each print)
init(autoreset=True)


class C:
    """Color shortcuts for run output."""
    HEADER = Fore.CYAN + Style.BRIGHT
    STEP = Fore.BLUE + Style.BRIGHT
    OK = Fore.GREEN + Style.BRIGHT
    WARN = Fore.YELLOW + Style.BRIGHT
    ERR = Fore.RED + Style.BRIGHT
    DIM = Style.DIM
    SYMBOL = Fore.MAGENTA + Style.BRIGHT
    VALUE = Fore.GREEN
    RESET = Style.RESET_ALL


# Run and symbol statuses share one palette
STATUS_COLORS = {
    "SUCCESS": C.OK,
    "WARNING": C.WARN,
    "FAILED": C.ERR,
    "RUNNING": C.STEP,
}


def _ts() -> str:
    return datetime.datetime.now().strftime("%H:%M:%S")


def _line(color: str, tag: str, msg: str) -> None:
    print(f"{color}[{_ts()}] {tag}{msg}{C.RESET}")


# ---------------------------------------------------------------------------
# Run-level output
# ---------------------------------------------------------------------------

def header(msg: str) -> None:
    """Print a bold section header."""
    print(f"\n{C.HEADER}{'='*60}")
    print(f"  {msg}")
    print(f"{'='*60}{C.RESET}\n")


def step(msg: str) -> None:
    _line(C.STEP, ">> ", msg)


def info(msg: str) -> None:
    print(f"{C.DIM}[{_ts()}]{C.RESET} {msg}")


def ok(msg: str) -> None:
    _line(C.OK, "OK ", msg)


def warn(msg: str) -> None:
    _line(C.WARN, "WARN ", msg)


def err(msg: str) -> None:
    _line(C.ERR, "ERR ", msg)


def status(value: str) -> str:
    """Colorize a run/symbol status for inline use."""
    return f"{STATUS_COLORS.get(value, '')}{value}{C.RESET}"


def summary_table(title: str, rows: list[tuple[str, str]]) -> None:
    """Print label-value pairs under a title."""
    print(f"\n{C.HEADER}{title}{C.RESET}")
    width = max((len(label) for label, _ in rows), default=0)
    for label, value in rows:
        print(f"  {label:<{width}}  {C.VALUE}{value}{C.RESET}")
    print()


# ---------------------------------------------------------------------------
# Symbol-level output
# ---------------------------------------------------------------------------

def symbol_outcome(
    current: int,
    total: int,
    symbol: str,
    outcome: str,
    counts: Mapping[str, int],
    note: Optional[str] = None,
    skipped: bool = False,
) -> None:
    """
    Print one finished symbol, e.g.
    [3/11] AAPL: WARNING | read 250 | inserted 0 | updated 1840 | rejected 1 | 1 records rejected
    """
    prefix = f"{C.DIM}[{_ts()}]{C.RESET} {C.STEP}[{current}/{total}]{C.RESET} {C.SYMBOL}{symbol}{C.RESET}: "
    if skipped:
        print(f"{prefix}{C.DIM}not processed ({note or 'cancelled'}){C.RESET}")
        return
    parts = [status(outcome)] + [f"{name} {value}" for name, value in counts.items()]
    if note:
        parts.append(note)
    print(prefix + " | ".join(parts))


def quality_failures(symbol: str, failed_checks: Iterable[tuple[str, int, int, bool]]) -> None:
    """List failing checks for a symbol as (check, failed, checked, blocking) tuples."""
    for check, failed, checked, blocking in failed_checks:
        color = C.ERR if blocking else C.WARN
        kind = "blocking" if blocking else "advisory"
        print(f"    {C.SYMBOL}{symbol}{C.RESET} {color}{check}{C.RESET}: {failed}/{checked} failed ({kind})")


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_verbose_logging(name: str = "etl", level: int = logging.DEBUG) -> logging.Logger:
    """
    Configure a logger writing INFO+ to the console and DEBUG+ to
    <ETL_LOG_DIR or ./logs>/pipeline.log. Library modules log under their own
    module names; attach the handlers to the root of the tree you want captured.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent duplicate handlers on re-import
    if logger.handlers:
        return logger

    fmt = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s %(threadName)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.INFO)
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    log_dir = os.getenv("ETL_LOG_DIR", os.path.join(os.path.dirname(os.path.dirname(__file__)), "logs"))
    os.makedirs(log_dir, exist_ok=True)
    fh = logging.FileHandler(os.path.join(log_dir, "pipeline.log"))
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger
