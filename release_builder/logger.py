"""
Colored terminal logger for the release build.
"""
import sys
from typing import TYPE_CHECKING, List, Optional, TextIO, Tuple
from pathlib import Path

if TYPE_CHECKING:
    from .orchestrator import ReleaseSummary
    from .targets import BuildPlan


class Colors:
    """ANSI color codes for terminal output"""

    RED = "\033[0;31m"
    GREEN = "\033[0;32m"
    YELLOW = "\033[1;33m"
    BLUE = "\033[0;34m"
    CYAN = "\033[0;36m"
    DIM = "\033[2m"
    BOLD = "\033[1m"
    NC = "\033[0m"  # No Color


class Logger:
    """Prefixed, optionally colored build output."""

    def __init__(
        self,
        use_color: bool = True,
        verbose: bool = False,
        stream: Optional[TextIO] = None,
        err_stream: Optional[TextIO] = None,
    ):
        self.stream = stream or sys.stdout
        self.err_stream = err_stream or stream or sys.stderr
        isatty = getattr(self.stream, "isatty", lambda: False)
        self.use_color = use_color and isatty()
        self.verbose = verbose

    def _paint(self, color: str, text: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{Colors.NC}"

    def _write(self, text: str, err: bool = False) -> None:
        stream = self.err_stream if err else self.stream
        print(text, file=stream)
        stream.flush()

    def info(self, message: str) -> None:
        self._write(f"{self._paint(Colors.BLUE, '[INFO]')} {message}")

    def success(self, message: str) -> None:
        self._write(f"{self._paint(Colors.GREEN, '[OK]')} {message}")

    def warning(self, message: str) -> None:
        self._write(f"{self._paint(Colors.YELLOW, '[WARN]')} {message}", err=True)

    def error(self, message: str) -> None:
        self._write(f"{self._paint(Colors.RED, '[ERROR]')} {message}", err=True)

    def debug(self, message: str) -> None:
        if self.verbose:
            self._write(self._paint(Colors.DIM, f"[DEBUG] {message}"))

    def newline(self) -> None:
        self._write("")

    def header(self, title: str) -> None:
        self.newline()
        self._write(self._paint(Colors.BOLD, title))
        self._write(self._paint(Colors.BOLD, "-" * len(title)))

    def step(self, current: int, total: int, message: str) -> None:
        self._write(self._paint(Colors.CYAN, f"[{current}/{total}] {message}"))

    def target(self, friendly_name: str, rust_target: str) -> None:
        self._write(f"  - {friendly_name} ({rust_target})")

    def plan(self, plan: "BuildPlan") -> None:
        """Report the routing decisions before anything is built."""
        self.header("Build Plan")
        native = ", ".join(t.triple for t in plan.native) or "none"
        isolated = ", ".join(t.triple for t in plan.isolated) or "none"
        self._write(f"  Native builds: {native}")
        self._write(f"  Docker builds: {isolated}")
        for target, reason in plan.skipped:
            self._write(f"  Skipped: {target.triple} ({reason})")
        self.newline()

    def results(self, copied: List[Tuple[Path, str]]) -> None:
        if not copied:
            return
        self.header("Artifacts")
        for path, size in copied:
            self._write(f"  {path.name:<48} {size:>10}")

    def summary(self, summary: "ReleaseSummary") -> None:
        self.header("Summary")
        self._write(f"  Built:   {', '.join(summary.built) or 'none'}")
        for triple, reason in summary.skipped.items():
            self._write(self._paint(Colors.YELLOW, f"  Skipped: {triple} ({reason})"))
        for triple, message in summary.failed.items():
            self._write(self._paint(Colors.RED, f"  Failed:  {triple} ({message})"))
        for record in summary.artifacts:
            self._write(f"  {record.path.name}: {record.status}")
        self.newline()
        self._write(f"All binaries built and copied to {summary.dist_dir}")
