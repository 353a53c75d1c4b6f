"""Rich console output for CLI commands, mirrored to a per-run log file."""

from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table
from rich.theme import Theme


THEME = Theme({
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red bold",
    "step": "blue",
    "api": "magenta",
    "frame": "dim cyan",
    "dim": "dim",
})

# level -> (theme style, console marker)
_MARKERS: dict[str, tuple[str, str]] = {
    "INFO": ("info", "ℹ"),
    "SUCCESS": ("success", "✓"),
    "WARNING": ("warning", "⚠"),
    "ERROR": ("error", "✗"),
    "STEP": ("step", "→"),
    "API": ("api", "⚡"),
    "FRAME": ("frame", "▣"),
}

# Observations longer than this are cut in the log file
MAX_LOGGED_TEXT = 120


class PipelineLogger:
    """Styled console output for one CLI run, optionally mirrored to a file.

    Pipeline components take an optional `PipelineLogger` for user-facing
    progress; internal diagnostics go through the standard `logging` module.
    Each file line reads ``[time] LEVEL: message``.

    Args:
        command: Command name ('record', 'process', ...); prefixes the log file name.
        logs_dir: Where to put the log file. None keeps output console-only.
        console: Console to print to; a themed stdout console by default.
    """

    def __init__(
        self,
        command: str,
        logs_dir: Path | str | None = "./logs",
        console: Console | None = None,
    ):
        self.command = command
        self.console = console or Console(theme=THEME)
        self.log_file: Path | None = None
        self._sink: TextIO | None = None

        if logs_dir is not None:
            directory = Path(logs_dir)
            directory.mkdir(parents=True, exist_ok=True)
            self.log_file = directory / f"{command}_{datetime.now():%Y%m%d_%H%M%S}.log"
            self._sink = self.log_file.open("w", encoding="utf-8")

    def _record(self, level: str, *lines: str) -> None:
        if self._sink is None:
            return
        stamp = f"{datetime.now():%Y-%m-%d %H:%M:%S}"
        self._sink.writelines(f"[{stamp}] {level}: {line}\n" for line in lines)
        self._sink.flush()

    def _emit(self, level: str, message: str, *, console: bool = True, **kwargs: Any) -> None:
        if console:
            style, marker = _MARKERS[level]
            self.console.print(f"[{style}]{marker}[/{style}] {message}", **kwargs)
        self._record(level, message)

    def info(self, message: str, **kwargs: Any) -> None:
        self._emit("INFO", message, **kwargs)

    def success(self, message: str, **kwargs: Any) -> None:
        self._emit("SUCCESS", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._emit("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._emit("ERROR", message, **kwargs)

    def step(self, message: str, **kwargs: Any) -> None:
        """A pipeline stage is starting."""
        self._emit("STEP", message, **kwargs)

    def api(self, model: str, input_tokens: int, output_tokens: int, *, console: bool = True, **kwargs: Any) -> None:
        """Token usage of one remote call.

        Pass ``console=False`` while a progress bar owns the terminal.
        """
        self._emit("API", f"{model}: {input_tokens:,} in, {output_tokens:,} out", console=console, **kwargs)

    def frame(self, index: int, timestamp: float, text: str) -> None:
        """File-only record of what was read from one sampled frame."""
        snippet = " ".join(text.split())
        if len(snippet) > MAX_LOGGED_TEXT:
            snippet = snippet[:MAX_LOGGED_TEXT] + "..."
        self._emit("FRAME", f"#{index} @ {timestamp:.2f}s: {snippet or '(no text)'}", console=False)

    def header(self, title: str, **kwargs: Any) -> None:
        self.console.print()
        self.console.rule(f"[bold]{title}[/bold]", **kwargs)
        self.console.print()
        self._record("HEADER", title)

    def summary(self, title: str, data: dict[str, str], style: str = "green") -> None:
        """Key/value panel, e.g. the metadata headline after a run."""
        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="bold")
        grid.add_column()
        for key, value in data.items():
            grid.add_row(key, value)
        self.console.print(Panel(grid, title=f"[bold]{title}[/bold]", border_style=style))
        self._record("SUMMARY", title, *(f"  {key}: {value}" for key, value in data.items()))

    def table(self, title: str, columns: list[str], rows: list[list[str]], **kwargs: Any) -> None:
        table = Table(*columns, title=title, **kwargs)
        for row in rows:
            table.add_row(*row)
        self.console.print(table)
        self._record("TABLE", title, *("  " + " | ".join(row) for row in rows))

    def progress(self, total: float | None = 1.0) -> Progress:
        """Progress display bound to this console.

        With a total, a bar tracks the pipeline's 0.0-1.0 fraction; with
        None, only a spinner is shown (e.g. while recording).
        """
        columns = [SpinnerColumn(), TextColumn("[progress.description]{task.description}")]
        if total is not None:
            columns += [BarColumn(), TaskProgressColumn()]
        return Progress(*columns, console=self.console)

    def print(self, *args: Any, **kwargs: Any) -> None:
        self.console.print(*args, **kwargs)
        if args:
            self._record("PRINT", " ".join(str(a) for a in args))

    def close(self) -> None:
        if self._sink is not None:
            self._sink.close()
            self._sink = None

    def __enter__(self) -> "PipelineLogger":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


# Set by CLI commands; library callers get a console-only logger
_current_logger: PipelineLogger | None = None


def get_logger() -> PipelineLogger:
    return _current_logger or PipelineLogger("default", logs_dir=None)


def set_logger(logger: PipelineLogger) -> None:
    global _current_logger
    _current_logger = logger
