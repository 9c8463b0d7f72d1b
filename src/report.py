import traceback
from pathlib import Path
from typing import Optional

from typer import secho


class Report:
    """ Reporter class that can be logged to and tracks what to be displayed to user at the end of operation.

    Every message is echoed to the console straight away and kept, so the whole
    run can be written out with `write()`.
    """

    def __init__(self, report_file: Optional[str] = None, echo: bool = True):
        self.report = ""
        self.report_file = report_file
        self.echo = echo

    def log_report(self, message: str, fg: Optional[str] = None):
        self.report += message + '\n'
        if self.echo:
            secho(message, fg=fg)

    def info(self, message: str):
        self.log_report(message, fg="cyan")

    def success(self, message: str):
        self.log_report(message, fg="green")

    def warn(self, message: str):
        self.log_report(f"[WARN] {message}", fg="yellow")

    def error(self, message: str, exc: Optional[BaseException] = None):
        if exc is not None:
            detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            message = f"{message}\n{detail.rstrip()}"
        self.log_report(f"[ERR] {message}", fg="red")

    def write(self, path: Optional[str] = None) -> Optional[Path]:
        """ Saves the collected messages to the report file, if one was configured. """
        target = path or self.report_file
        if not target:
            return None
        out = Path(target)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(self.report, encoding="utf-8")
        return out
