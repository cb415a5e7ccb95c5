import logging
import os

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

LOG_FILE = "/var/log/mxprovision.log"
FILE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

theme = Theme(
    {
        "info": "#A3BE8C",
        "warning": "#EBCB8B",
        "error": "bold #BF616A",
        "step": "bold #88C0D0",
        "muted": "#4C566A",
    }
)
console = Console(theme=theme)


def setup_logging(log_file=LOG_FILE, level=logging.INFO):
    """Log to a colored console handler and a persistent timestamped file.

    Safe to call more than once: handlers installed by a previous call are
    replaced.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_mxprovision", False):
            root.removeHandler(handler)
            handler.close()

    handlers = [RichHandler(console=console, markup=False, show_path=False, rich_tracebacks=True)]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler._mxprovision = True
        root.addHandler(handler)
    root.setLevel(level)
    return logging.getLogger("mxprovision")
