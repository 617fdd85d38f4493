import logging
from pathlib import Path

from rich.logging import RichHandler

LOGGER_NAME = "pdcopilot"
LOG_FILENAME = "pdcopilot.log"


def log_path(data_dir: Path) -> Path:
    return Path(data_dir) / "logs" / LOG_FILENAME


def setup_logging(verbose: bool = False, data_dir: Path | None = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if logger.handlers:
        return logger

    console = RichHandler(show_path=False, rich_tracebacks=True)
    console.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console)

    if data_dir is not None:
        path = log_path(data_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(handler)
    return logger
