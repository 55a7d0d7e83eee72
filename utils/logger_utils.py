import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def default_log_dir() -> str:
    BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(BASE_DIR, "logs")


def init_logging(
    module_name: str,
    log_filename: str,
    *,
    level=logging.INFO,
    log_dir: str | None = None,
) -> logging.Logger:
    """Return a logger writing to stdout and a rotating file under ``log_dir``.

    Handlers are attached to the root logger so records emitted from the
    ``shortable`` package end up in the same file as the entry point's own
    messages. Calling this twice with the same file does not duplicate output.
    """
    log_dir = log_dir or default_log_dir()
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.abspath(os.path.join(log_dir, log_filename))

    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, "baseFilename", None) == log_path for h in root.handlers):
        file_handler = RotatingFileHandler(log_path, maxBytes=2 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    return logging.getLogger(module_name)
