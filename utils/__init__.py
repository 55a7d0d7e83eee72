from .csv_utils import write_csv_atomic
from .logger_utils import init_logging

__all__ = [
    "write_csv_atomic",
    "init_logging",
]
