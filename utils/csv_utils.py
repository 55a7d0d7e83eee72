import os
import csv
from typing import Optional

from atomicwrites import atomic_write


def write_csv_atomic(
    path: str,
    rows: list[dict],
    fieldnames: Optional[list[str]] = None,
    lineterminator: str = "\n",
) -> None:
    """Atomically writes rows (list of dicts) to a CSV file.

    Parameters:
    - path (str): Full path to the CSV file.
    - rows (list[dict]): Data to write; keys outside ``fieldnames`` are ignored.
    - fieldnames (list[str], optional): List of CSV headers. If None, inferred from rows[0].
    - lineterminator (str): Row separator, ``\\n`` so output is identical across platforms.
    """
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)

    if not rows and fieldnames is None:
        raise ValueError("fieldnames must be provided when rows is empty")
    if fieldnames is None:
        fieldnames = list(rows[0].keys())

    with atomic_write(path, overwrite=True, newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(
            f, fieldnames=fieldnames, lineterminator=lineterminator, extrasaction="ignore"
        )
        writer.writeheader()
        writer.writerows(rows)
