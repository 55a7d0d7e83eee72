"""Runs one conversion: read the day's raw snapshot, then write both CSV views."""
from __future__ import annotations

import logging
import time
from datetime import date
from pathlib import Path
from typing import Union

from shortable.aggregator import ConversionResult, ShortableAggregator, format_date, parse_date
from shortable.parser import ShortableParser

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

DATASET_SUBDIR = Path("equity", "usa", "shortable", "interactivebrokers")
SYMBOLS_DIRNAME = "symbols"
DATES_DIRNAME = "dates"
DEFAULT_RAW_FILENAME = "usa.txt"


class ConverterConstructionError(RuntimeError):
    """Raised when the converter cannot resolve its date or directories."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def parse_processing_date(value: str | date | None) -> date:
    if isinstance(value, date):
        return value
    if not value:
        raise ConverterConstructionError("processing date is not set")
    try:
        return parse_date(value)
    except ValueError as exc:
        raise ConverterConstructionError(f"invalid processing date {value!r}: {exc}") from exc


class ShortableConverter:
    """Converts the raw shortable-stock snapshot for one processing date.

    ``raw_root``/``output_root``/``history_root`` are dataset roots; the
    ``equity/usa/shortable/interactivebrokers`` sub-tree is appended to each.
    The history root is normally the live data folder holding the per-ticker
    files produced by earlier runs.
    """

    def __init__(
        self,
        raw_root: PathLike,
        output_root: PathLike,
        history_root: PathLike | None,
        processing_date: str | date,
        *,
        raw_filename: str = DEFAULT_RAW_FILENAME,
    ) -> None:
        self.processing_date = parse_processing_date(processing_date)
        self.raw_filename = raw_filename
        self.source_dir = Path(raw_root) / DATASET_SUBDIR / format_date(self.processing_date)
        self.output_dir = Path(output_root) / DATASET_SUBDIR
        self.symbols_dir = self.output_dir / SYMBOLS_DIRNAME
        self.dates_dir = self.output_dir / DATES_DIRNAME
        self.history_dir = (
            Path(history_root) / DATASET_SUBDIR / SYMBOLS_DIRNAME if history_root is not None else None
        )
        try:
            self.symbols_dir.mkdir(parents=True, exist_ok=True)
            self.dates_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConverterConstructionError(f"cannot create output directories under {self.output_dir}: {exc}") from exc

    @property
    def raw_file(self) -> Path:
        return self.source_dir / self.raw_filename

    def convert(self) -> ConversionResult:
        """Ingest the whole snapshot, then drain per-ticker and per-date files.

        Write failures do not stop the run; they are listed on the returned
        :class:`ConversionResult` (see :meth:`ConversionResult.raise_for_failures`).
        """
        started = time.perf_counter()
        label = format_date(self.processing_date)
        parser = ShortableParser(label)
        aggregator = ShortableAggregator(self.processing_date, lambda: parser.layout)

        raw_file = self.raw_file
        if raw_file.is_file():
            with raw_file.open("r", encoding="utf-8", errors="replace", newline="") as handle:
                for record in parser.parse_lines(handle):
                    aggregator.ingest(record)
        else:
            LOGGER.warning("SHORTABLE_RAW_MISSING date=%s path=%s", label, raw_file)

        if parser.lines_seen and parser.layout is None:
            LOGGER.warning("SHORTABLE_LAYOUT_MISSING date=%s path=%s lines=%d", label, raw_file, parser.lines_seen)

        result = aggregator.drain(self.symbols_dir, self.dates_dir, self.history_dir)
        result.lines = parser.lines_seen
        result.dropped = dict(parser.dropped)
        result.elapsed = time.perf_counter() - started

        if result.ok:
            LOGGER.info(
                "SHORTABLE_CONVERT_DONE date=%s lines=%d records=%d tickers=%d dates=%d dropped=%s "
                "rate=%.1f dpts/sec elapsed=%.3fs",
                label,
                result.lines,
                result.records,
                result.tickers_written,
                result.dates_written,
                result.dropped,
                result.throughput,
                result.elapsed,
            )
        else:
            LOGGER.error(
                "SHORTABLE_CONVERT_PARTIAL date=%s failed_tickers=%s failed_dates=%s tickers=%d dates=%d",
                label,
                ",".join(result.failed_tickers),
                ",".join(result.failed_dates),
                result.tickers_written,
                result.dates_written,
            )
        return result


__all__ = [
    "ConverterConstructionError",
    "DATASET_SUBDIR",
    "ShortableConverter",
    "parse_processing_date",
]
