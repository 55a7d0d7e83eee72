"""Groups parsed records by ticker and by date, merges history, writes CSVs."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

import pandas as pd

from shortable.parser import ColumnLayout, ShortRecord
from utils import write_csv_atomic

LOGGER = logging.getLogger(__name__)

DATE_FORMAT = "%Y%m%d"

DATE_COLUMN = "Date"
TICKER_COLUMN = "Ticker"
VALUE_COLUMNS = ("BorrowableShares", "RebateRate", "FeeRate")

Entry = tuple[str, str, str]


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date(value: str) -> date:
    """Parse an exact ``YYYYMMDD`` string."""
    text = str(value).strip()
    if len(text) != 8 or not text.isdigit():
        raise ValueError(f"expected YYYYMMDD, got {value!r}")
    return datetime.strptime(text, DATE_FORMAT).date()


def _row(key_column: str, key: str, entry: Entry, layout: ColumnLayout) -> dict[str, str]:
    names = layout.fieldnames(key_column)
    values = (key,) + entry
    return dict(zip(names, values))


class TickerHistory:
    """Per-ticker mapping of date to ``(borrowable, rebate, fee)``."""

    def __init__(self, ticker: str) -> None:
        self.ticker = ticker.upper()
        self._entries: dict[date, Entry] = {}

    @property
    def filename(self) -> str:
        return f"{self.ticker.lower()}.csv"

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, day: date) -> bool:
        return day in self._entries

    def get(self, day: date) -> Optional[Entry]:
        return self._entries.get(day)

    def add(self, day: date, borrowable: str, rebate: str = "", fee: str = "") -> None:
        self._entries[day] = (borrowable, rebate, fee)

    def try_add(self, day: date, borrowable: str, rebate: str = "", fee: str = "") -> bool:
        if day in self._entries:
            return False
        self._entries[day] = (borrowable, rebate, fee)
        return True

    def dates(self) -> list[date]:
        return sorted(self._entries)

    def rows(self, layout: ColumnLayout) -> list[dict[str, str]]:
        return [
            _row(DATE_COLUMN, format_date(day), self._entries[day], layout)
            for day in self.dates()
        ]


class DateSnapshot:
    """Every ticker seen on one processing date; the last row per ticker wins."""

    def __init__(self, day: date) -> None:
        self.date = day
        self._entries: dict[str, Entry] = {}

    @property
    def filename(self) -> str:
        return f"{format_date(self.date)}.csv"

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, ticker: str, borrowable: str, rebate: str = "", fee: str = "") -> None:
        self._entries[ticker.upper()] = (borrowable, rebate, fee)

    def rows(self, layout: ColumnLayout) -> list[dict[str, str]]:
        return [
            _row(TICKER_COLUMN, ticker, self._entries[ticker], layout)
            for ticker in sorted(self._entries)
        ]


class ConversionFailedError(RuntimeError):
    """Raised when one or more per-ticker or per-date files failed to write."""

    def __init__(self, failed_tickers: Iterable[str], failed_dates: Iterable[str]) -> None:
        self.failed_tickers = list(failed_tickers)
        self.failed_dates = list(failed_dates)
        parts = []
        if self.failed_tickers:
            parts.append(f"Failed to process tickers: {', '.join(self.failed_tickers)}")
        if self.failed_dates:
            parts.append(f"Failed to process dates: {', '.join(self.failed_dates)}")
        super().__init__("; ".join(parts) or "conversion failed")


@dataclass
class ConversionResult:
    lines: int = 0
    records: int = 0
    elapsed: float = 0.0
    tickers_written: int = 0
    dates_written: int = 0
    failed_tickers: list[str] = field(default_factory=list)
    failed_dates: list[str] = field(default_factory=list)
    dropped: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed_tickers and not self.failed_dates

    @property
    def throughput(self) -> float:
        """Raw lines processed per second."""
        if self.elapsed <= 0:
            return float(self.lines)
        return self.lines / self.elapsed

    def raise_for_failures(self) -> None:
        if not self.ok:
            raise ConversionFailedError(self.failed_tickers, self.failed_dates)


def read_history(path: Path) -> pd.DataFrame:
    """Load a previously written per-ticker file with every cell as text."""
    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    frame.columns = [str(col).strip() for col in frame.columns]
    if DATE_COLUMN not in frame.columns:
        raise ValueError(f"{path} has no {DATE_COLUMN} column")
    for column in VALUE_COLUMNS:
        if column not in frame.columns:
            frame[column] = ""
    return frame[[DATE_COLUMN, *VALUE_COLUMNS]]


class ShortableAggregator:
    """Owns the by-ticker and by-date groupings for a single run.

    ``layout_source`` returns the layout discovered by the parser; it is asked
    at drain time, after the whole snapshot has been read.
    """

    def __init__(
        self,
        processing_date: date,
        layout_source: Callable[[], Optional[ColumnLayout]],
        *,
        writer: Callable[..., None] = write_csv_atomic,
    ) -> None:
        self.processing_date = processing_date
        self._layout_source = layout_source
        self._writer = writer
        self.by_ticker: dict[str, TickerHistory] = {}
        self.by_date: dict[date, DateSnapshot] = {}
        self.records = 0

    @property
    def layout(self) -> ColumnLayout:
        return self._layout_source() or ColumnLayout()

    def ingest(self, record: ShortRecord) -> None:
        key = record.ticker.upper()
        history = self.by_ticker.get(key)
        if history is None:
            history = self.by_ticker[key] = TickerHistory(key)
        history.add(self.processing_date, record.borrowable_shares, record.rebate_rate, record.fee_rate)

        snapshot = self.by_date.get(self.processing_date)
        if snapshot is None:
            snapshot = self.by_date[self.processing_date] = DateSnapshot(self.processing_date)
        snapshot.add(key, record.borrowable_shares, record.rebate_rate, record.fee_rate)
        self.records += 1

    def merge_history(self, history: TickerHistory, path: Path) -> int:
        """Fill ``history`` with persisted rows for dates it does not have yet."""
        merged = 0
        frame = read_history(path)
        for row in frame.itertuples(index=False):
            raw_date, borrowable, rebate, fee = row
            try:
                day = parse_date(raw_date)
            except ValueError:
                LOGGER.warning(
                    "SHORTABLE_HISTORY_ROW_SKIPPED ticker=%s path=%s date=%r",
                    history.ticker,
                    path,
                    raw_date,
                )
                continue
            if history.try_add(day, borrowable, rebate, fee):
                merged += 1
        return merged

    def _write(self, path: Path, rows: list[dict[str, str]], fieldnames: list[str]) -> None:
        self._writer(str(path), rows, fieldnames=fieldnames)

    def drain_tickers(self, output_dir: Path, history_dir: Optional[Path] = None) -> tuple[int, list[str]]:
        layout = self.layout
        fieldnames = layout.fieldnames(DATE_COLUMN)
        written = 0
        failed: list[str] = []
        for ticker in sorted(self.by_ticker):
            history = self.by_ticker[ticker]
            output_path = output_dir / history.filename
            try:
                if history_dir is not None:
                    existing = history_dir / history.filename
                    if existing.is_file() and existing.stat().st_size > 0:
                        merged = self.merge_history(history, existing)
                        LOGGER.debug(
                            "SHORTABLE_HISTORY_MERGED ticker=%s rows=%d path=%s",
                            ticker,
                            merged,
                            existing,
                        )
                self._write(output_path, history.rows(layout), fieldnames)
            except (OSError, ValueError) as exc:
                LOGGER.error(
                    "SHORTABLE_TICKER_WRITE_FAILED ticker=%s path=%s err=%s",
                    ticker,
                    output_path,
                    exc,
                )
                failed.append(ticker)
                continue
            written += 1
        return written, failed

    def drain_dates(self, output_dir: Path) -> tuple[int, list[str]]:
        layout = self.layout
        fieldnames = layout.fieldnames(TICKER_COLUMN)
        written = 0
        failed: list[str] = []
        for day in sorted(self.by_date):
            snapshot = self.by_date[day]
            output_path = output_dir / snapshot.filename
            try:
                self._write(output_path, snapshot.rows(layout), fieldnames)
            except OSError as exc:
                LOGGER.error(
                    "SHORTABLE_DATE_WRITE_FAILED date=%s path=%s err=%s",
                    format_date(day),
                    output_path,
                    exc,
                )
                failed.append(format_date(day))
                continue
            written += 1
        return written, failed

    def drain(self, symbols_dir: Path, dates_dir: Path, history_dir: Optional[Path] = None) -> ConversionResult:
        started = time.perf_counter()
        tickers_written, failed_tickers = self.drain_tickers(symbols_dir, history_dir)
        dates_written, failed_dates = self.drain_dates(dates_dir)
        return ConversionResult(
            records=self.records,
            elapsed=time.perf_counter() - started,
            tickers_written=tickers_written,
            dates_written=dates_written,
            failed_tickers=failed_tickers,
            failed_dates=failed_dates,
        )


__all__ = [
    "ConversionFailedError",
    "ConversionResult",
    "DateSnapshot",
    "ShortableAggregator",
    "TickerHistory",
    "format_date",
    "parse_date",
    "read_history",
]
