"""Parser for the pipe-delimited shortable-stock snapshot.

The snapshot looks like::

    #BOF|2024.01.02|09:15:02
    #SYM|CUR|NAME|CON|ISIN|REBATERATE|FEERATE|AVAILABLE|
    AAPL|USD|APPLE INC|265598|US0378331005|5.0611|0.25|>10000000|
    BRK B|USD|BERKSHIRE HATHAWAY INC-CL B|72063691|US0846707026|4.9|0.25|6500000|
    #EOF|2

Comment (``#``) and blank lines are headers/filler; the first one that names
both the symbol and availability columns fixes the :class:`ColumnLayout` for
the rest of the pass.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

LOGGER = logging.getLogger(__name__)

COMMENT_MARKER = "#"
FIELD_DELIMITER = "|"
CLASS_SEPARATOR = "."
GREATER_THAN_MARKER = ">"
NOT_AVAILABLE = "NA"

SYMBOL_COLUMN = "SYM"
AVAILABLE_COLUMN = "AVAILABLE"
REBATE_RATE_COLUMN = "REBATERATE"
FEE_RATE_COLUMN = "FEERATE"
CURRENCY_COLUMN = "CUR"
ISIN_COLUMN = "ISIN"

ALLOWED_TICKER_CLASSES = frozenset({"A", "B", "C"})

NOT_FOUND = -1


def _index_of(fields: list[str], name: str) -> int:
    try:
        return fields.index(name)
    except ValueError:
        return NOT_FOUND


@dataclass(frozen=True)
class ColumnLayout:
    """Header-derived column positions within each pipe-delimited line."""

    symbol: int = NOT_FOUND
    available: int = NOT_FOUND
    rebate_rate: int = NOT_FOUND
    fee_rate: int = NOT_FOUND
    currency: int = NOT_FOUND
    isin: int = NOT_FOUND

    @property
    def is_discovered(self) -> bool:
        return self.symbol >= 0 and self.available >= 0

    @property
    def extended(self) -> bool:
        """True for feeds that also carry rebate/fee rate columns."""
        return self.rebate_rate >= 0 or self.fee_rate >= 0

    @property
    def class_tickers(self) -> bool:
        """True for the broker feed, whose tickers carry a space-separated class.

        Recognised by its currency/ISIN columns as well as the rate columns.
        """
        return self.extended or self.currency >= 0 or self.isin >= 0

    @property
    def min_fields(self) -> int:
        return max(self.symbol, self.available) + 1

    def fieldnames(self, key: str) -> list[str]:
        names = [key, "BorrowableShares"]
        if self.extended:
            names.extend(["RebateRate", "FeeRate"])
        return names


@dataclass(frozen=True)
class ShortRecord:
    ticker: str
    borrowable_shares: str
    rebate_rate: str = ""
    fee_rate: str = ""


def is_header_line(line: str) -> bool:
    return line.startswith(COMMENT_MARKER) or not line.strip()


def discover_layout(line: str) -> ColumnLayout:
    """Locate the known column names in a header line by exact match."""
    if line.startswith(COMMENT_MARKER):
        line = line[len(COMMENT_MARKER):]
    fields = line.rstrip("\r\n").split(FIELD_DELIMITER)
    return ColumnLayout(
        symbol=_index_of(fields, SYMBOL_COLUMN),
        available=_index_of(fields, AVAILABLE_COLUMN),
        rebate_rate=_index_of(fields, REBATE_RATE_COLUMN),
        fee_rate=_index_of(fields, FEE_RATE_COLUMN),
        currency=_index_of(fields, CURRENCY_COLUMN),
        isin=_index_of(fields, ISIN_COLUMN),
    )


def normalize_available(value: str) -> str:
    """``">500"`` means "at least 500"; the marker is dropped, the number kept."""
    return value.replace(GREATER_THAN_MARKER, "").strip()


def normalize_rate(value: str) -> str:
    value = value.strip()
    return "" if value == NOT_AVAILABLE else value


def normalize_ticker(raw: str, class_tickers: bool) -> str:
    ticker = raw.strip()
    if class_tickers:
        ticker = ticker.replace(" ", CLASS_SEPARATOR)
    return ticker


def is_valid_ticker(ticker: str) -> bool:
    """Reject preferred shares, warrants and other non-common-stock suffixes.

    ``BRK.B`` is kept; ``EPR.PRE``, ``WFC.PRL`` and ``BAC.WS.A`` are not.
    """
    parts = ticker.split(CLASS_SEPARATOR)
    if len(parts) == 1:
        return True
    return len(parts) == 2 and parts[1] in ALLOWED_TICKER_CLASSES


def _optional_field(fields: list[str], index: int) -> str:
    # Only read when the column was discovered and this row actually has it.
    if index >= 0 and index < len(fields):
        return normalize_rate(fields[index])
    return ""


class ShortableParser:
    """Classifies snapshot lines and turns data lines into :class:`ShortRecord`.

    The parser is stateful for a single pass only: it remembers the
    discovered layout and tallies dropped rows in :attr:`dropped`.
    """

    def __init__(self, processing_date_label: str = "") -> None:
        self.processing_date_label = processing_date_label
        self._layout: Optional[ColumnLayout] = None
        self.dropped: Counter[str] = Counter()
        self.lines_seen = 0

    @property
    def layout(self) -> Optional[ColumnLayout]:
        return self._layout

    def feed(self, line: str) -> Optional[ShortRecord]:
        self.lines_seen += 1
        line = line.rstrip("\r\n")

        if is_header_line(line):
            if self._layout is None:
                candidate = discover_layout(line)
                if candidate.is_discovered:
                    self._layout = candidate
                    LOGGER.info(
                        "SHORTABLE_LAYOUT_DISCOVERED symbol=%d available=%d rebate=%d fee=%d extended=%s",
                        candidate.symbol,
                        candidate.available,
                        candidate.rebate_rate,
                        candidate.fee_rate,
                        candidate.extended,
                    )
            return None

        layout = self._layout
        if layout is None:
            return self._drop("malformed", "no header before data line", line)

        fields = line.split(FIELD_DELIMITER)
        if len(fields) < layout.min_fields:
            return self._drop("malformed", f"expected >= {layout.min_fields} fields", line)

        ticker = normalize_ticker(fields[layout.symbol], layout.class_tickers)
        if not ticker:
            return self._drop("empty_ticker", "blank symbol", line)

        if layout.class_tickers and not is_valid_ticker(ticker.upper()):
            self.dropped["invalid_class"] += 1
            LOGGER.debug(
                "SHORTABLE_TICKER_SKIPPED date=%s ticker=%s reason=non_class_abc",
                self.processing_date_label,
                ticker,
            )
            return None

        return ShortRecord(
            ticker=ticker,
            borrowable_shares=normalize_available(fields[layout.available]),
            rebate_rate=_optional_field(fields, layout.rebate_rate),
            fee_rate=_optional_field(fields, layout.fee_rate),
        )

    def _drop(self, reason: str, detail: str, line: str) -> None:
        self.dropped[reason] += 1
        LOGGER.warning(
            "SHORTABLE_ROW_SKIPPED date=%s reason=%s detail=%s line=%r",
            self.processing_date_label,
            reason,
            detail,
            line[:120],
        )
        return None

    def parse_lines(self, lines: Iterable[str]) -> Iterator[ShortRecord]:
        for line in lines:
            record = self.feed(line)
            if record is not None:
                yield record


__all__ = [
    "ColumnLayout",
    "ShortRecord",
    "ShortableParser",
    "discover_layout",
    "is_header_line",
    "is_valid_ticker",
    "normalize_available",
    "normalize_rate",
    "normalize_ticker",
]
