from __future__ import annotations

from pathlib import Path

import pytest

from shortable.converter import ConverterConstructionError, ShortableConverter
from tests._shortable_helpers import dates_dir, symbols_dir, write_history, write_snapshot

EXTENDED_LINES = [
    "#BOF|2024.01.02|09:15:02",
    "#SYM|CUR|NAME|CON|ISIN|REBATERATE|FEERATE|AVAILABLE|",
    "MSFT|USD|MICROSOFT CORP|272093|US5949181045|5.0611|0.25|>10000000|",
    "BRK B|USD|BERKSHIRE HATHAWAY INC-CL B|72063691|US0846707026|4.9|0.25|6500000|",
    "EPR PRE|USD|EPR PROPERTIES PFD E|94440221|US26884U3068|NA|NA|>10000|",
    "AAPL|USD|APPLE INC|265598|US0378331005|5.0611|NA|>10000000|",
    "#EOF|4",
]


def _converter(roots: dict[str, Path], day: str = "20240102") -> ShortableConverter:
    return ShortableConverter(roots["raw"], roots["output"], roots["data"], day)


def test_basic_scenario_writes_both_views(roots):
    write_snapshot(roots["raw"], "20240102", ["#SYM|AVAILABLE", "AAPL|1000"])

    result = _converter(roots).convert()

    assert result.ok
    assert result.records == 1
    assert (symbols_dir(roots["output"]) / "aapl.csv").read_text(encoding="utf-8") == (
        "Date,BorrowableShares\n20240102,1000\n"
    )
    assert (dates_dir(roots["output"]) / "20240102.csv").read_text(encoding="utf-8") == (
        "Ticker,BorrowableShares\nAAPL,1000\n"
    )


def test_extended_snapshot(roots):
    write_snapshot(roots["raw"], "20240102", EXTENDED_LINES)

    result = _converter(roots).convert()

    assert result.ok
    assert result.dropped == {"invalid_class": 1}
    symbols = symbols_dir(roots["output"])
    assert sorted(p.name for p in symbols.iterdir()) == ["aapl.csv", "brk.b.csv", "msft.csv"]
    assert (symbols / "brk.b.csv").read_text(encoding="utf-8").splitlines() == [
        "Date,BorrowableShares,RebateRate,FeeRate",
        "20240102,6500000,4.9,0.25",
    ]
    assert (dates_dir(roots["output"]) / "20240102.csv").read_text(encoding="utf-8").splitlines() == [
        "Ticker,BorrowableShares,RebateRate,FeeRate",
        "AAPL,10000000,5.0611,",
        "BRK.B,6500000,4.9,0.25",
        "MSFT,10000000,5.0611,0.25",
    ]


def test_history_is_merged_and_current_run_wins(roots):
    write_history(
        roots["data"],
        "aapl",
        [
            "Date,BorrowableShares",
            "20240103,1",
            "20231229,700",
            "20240102,999",
        ],
    )
    write_snapshot(roots["raw"], "20240102", ["#SYM|AVAILABLE", "AAPL|1000"])

    result = _converter(roots).convert()

    assert result.ok
    assert (symbols_dir(roots["output"]) / "aapl.csv").read_text(encoding="utf-8").splitlines() == [
        "Date,BorrowableShares",
        "20231229,700",
        "20240102,1000",
        "20240103,1",
    ]


def test_history_for_unseen_tickers_is_not_rewritten(roots):
    write_history(roots["data"], "gone", ["Date,BorrowableShares", "20231229,5"])
    write_snapshot(roots["raw"], "20240102", ["#SYM|AVAILABLE", "AAPL|1000"])

    _converter(roots).convert()

    assert not (symbols_dir(roots["output"]) / "gone.csv").exists()


def test_last_write_wins_within_a_pass(roots):
    write_snapshot(roots["raw"], "20240102", ["#SYM|AVAILABLE", "AAPL|1000", "AAPL|1500"])

    result = _converter(roots).convert()

    assert result.records == 2
    assert (symbols_dir(roots["output"]) / "aapl.csv").read_text(encoding="utf-8").splitlines() == [
        "Date,BorrowableShares",
        "20240102,1500",
    ]
    assert (dates_dir(roots["output"]) / "20240102.csv").read_text(encoding="utf-8").splitlines() == [
        "Ticker,BorrowableShares",
        "AAPL,1500",
    ]


def test_rerun_is_byte_identical(roots):
    write_snapshot(roots["raw"], "20240102", EXTENDED_LINES)
    write_history(roots["data"], "msft", ["Date,BorrowableShares,RebateRate,FeeRate", "20231229,5,1.0,0.5"])

    _converter(roots).convert()
    first = {p.name: p.read_bytes() for p in symbols_dir(roots["output"]).iterdir()}
    first_date = (dates_dir(roots["output"]) / "20240102.csv").read_bytes()

    _converter(roots).convert()
    second = {p.name: p.read_bytes() for p in symbols_dir(roots["output"]).iterdir()}

    assert first == second
    assert first_date == (dates_dir(roots["output"]) / "20240102.csv").read_bytes()


def test_rerun_against_own_output_is_stable(roots):
    write_snapshot(roots["raw"], "20240102", ["#SYM|AVAILABLE", "AAPL|1000", "MSFT|20"])
    converter = ShortableConverter(roots["raw"], roots["output"], roots["output"], "20240102")

    converter.convert()
    first = (symbols_dir(roots["output"]) / "aapl.csv").read_bytes()
    converter.convert()

    assert (symbols_dir(roots["output"]) / "aapl.csv").read_bytes() == first


def test_unwritable_ticker_is_reported_and_others_still_written(roots):
    write_snapshot(roots["raw"], "20240102", ["#SYM|AVAILABLE", "AAPL|1000", "BAD|1", "MSFT|20"])
    converter = _converter(roots)
    # A directory where the file should go makes the final rename fail.
    (converter.symbols_dir / "bad.csv").mkdir()

    result = converter.convert()

    assert not result.ok
    assert result.failed_tickers == ["BAD"]
    assert result.failed_dates == []
    assert result.tickers_written == 2
    assert (converter.symbols_dir / "aapl.csv").is_file()
    assert (converter.symbols_dir / "msft.csv").is_file()
    assert (converter.dates_dir / "20240102.csv").read_text(encoding="utf-8").splitlines() == [
        "Ticker,BorrowableShares",
        "AAPL,1000",
        "BAD,1",
        "MSFT,20",
    ]


def test_unwritable_date_file_is_reported(roots):
    write_snapshot(roots["raw"], "20240102", ["#SYM|AVAILABLE", "AAPL|1000"])
    converter = _converter(roots)
    (converter.dates_dir / "20240102.csv").mkdir()

    result = converter.convert()

    assert result.failed_dates == ["20240102"]
    assert result.failed_tickers == []
    assert (converter.symbols_dir / "aapl.csv").is_file()


def test_missing_raw_file_is_an_empty_run(roots):
    result = _converter(roots).convert()

    assert result.ok
    assert result.records == 0
    assert list(_converter(roots).symbols_dir.iterdir()) == []


def test_only_the_named_raw_file_is_read(roots):
    write_snapshot(roots["raw"], "20240102", ["#SYM|AVAILABLE", "AAPL|1000"], filename="other.txt")

    result = _converter(roots).convert()

    assert result.records == 0


def test_construction_creates_output_tree(roots):
    converter = _converter(roots)

    assert converter.symbols_dir.is_dir()
    assert converter.dates_dir.is_dir()
    assert converter.raw_file.name == "usa.txt"
    assert converter.raw_file.parent.name == "20240102"


@pytest.mark.parametrize("day", [None, "", "2024-01-02", "20241301", "2024010"])
def test_construction_rejects_bad_dates(roots, day):
    with pytest.raises(ConverterConstructionError):
        ShortableConverter(roots["raw"], roots["output"], roots["data"], day)


def test_construction_fails_when_output_root_is_a_file(tmp_path: Path):
    blocker = tmp_path / "out"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(ConverterConstructionError):
        ShortableConverter(tmp_path / "raw", blocker, None, "20240102")


def test_undecodable_bytes_do_not_abort_the_run(roots):
    path = write_snapshot(roots["raw"], "20240102", [])
    path.write_bytes(b"#SYM|AVAILABLE\nAAPL|1000\nNESTL\xc9|5\nMSFT|20\n")

    result = _converter(roots).convert()

    assert result.ok
    assert (symbols_dir(roots["output"]) / "aapl.csv").read_text(encoding="utf-8").splitlines() == [
        "Date,BorrowableShares",
        "20240102,1000",
    ]
    assert (symbols_dir(roots["output"]) / "msft.csv").is_file()
    day_rows = (dates_dir(roots["output"]) / "20240102.csv").read_text(encoding="utf-8").splitlines()
    assert day_rows[1] == "AAPL,1000"
    assert day_rows[-1] == "MSFT,20"
