"""Convert the day's raw shortable-stock snapshot into per-ticker and per-date CSVs."""

from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from shortable.converter import ConverterConstructionError, ShortableConverter
from utils.env import load_env, settings_from_env
from utils.logger_utils import init_logging

LOGGER = logging.getLogger("convert_shortable")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--date", dest="processing_date", help="Processing date in YYYYMMDD")
    parser.add_argument("--raw-dir", help="Raw data root (default: $SHORTABLE_RAW_DIR or /raw)")
    parser.add_argument(
        "--output-dir",
        help="Output root (default: $SHORTABLE_OUTPUT_DIR or /temp-output-directory)",
    )
    parser.add_argument(
        "--data-dir",
        help="Root holding previously written per-ticker files (default: $SHORTABLE_DATA_DIR)",
    )
    parser.add_argument("--raw-file", help="Snapshot filename inside the dated raw folder")
    parser.add_argument("--log-dir", help="Directory for convert_shortable.log")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    init_logging(
        "convert_shortable",
        "convert_shortable.log",
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        log_dir=args.log_dir,
    )
    loaded, missing = load_env()
    LOGGER.info("ENV_LOADED files=%s missing=%s", loaded, missing)

    settings = settings_from_env(
        processing_date=args.processing_date,
        raw_dir=args.raw_dir,
        output_dir=args.output_dir,
        data_dir=args.data_dir,
        raw_file=args.raw_file,
    )

    try:
        converter = ShortableConverter(
            settings.raw_dir,
            settings.output_dir,
            settings.data_dir,
            settings.processing_date,
            raw_filename=settings.raw_file,
        )
    except ConverterConstructionError as exc:
        LOGGER.error("SHORTABLE_CONSTRUCT_FAILED reason=%s", exc.reason)
        return 1

    try:
        result = converter.convert()
    except Exception:
        LOGGER.exception("SHORTABLE_CONVERT_CRASHED date=%s", settings.processing_date)
        return 1

    if not result.ok:
        LOGGER.error(
            "SHORTABLE_CONVERT_FAILED tickers=%s dates=%s",
            ", ".join(result.failed_tickers) or "-",
            ", ".join(result.failed_dates) or "-",
        )
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
