from .parser import ColumnLayout, ShortRecord, ShortableParser
from .aggregator import (
    ConversionFailedError,
    ConversionResult,
    DateSnapshot,
    ShortableAggregator,
    TickerHistory,
)
from .converter import ConverterConstructionError, ShortableConverter

__all__ = [
    "ColumnLayout",
    "ShortRecord",
    "ShortableParser",
    "ConversionFailedError",
    "ConversionResult",
    "DateSnapshot",
    "ShortableAggregator",
    "TickerHistory",
    "ConverterConstructionError",
    "ShortableConverter",
]
