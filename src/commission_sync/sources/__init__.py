"""Input adapters feeding the reconciliation loop."""

from commission_sync.sources.base import InputAdapter
from commission_sync.sources.legacy import DescriptionExportSource, PositionalExportSource
from commission_sync.sources.square import SquareSource

SOURCES = ("square", "positional", "description")

__all__ = [
    "InputAdapter",
    "SquareSource",
    "PositionalExportSource",
    "DescriptionExportSource",
    "SOURCES",
]
