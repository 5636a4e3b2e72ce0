from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Optional

from app.constants import market_data


class ReferenceData:
    """Read-only symbol -> instrument metrics lookup, static for the process lifetime."""

    def __init__(
        self,
        stocks: Optional[Mapping[str, Mapping[str, Any]]] = None,
        indices: Optional[Mapping[str, Mapping[str, Any]]] = None,
        default_symbol: str = market_data.DEFAULT_SYMBOL,
    ) -> None:
        source = stocks if stocks is not None else market_data.STOCKS
        self._stocks = MappingProxyType(
            {symbol.upper(): MappingProxyType(dict(row)) for symbol, row in source.items()}
        )
        self._indices = MappingProxyType(
            dict(indices if indices is not None else market_data.INDICES)
        )
        self.default_symbol = default_symbol

    @property
    def symbols(self) -> list[str]:
        return list(self._stocks.keys())

    @property
    def indices(self) -> Mapping[str, Mapping[str, Any]]:
        return self._indices

    def has_symbol(self, symbol: str) -> bool:
        return symbol.upper() in self._stocks

    def get(self, symbol: str) -> Mapping[str, Any]:
        """Metrics for a symbol; unknown symbols resolve to the default instrument."""
        row = self._stocks.get(symbol.upper())
        if row is None:
            row = self._stocks[self.default_symbol]
        return row

    def symbols_in_sector(self, sector: str) -> list[str]:
        return [
            symbol
            for symbol, row in self._stocks.items()
            if row.get("sector") == sector
        ]


_default: Optional[ReferenceData] = None


def get_reference_data() -> ReferenceData:
    """Shared default table built from app.constants.market_data."""
    global _default
    if _default is None:
        _default = ReferenceData()
    return _default
