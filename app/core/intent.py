"""
Keyword intent classification for report prompts.

Rules are ordered tables matched case-insensitively by substring; the first
matching rule wins. Asset extraction matches whole symbols only.
"""

from __future__ import annotations

import re
from typing import Optional, Union

from app.constants.market_data import KEYWORD_BASKETS
from app.core.reference_data import ReferenceData, get_reference_data
from app.schemas.report_context import EnhancementKind, ReportType

REPORT_TYPE_RULES: tuple[tuple[tuple[str, ...], ReportType], ...] = (
    (("compare", "vs"), ReportType.COMPARISON),
    (("portfolio", "holdings"), ReportType.PORTFOLIO),
    (("sector", "industry"), ReportType.SECTOR),
    (("market", "overview"), ReportType.MARKET),
)

ENHANCEMENT_RULES: tuple[tuple[tuple[str, ...], EnhancementKind], ...] = (
    (("technical", "indicator", "rsi", "macd"), EnhancementKind.ADD_TECHNICAL),
    (("compare", "vs", "versus"), EnhancementKind.ADD_COMPARISON),
    (("history", "year", "trend"), EnhancementKind.ADD_TIMEFRAME),
    (("predict", "forecast", "future"), EnhancementKind.ADD_PREDICTIONS),
    (("risk", "volatility"), EnhancementKind.ADD_RISKS),
    (("layout", "dashboard", "view"), EnhancementKind.MODIFY_LAYOUT),
)

# Most specific first: "5 year" must win over the generic "1 year" / "year".
TIMEFRAME_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("10 year", "10y"), "10 Year"),
    (("5 year", "5y"), "5 Year"),
    (("3 year", "3y"), "3 Year"),
    (("ytd", "year to date"), "YTD"),
    (("1 year", "1y"), "1 Year"),
    (("6 month", "6m"), "6 Month"),
    (("3 month", "3m"), "3 Month"),
)
DEFAULT_TIMEFRAME = "1 Year"

_SYMBOL_TOKEN = re.compile(r"[A-Z0-9]+(?:[.\-][A-Z0-9]+)*")


def _first_match(text: str, rules):
    lower = (text or "").lower()
    for keywords, result in rules:
        if any(keyword in lower for keyword in keywords):
            return result
    return None


def classify_report_type(prompt: str) -> ReportType:
    return _first_match(prompt, REPORT_TYPE_RULES) or ReportType.SINGLE


def classify_enhancement(prompt: str) -> EnhancementKind:
    return _first_match(prompt, ENHANCEMENT_RULES) or EnhancementKind.GENERIC


def classify(
    prompt: str, has_existing_context: bool
) -> Union[ReportType, EnhancementKind]:
    """Map a prompt to a report type (new conversation) or an enhancement kind."""
    if has_existing_context:
        return classify_enhancement(prompt)
    return classify_report_type(prompt)


def extract_assets(
    prompt: str, reference_data: Optional[ReferenceData] = None
) -> list[str]:
    """
    Known symbols named in the prompt, in order of first appearance, no duplicates.

    Falls back to a keyword basket ("tech" -> AAPL, MSFT, GOOGL) and then to the
    reference default symbol.
    """
    reference_data = reference_data or get_reference_data()
    assets: list[str] = []
    for token in _SYMBOL_TOKEN.findall((prompt or "").upper()):
        if reference_data.has_symbol(token) and token not in assets:
            assets.append(token)
    if assets:
        return assets

    lower = (prompt or "").lower()
    for keyword, basket in KEYWORD_BASKETS:
        if keyword in lower:
            known = [symbol for symbol in basket if reference_data.has_symbol(symbol)]
            if known:
                return known
    return [reference_data.default_symbol]


def extract_timeframe(prompt: str) -> str:
    return _first_match(prompt, TIMEFRAME_RULES) or DEFAULT_TIMEFRAME


def merge_assets(existing: list[str], new_assets: list[str]) -> list[str]:
    """Ordered set union: existing order first, then unseen new symbols."""
    merged = list(existing)
    for symbol in new_assets:
        if symbol not in merged:
            merged.append(symbol)
    return merged
