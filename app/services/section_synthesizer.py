"""
Section synthesis for initial reports and incremental enhancements.

Every generator is deterministic for a given context and reference table:
markup carries no clock or random values, and section ids come from a base
name plus the caller-supplied counter.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from app.core.intent import extract_assets, extract_timeframe, merge_assets
from app.core.reference_data import ReferenceData, get_reference_data
from app.infra.logging_config import get_logger
from app.schemas.report_context import (
    ComparisonPatch,
    EnhancementKind,
    InitialReportPatch,
    LayoutPatch,
    ReportContext,
    ReportSection,
    ReportType,
    SectionKind,
    SectionOperation,
    SectionsPatch,
    StatePatch,
    TimeframePatch,
)

logger = get_logger("section_synthesizer")

SECTION_TITLES: dict[str, str] = {
    "main-analysis": "Main Analysis",
    "technical-analysis": "Technical Analysis",
    "comparison-analysis": "Comparison",
    "comparison-table": "Stock Comparison",
    "historical-analysis": "Historical Data",
    "predictions": "AI Predictions",
    "risk-analysis": "Risk Assessment",
    "portfolio-overview": "Portfolio Overview",
    "sector-overview": "Sector Overview",
    "market-overview": "Market Overview",
    "enhancement": "Enhanced Analysis",
    "layout-change": "Layout",
}
DEFAULT_SECTION_TITLE = "Analysis"

COMPARISON_METRICS = ("Price", "Change %", "P/E Ratio", "Market Cap", "Volume")

_COUNTER_SUFFIX = re.compile(r"-\d+(?:-\d+)?$")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def section_title(name: str) -> str:
    """Human title for a section id or base name; unknown names get a generic title."""
    base = _COUNTER_SUFFIX.sub("", name or "")
    return SECTION_TITLES.get(base, DEFAULT_SECTION_TITLE)


def slugify(text: str) -> str:
    return _SLUG_INVALID.sub("-", (text or "").lower()).strip("-") or "section"


def next_section_id(base: str, counter: int, taken) -> str:
    """base when free, else base-<counter>, then base-<counter>-<n>."""
    if base not in taken:
        return base
    candidate = f"{base}-{counter}"
    n = 2
    while candidate in taken:
        candidate = f"{base}-{counter}-{n}"
        n += 1
    return candidate


@dataclass
class SynthesisResult:
    """Operations and the typed state patch produced by one generator."""

    operations: list[SectionOperation]
    patch: StatePatch
    change_descriptions: list[str] = field(default_factory=list)
    prices: dict[str, float] = field(default_factory=dict)
    metrics: dict[str, dict[str, Any]] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Formatting helpers
# -----------------------------------------------------------------------------


def _currency(data: Mapping[str, Any]) -> str:
    return "₹" if data.get("currency") == "INR" else "$"


def _price(data: Mapping[str, Any]) -> str:
    return f"{_currency(data)}{data['price']:,.2f}"


def _change_class(value: float) -> str:
    return "text-green-400" if value >= 0 else "text-red-400"


def _signed_pct(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.2f}%"


def _market_cap(data: Mapping[str, Any]) -> str:
    return f"{_currency(data)}{data['marketCap'] / 1e9:,.0f}B"


def _volume(data: Mapping[str, Any]) -> str:
    return f"{data['volume'] / 1e6:.1f}M"


def _tile(label: str, value: str, value_class: str = "text-primary-foreground", note: str = "") -> str:
    note_html = f'<div class="text-sm text-muted-foreground">{note}</div>' if note else ""
    return (
        '<div class="bg-secondary rounded-lg p-4">'
        f'<div class="text-muted-foreground text-sm mb-1">{label}</div>'
        f'<div class="text-2xl font-bold {value_class}">{value}</div>'
        f"{note_html}</div>"
    )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class SectionSynthesizer:
    """Builds section operations and state patches from classified intent."""

    def __init__(self, reference_data: Optional[ReferenceData] = None) -> None:
        self._data = reference_data or get_reference_data()
        self._initial: dict[
            ReportType, Callable[[list[str]], tuple[str, SectionKind, str]]
        ] = {
            ReportType.SINGLE: self._single_report,
            ReportType.COMPARISON: self._comparison_report,
            ReportType.PORTFOLIO: self._portfolio_report,
            ReportType.SECTOR: self._sector_report,
            ReportType.MARKET: self._market_report,
        }
        self._enhancers: dict[EnhancementKind, Callable[..., SynthesisResult]] = {
            EnhancementKind.ADD_TECHNICAL: self._technical_analysis,
            EnhancementKind.ADD_COMPARISON: self._comparison_analysis,
            EnhancementKind.ADD_TIMEFRAME: self._historical_analysis,
            EnhancementKind.ADD_PREDICTIONS: self._predictions,
            EnhancementKind.ADD_RISKS: self._risk_analysis,
            EnhancementKind.MODIFY_LAYOUT: self._layout_change,
            EnhancementKind.GENERIC: self._generic_enhancement,
        }

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def generate_initial(
        self, context: ReportContext, prompt: str, report_type: ReportType
    ) -> SynthesisResult:
        """First report for a conversation. Ids use counter 1."""
        assets = extract_assets(prompt, self._data)
        timeframe = extract_timeframe(prompt)
        generator = self._initial.get(report_type, self._single_report)
        base, kind, content = generator(assets)
        operation = SectionOperation(
            section_id=base,
            action="add",
            content=content,
            order=1,
            kind=kind,
            title=section_title(base),
        )
        section = self._section_from_operation(operation, order=1)
        prices, metrics = self._market_snapshot(assets)
        return SynthesisResult(
            operations=[operation],
            patch=InitialReportPatch(
                report_type=report_type,
                assets=assets,
                timeframe=timeframe,
                sections=[section],
            ),
            change_descriptions=["Initial report generated"],
            prices=prices,
            metrics=metrics,
        )

    def generate_enhancement(
        self,
        context: ReportContext,
        prompt: str,
        kind: EnhancementKind,
        counter: int,
    ) -> SynthesisResult:
        generator = self._enhancers.get(kind)
        if generator is None:
            logger.warning("Unknown enhancement kind %r, using generic", kind)
            generator = self._generic_enhancement
        return generator(context, prompt, counter)

    def insert_section(
        self,
        context: ReportContext,
        prompt: str,
        counter: int,
        position: Optional[int] = None,
        kind: SectionKind = SectionKind.CUSTOM,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> SynthesisResult:
        """
        Custom section at a 1-based position among the ordered sections.

        Without a position (or past the end) the section is appended. When no
        content is supplied a deterministic placeholder body is rendered from
        the prompt.
        """
        base = slugify(title) if title else "custom-section"
        section_id = next_section_id(base, counter, set(context.section_ids()))
        resolved_title = title or section_title(base)
        body = content if content is not None else self._custom_body(
            resolved_title, prompt, context
        )
        order = self._insertion_order(context, position)
        if order is None:
            order = self._next_order(context.state.sections)
        operation = SectionOperation(
            section_id=section_id,
            action="add",
            content=body,
            order=order,
            kind=kind,
            title=resolved_title,
        )
        return SynthesisResult(
            operations=[operation],
            patch=self.build_sections_patch(context, [operation]),
            change_descriptions=[f"add: {section_id}"],
        )

    def build_sections_patch(
        self, context: ReportContext, operations: list[SectionOperation]
    ) -> SectionsPatch:
        """Apply operations to a copy of the section list and wrap it as a patch."""
        return SectionsPatch(sections=self.apply_operations(context, operations))

    def apply_operations(
        self, context: ReportContext, operations: list[SectionOperation]
    ) -> list[ReportSection]:
        """
        New section list after operations, without touching the context.

        add appends at max(order)+1 when op.order is None, otherwise it lands at
        op.order and later sections shift down. replace/update swap content and
        remove drops the section. Operations on unknown ids other than add are
        ignored. The operations themselves are left unchanged.
        """
        sections = [section.model_copy(deep=True) for section in context.state.sections]
        for operation in operations:
            by_id = {section.id: section for section in sections}
            if operation.action == "add":
                if operation.section_id in by_id:
                    by_id[operation.section_id].content = operation.content
                    continue
                order = operation.order
                if order is None:
                    order = self._next_order(sections)
                elif any(s.order >= order for s in sections):
                    for section in sections:
                        if section.order >= order:
                            section.order += 1
                sections.append(self._section_from_operation(operation, order))
            elif operation.action in ("replace", "update"):
                target = by_id.get(operation.section_id)
                if target is not None:
                    target.content = operation.content
            elif operation.action == "remove":
                sections = [s for s in sections if s.id != operation.section_id]
        sections.sort(key=lambda s: s.order)
        return sections

    # -------------------------------------------------------------------------
    # Initial report generators: return (base id, kind, markup)
    # -------------------------------------------------------------------------

    def _single_report(self, assets: list[str]):
        symbol = assets[0] if assets else self._data.default_symbol
        data = self._data.get(symbol)
        arrow = "▲" if data["changePct"] >= 0 else "▼"
        tiles = "".join(
            [
                _tile("Market Cap", _market_cap(data)),
                _tile("P/E Ratio", f"{data['pe']:.1f}"),
                _tile("Volume", _volume(data)),
                _tile("Beta", f"{data['beta']:.2f}"),
            ]
        )
        content = f"""
      <div class="stock-analysis bg-background rounded-xl p-6">
        <div class="flex justify-between items-start mb-6">
          <div>
            <h2 class="text-3xl font-bold text-primary-foreground">{data['name']}</h2>
            <p class="text-muted-foreground">{symbol} • {data['sector']}</p>
          </div>
          <div class="text-right">
            <div class="text-4xl font-bold text-primary-foreground">{_price(data)}</div>
            <div class="{_change_class(data['changePct'])} text-xl">{arrow} {data['changePct']}%</div>
          </div>
        </div>
        <div class="grid grid-cols-4 gap-4">{tiles}</div>
        <div class="mt-6"><canvas id="main-analysis-chart"></canvas></div>
      </div>
    """
        return "main-analysis", SectionKind.METRIC, content

    def _comparison_report(self, assets: list[str]):
        content = f"""
      <div class="comparison-report bg-background rounded-xl p-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-6">Stock Comparison</h2>
        {self._comparison_table(assets)}
      </div>
    """
        return "comparison-table", SectionKind.TABLE, content

    def _portfolio_report(self, assets: list[str]):
        rows = []
        changes = []
        total_cap = 0.0
        for symbol in assets:
            data = self._data.get(symbol)
            changes.append(data["changePct"])
            total_cap += data["marketCap"]
            rows.append(
                '<tr class="border-b border-border">'
                f'<td class="py-3 font-semibold">{symbol}</td>'
                f'<td class="py-3 text-center">{_price(data)}</td>'
                f'<td class="py-3 text-center {_change_class(data["changePct"])}">'
                f'{_signed_pct(data["changePct"])}</td>'
                f'<td class="py-3 text-center">{data["sector"]}</td>'
                "</tr>"
            )
        average_change = sum(changes) / len(changes) if changes else 0.0
        tiles = "".join(
            [
                _tile("Holdings", str(len(assets))),
                _tile(
                    "Avg. Daily Change",
                    _signed_pct(average_change),
                    _change_class(average_change),
                ),
                _tile("Combined Market Cap", f"${total_cap / 1e12:,.2f}T"),
            ]
        )
        content = f"""
      <div class="portfolio-report bg-background rounded-xl p-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-6">Portfolio Overview</h2>
        <div class="grid grid-cols-3 gap-4 mb-6">{tiles}</div>
        <table class="w-full text-primary-foreground">
          <thead><tr class="border-b border-border">
            <th class="text-left py-3">Holding</th><th class="py-3">Price</th>
            <th class="py-3">Change</th><th class="py-3">Sector</th>
          </tr></thead>
          <tbody>{''.join(rows)}</tbody>
        </table>
      </div>
    """
        return "portfolio-overview", SectionKind.TABLE, content

    def _sector_report(self, assets: list[str]):
        anchor = self._data.get(assets[0] if assets else self._data.default_symbol)
        sector = anchor["sector"]
        members = self._data.symbols_in_sector(sector)
        leaders = sorted(members, key=lambda s: self._data.get(s)["changePct"], reverse=True)
        rows = "".join(
            '<tr class="border-b border-border">'
            f'<td class="py-3 font-semibold">{symbol}</td>'
            f'<td class="py-3">{self._data.get(symbol)["name"]}</td>'
            f'<td class="py-3 text-center {_change_class(self._data.get(symbol)["changePct"])}">'
            f'{_signed_pct(self._data.get(symbol)["changePct"])}</td>'
            f'<td class="py-3 text-center">{self._data.get(symbol)["pe"]:.1f}</td>'
            "</tr>"
            for symbol in leaders
        )
        average_pe = (
            sum(self._data.get(s)["pe"] for s in members) / len(members) if members else 0.0
        )
        content = f"""
      <div class="sector-report bg-background rounded-xl p-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-2">{sector} Sector</h2>
        <p class="text-muted-foreground mb-6">{len(members)} tracked companies • Avg. P/E {average_pe:.1f}</p>
        <table class="w-full text-primary-foreground">
          <thead><tr class="border-b border-border">
            <th class="text-left py-3">Symbol</th><th class="text-left py-3">Company</th>
            <th class="py-3">Change</th><th class="py-3">P/E</th>
          </tr></thead>
          <tbody>{rows}</tbody>
        </table>
      </div>
    """
        return "sector-overview", SectionKind.TABLE, content

    def _market_report(self, assets: list[str]):
        tiles = "".join(
            _tile(
                index["name"],
                f"{index['value']:,.2f}",
                note=f'<span class="{_change_class(index["changePct"])}">'
                f'{"▲" if index["changePct"] >= 0 else "▼"} {index["changePct"]}%</span>',
            )
            for index in list(self._data.indices.values())[:3]
        )
        content = f"""
      <div class="market-overview bg-background rounded-xl p-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-6">Market Overview</h2>
        <div class="grid grid-cols-3 gap-4">{tiles}</div>
      </div>
    """
        return "market-overview", SectionKind.METRIC, content

    # -------------------------------------------------------------------------
    # Enhancement generators
    # -------------------------------------------------------------------------

    def _technical_analysis(self, context, prompt, counter) -> SynthesisResult:
        symbol = self._lead_asset(context)
        data = self._data.get(symbol)
        rsi = _clamp(50 + data["changePct"] * 5, 0, 100)
        macd = data["price"] * data["changePct"] / 100
        span = data["high52w"] - data["low52w"]
        band_position = (data["price"] - data["low52w"]) / span if span else 0.5
        if band_position > 0.8:
            band, band_note = "Upper", "Overbought"
        elif band_position < 0.2:
            band, band_note = "Lower", "Oversold"
        else:
            band, band_note = "Middle", "Neutral"
        tiles = "".join(
            [
                _tile("RSI (14)", f"{rsi:.1f}", note="Bullish" if rsi >= 50 else "Bearish"),
                _tile("MACD", f"{macd:.2f}", note="Buy Signal" if macd >= 0 else "Sell Signal"),
                _tile("Bollinger", band, note=band_note),
                _tile("Volume", _volume(data), note=f"{symbol} session volume"),
            ]
        )
        return self._single_add(
            context,
            counter,
            base="technical-analysis",
            kind=SectionKind.CHART,
            body=lambda section_id: f"""
      <div class="technical-analysis-section bg-background rounded-xl p-6 mt-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-6">📊 Technical Analysis: {symbol}</h2>
        <div class="grid grid-cols-4 gap-4">{tiles}</div>
        <div class="mt-6"><canvas id="{section_id}-chart"></canvas></div>
      </div>
    """,
        )

    def _comparison_analysis(self, context, prompt, counter) -> SynthesisResult:
        all_assets = merge_assets(context.state.assets, extract_assets(prompt, self._data))
        section_id = next_section_id("comparison-analysis", counter, set(context.section_ids()))
        operation = SectionOperation(
            section_id=section_id,
            action="add",
            order=self._next_order(context.state.sections),
            kind=SectionKind.TABLE,
            title=section_title(section_id),
            content=f"""
      <div class="comparison-section bg-background rounded-xl p-6 mt-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-6">📈 Comparison Analysis</h2>
        {self._comparison_table(all_assets)}
      </div>
    """,
        )
        sections = self.apply_operations(context, [operation])
        prices, metrics = self._market_snapshot(all_assets)
        return SynthesisResult(
            operations=[operation],
            patch=ComparisonPatch(assets=all_assets, sections=sections),
            change_descriptions=[f"add: {section_id}"],
            prices=prices,
            metrics=metrics,
        )

    def _historical_analysis(self, context, prompt, counter) -> SynthesisResult:
        timeframe = extract_timeframe(prompt)
        symbol = self._lead_asset(context)
        data = self._data.get(symbol)
        period_return = (
            (data["price"] - data["low52w"]) / data["low52w"] * 100 if data["low52w"] else 0.0
        )
        volatility = data["beta"] * 22.0
        sharpe = period_return / volatility if volatility else 0.0
        tiles = "".join(
            [
                _tile("Period Return", _signed_pct(period_return), _change_class(period_return)),
                _tile("Volatility", f"{volatility:.1f}%", "text-yellow-400"),
                _tile("Sharpe Ratio", f"{sharpe:.2f}"),
            ]
        )
        section_id = next_section_id("historical-analysis", counter, set(context.section_ids()))
        operation = SectionOperation(
            section_id=section_id,
            action="add",
            order=self._next_order(context.state.sections),
            kind=SectionKind.CHART,
            title=section_title(section_id),
            content=f"""
      <div class="historical-section bg-background rounded-xl p-6 mt-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-6">📅 {timeframe} Historical Analysis: {symbol}</h2>
        <div class="grid grid-cols-3 gap-4 mb-6">{tiles}</div>
        <div class="text-sm text-muted-foreground">52-week range {_currency(data)}{data['low52w']:,.2f} to {_currency(data)}{data['high52w']:,.2f}</div>
        <canvas id="{section_id}-chart"></canvas>
      </div>
    """,
        )
        return SynthesisResult(
            operations=[operation],
            patch=TimeframePatch(
                timeframe=timeframe,
                sections=self.apply_operations(context, [operation]),
            ),
            change_descriptions=[f"add: {section_id}", f"timeframe: {timeframe}"],
        )

    def _predictions(self, context, prompt, counter) -> SynthesisResult:
        symbol = self._lead_asset(context)
        data = self._data.get(symbol)
        annual_drift = _clamp(data["beta"] * 8 + data["changePct"] * 2, -20, 40)
        targets = "".join(
            '<div class="flex justify-between">'
            f'<span class="text-muted-foreground">{months} Month</span>'
            f'<span class="{_change_class(annual_drift)} font-bold">'
            f"{_currency(data)}{data['price'] * (1 + annual_drift * months / 1200):,.0f} "
            f"({_signed_pct(annual_drift * months / 12)})</span></div>"
            for months in (3, 6, 12)
        )
        confidence = _clamp(60 + data["changePct"] * 8, 5, 95)
        return self._single_add(
            context,
            counter,
            base="predictions",
            kind=SectionKind.INSIGHT,
            body=lambda section_id: f"""
      <div class="predictions-section bg-gradient-to-r from-purple-900 to-indigo-900 rounded-xl p-6 mt-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-6">🔮 AI Predictions &amp; Forecasts: {symbol}</h2>
        <div class="grid grid-cols-2 gap-6">
          <div>
            <h3 class="text-lg font-semibold text-primary-foreground mb-3">Price Targets</h3>
            <div class="space-y-2">{targets}</div>
          </div>
          <div>
            <h3 class="text-lg font-semibold text-primary-foreground mb-3">Model Confidence</h3>
            <div class="flex items-center gap-3">
              <span class="text-muted-foreground">{'Bullish' if annual_drift >= 0 else 'Bearish'} Signal</span>
              <div class="flex-1 bg-gray-700 rounded-full h-2">
                <div class="bg-green-400 h-2 rounded-full" style="width: {confidence:.0f}%"></div>
              </div>
              <span class="text-primary-foreground font-bold">{confidence:.0f}%</span>
            </div>
          </div>
        </div>
      </div>
    """,
        )

    def _risk_analysis(self, context, prompt, counter) -> SynthesisResult:
        symbol = self._lead_asset(context)
        data = self._data.get(symbol)
        beta = data["beta"]
        value_at_risk = -1.65 * 1.6 * beta
        drawdown = (
            (data["low52w"] - data["high52w"]) / data["high52w"] * 100 if data["high52w"] else 0.0
        )
        volatility_level = "High" if beta > 1.2 else "Medium" if beta > 0.9 else "Low"
        valuation_level = "High" if data["pe"] > 40 else "Medium" if data["pe"] > 20 else "Low"
        concentration = "High" if len(context.state.assets) <= 1 else "Medium"
        return self._single_add(
            context,
            counter,
            base="risk-analysis",
            kind=SectionKind.INSIGHT,
            body=lambda section_id: f"""
      <div class="risk-section bg-red-900 bg-opacity-20 border border-red-500 rounded-xl p-6 mt-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-6">⚠️ Risk Analysis: {symbol}</h2>
        <div class="grid grid-cols-2 gap-6">
          <div>
            <h3 class="text-lg font-semibold text-primary-foreground mb-3">Risk Metrics</h3>
            <div class="space-y-2">
              <div class="flex justify-between"><span class="text-muted-foreground">Beta</span><span class="text-yellow-400">{beta:.2f}</span></div>
              <div class="flex justify-between"><span class="text-muted-foreground">VaR (95%)</span><span class="text-red-400">{value_at_risk:.1f}%</span></div>
              <div class="flex justify-between"><span class="text-muted-foreground">Max Drawdown</span><span class="text-red-400">{drawdown:.1f}%</span></div>
            </div>
          </div>
          <div>
            <h3 class="text-lg font-semibold text-primary-foreground mb-3">Risk Factors</h3>
            <ul class="space-y-1 text-muted-foreground">
              <li>• Market volatility: {volatility_level}</li>
              <li>• Valuation risk: {valuation_level}</li>
              <li>• Concentration risk: {concentration}</li>
            </ul>
          </div>
        </div>
      </div>
    """,
        )

    def _layout_change(self, context, prompt, counter) -> SynthesisResult:
        lower = (prompt or "").lower()
        if "presentation" in lower:
            layout = "presentation"
        elif "standard" in lower or "classic" in lower:
            layout = "standard"
        else:
            layout = "dashboard"
        operation = SectionOperation(
            section_id="layout-change",
            action="update",
            content=f'<div class="layout-updated">Layout has been updated to {layout} view</div>',
            title=section_title("layout-change"),
        )
        return SynthesisResult(
            operations=[operation],
            patch=LayoutPatch(layout=layout),
            change_descriptions=[f"layout: {layout}"],
        )

    def _generic_enhancement(self, context, prompt, counter) -> SynthesisResult:
        assets = ", ".join(context.state.assets) or self._data.default_symbol
        return self._single_add(
            context,
            counter,
            base="enhancement",
            kind=SectionKind.TEXT,
            body=lambda section_id: f"""
      <div class="enhanced-section bg-background rounded-xl p-6 mt-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-4">Enhanced Analysis</h2>
        <p class="text-muted-foreground">Enhanced based on: "{html.escape(prompt or '')}"</p>
        <div class="mt-4 p-4 bg-secondary rounded-lg">
          <p class="text-primary-foreground">Additional insights for {assets}.</p>
        </div>
      </div>
    """,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _single_add(
        self,
        context: ReportContext,
        counter: int,
        base: str,
        kind: SectionKind,
        body: Callable[[str], str],
    ) -> SynthesisResult:
        section_id = next_section_id(base, counter, set(context.section_ids()))
        operation = SectionOperation(
            section_id=section_id,
            action="add",
            content=body(section_id),
            kind=kind,
            order=self._next_order(context.state.sections),
            title=section_title(section_id),
        )
        return SynthesisResult(
            operations=[operation],
            patch=self.build_sections_patch(context, [operation]),
            change_descriptions=[f"add: {section_id}"],
        )

    def _comparison_table(self, assets: list[str]) -> str:
        header = "".join(f'<th class="text-center py-3">{symbol}</th>' for symbol in assets)
        rows = []
        for metric in COMPARISON_METRICS:
            cells = "".join(
                f'<td class="py-3 text-center">{self._metric_cell(metric, self._data.get(symbol))}</td>'
                for symbol in assets
            )
            rows.append(
                f'<tr class="border-b border-border"><td class="py-3 font-semibold">{metric}</td>{cells}</tr>'
            )
        return (
            '<table class="w-full text-primary-foreground">'
            f'<thead><tr class="border-b border-border"><th class="text-left py-3">Metric</th>{header}</tr></thead>'
            f"<tbody>{''.join(rows)}</tbody></table>"
        )

    @staticmethod
    def _metric_cell(metric: str, data: Mapping[str, Any]) -> str:
        if metric == "Price":
            return _price(data)
        if metric == "Change %":
            return f'<span class="{_change_class(data["changePct"])}">{_signed_pct(data["changePct"])}</span>'
        if metric == "P/E Ratio":
            return f"{data['pe']:.1f}"
        if metric == "Market Cap":
            return _market_cap(data)
        if metric == "Volume":
            return _volume(data)
        return ""

    def _lead_asset(self, context: ReportContext) -> str:
        return context.state.assets[0] if context.state.assets else self._data.default_symbol

    def _market_snapshot(self, assets: list[str]):
        prices: dict[str, float] = {}
        metrics: dict[str, dict[str, Any]] = {
            "price": {},
            "change": {},
            "volume": {},
            "marketCap": {},
        }
        for symbol in assets:
            data = self._data.get(symbol)
            prices[symbol] = data["price"]
            metrics["price"][symbol] = data["price"]
            metrics["change"][symbol] = data["changePct"]
            metrics["volume"][symbol] = data["volume"]
            metrics["marketCap"][symbol] = data["marketCap"]
        return prices, metrics

    def _custom_body(self, title: str, prompt: str, context: ReportContext) -> str:
        assets = ", ".join(context.state.assets) or self._data.default_symbol
        return f"""
      <div class="custom-section bg-background rounded-xl p-6 mt-6">
        <h2 class="text-2xl font-bold text-primary-foreground mb-4">{html.escape(title)}</h2>
        <p class="text-muted-foreground">{html.escape(prompt)}</p>
        <p class="text-sm text-muted-foreground mt-2">Assets: {assets}</p>
      </div>
    """

    @staticmethod
    def _next_order(sections: list[ReportSection]) -> int:
        return max((section.order for section in sections), default=0) + 1

    @staticmethod
    def _insertion_order(context: ReportContext, position: Optional[int]) -> Optional[int]:
        ordered = sorted(context.state.sections, key=lambda s: s.order)
        if position is None or position > len(ordered):
            return None
        return ordered[max(position, 1) - 1].order

    @staticmethod
    def _section_from_operation(operation: SectionOperation, order: int) -> ReportSection:
        return ReportSection(
            id=operation.section_id,
            kind=operation.kind,
            title=operation.title or section_title(operation.section_id),
            content=operation.content,
            order=order,
            visible=True,
        )
