"""
FreshCast - Explanation Generator
==================================

Plain-language report for a production recommendation.

Every report answers:
1. How many to produce, and for when
2. How the number was reached (stage trail)
3. What can go wrong (stockout / waste risk)
4. How much to trust it (confidence)
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .config import Config, DEFAULT_CONFIG
from .models import ForecastOutput, ForecastStatus


@dataclass
class ForecastExplanation:
    """
    Rendered explanation of one forecast.

    Attributes
    ----------
    headline : str
        One-line recommendation
    situation : str
        Demand picture behind the number
    impact : str
        Expected sales, waste and profit
    action : str
        What to do
    trail : List[str]
        Stage-by-stage adjustments
    risks : List[str]
        Stockout / waste warnings
    confidence : str
        HIGH, MEDIUM or LOW with a short reason
    """
    headline: str
    situation: str
    impact: str
    action: str
    trail: List[str] = field(default_factory=list)
    risks: List[str] = field(default_factory=list)
    confidence: str = "LOW"

    def to_string(self) -> str:
        """Format as readable text."""
        parts = [
            self.headline,
            "",
            f"Situation: {self.situation}",
            f"Impact: {self.impact}",
            f"Action: {self.action}",
        ]

        if self.trail:
            parts.append("")
            parts.append("How we got here:")
            for step in self.trail:
                parts.append(f"  - {step}")

        if self.risks:
            parts.append("")
            parts.append("Risks:")
            for risk in self.risks:
                parts.append(f"  - {risk}")

        parts.append(f"Confidence: {self.confidence}")
        return "\n".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


class ExplanationGenerator:
    """
    Turns a ForecastOutput into a ForecastExplanation.

    Usage:
        generator = ExplanationGenerator()
        print(generator.explain(output).to_string())
    """

    CONFIDENCE_TEXT = {
        'high': 'plenty of same-weekday history',
        'medium': 'some history, treat the number as a guide',
        'low': 'little history, watch actual sales closely',
        'none': 'no usable history',
    }

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG

    def explain(self, output: ForecastOutput) -> ForecastExplanation:
        target = output.target_date.isoformat()
        confidence = (
            f"{output.confidence_level.upper()} ({output.smart_confidence:.0f}/100) - "
            f"{self.CONFIDENCE_TEXT.get(output.confidence_level, '')}"
        )

        if output.status != ForecastStatus.OK:
            reason = output.diagnostic.message if output.diagnostic else 'forecast unavailable'
            return ForecastExplanation(
                headline=f"Produce {output.optimal_quantity} units of {output.product_id} "
                         f"at {output.market_id} on {target} (fallback)",
                situation=f"No supported forecast could be made: {reason}.",
                impact="The quantity is a conservative default, not a demand estimate.",
                action="Produce a small batch and record actual sales so the next forecast can learn.",
                trail=list(output.explanation),
                confidence=confidence,
            )

        economics = output.economics
        situation = (
            f"Expected demand is about {output.lambda_:.1f} units "
            f"(baseline {output.baseline_forecast:.1f}, {output.data_points} days of history, "
            f"{output.outliers_removed} outliers corrected)."
        )
        impact = (
            f"Expect to sell {economics.expected_sales:.1f}, waste {economics.expected_waste:.1f}, "
            f"profit {economics.expected_profit:,.2f}."
        )
        action = (
            f"Produce {output.optimal_quantity} units; 80% of days demand falls between "
            f"{output.prediction_interval.lower} and {output.prediction_interval.upper}."
        )

        risks = []
        if output.stockout_probability > 0.3:
            risks.append(f"Stockout risk {output.stockout_probability:.0%}")
        if output.waste_probability > 0.6:
            risks.append(f"Waste risk {output.waste_probability:.0%}")
        if output.weather_condition == 'storm':
            risks.append("Storm forecast - consider not selling at all")
        if output.volatility > 0 and output.volatility > 0.5 * max(output.lambda_, 1.0):
            risks.append("Demand has been volatile recently")

        return ForecastExplanation(
            headline=f"Produce {output.optimal_quantity} units of {output.product_id} "
                     f"at {output.market_id} on {target}",
            situation=situation,
            impact=impact,
            action=action,
            trail=list(output.explanation),
            risks=risks,
            confidence=confidence,
        )
