"""Carrier recommendation scoring."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from litestar_carriers.enums import DeliveryPriority
from litestar_carriers.types import ZERO, CarrierRecommendation, RateQuote

# Days assumed when a quote has no delivery estimate.
DEFAULT_ESTIMATED_DAYS = 7


@dataclass(frozen=True)
class ScoreWeights:
    cost: float
    speed: float
    reliability: float


PRIORITY_WEIGHTS: dict[DeliveryPriority, ScoreWeights] = {
    DeliveryPriority.URGENT: ScoreWeights(
        cost=0.2, speed=0.5, reliability=0.3
    ),
    DeliveryPriority.HIGH: ScoreWeights(
        cost=0.2, speed=0.4, reliability=0.4
    ),
    DeliveryPriority.NORMAL: ScoreWeights(
        cost=0.4, speed=0.3, reliability=0.3
    ),
}


@dataclass(frozen=True)
class CarrierPerformance:
    """Performance inputs for scoring, as percentages."""

    on_time_rate: float = 0.0
    rto_rate: float = 0.0


def percentage(part: int, total: int) -> float:
    """``part / total * 100`` rounded to 2 places; 0 for an empty total."""
    if total <= 0:
        return 0.0
    return round(part / total * 100, 2)


def weights_for(priority: DeliveryPriority) -> ScoreWeights:
    return PRIORITY_WEIGHTS.get(
        priority, PRIORITY_WEIGHTS[DeliveryPriority.NORMAL]
    )


def score_quote(
    quote: RateQuote,
    *,
    min_rate: float,
    performance: CarrierPerformance,
    priority: DeliveryPriority,
) -> CarrierRecommendation:
    rate = float(quote.total_charge)
    days = (
        quote.estimated_days
        if quote.estimated_days is not None
        else DEFAULT_ESTIMATED_DAYS
    )
    cost_score = min_rate / rate * 100
    speed_score = float((DEFAULT_ESTIMATED_DAYS - days) * 10)
    reliability_score = performance.on_time_rate
    weights = weights_for(priority)
    score = (
        weights.cost * cost_score
        + weights.speed * speed_score
        + weights.reliability * reliability_score
    )
    return CarrierRecommendation(
        quote=quote,
        priority=priority,
        score=round(score, 4),
        cost_score=round(cost_score, 4),
        speed_score=speed_score,
        reliability_score=reliability_score,
        rto_penalty=100 - performance.rto_rate,
    )


def rank_quotes(
    quotes: Iterable[RateQuote],
    performance: Mapping[str, CarrierPerformance],
    priority: DeliveryPriority = DeliveryPriority.NORMAL,
) -> list[CarrierRecommendation]:
    """Score every priced quote, best first.

    Ties go to the lower total charge, then the carrier and service name.
    """
    priced = [quote for quote in quotes if quote.total_charge > ZERO]
    if not priced:
        return []
    min_rate = float(min(quote.total_charge for quote in priced))
    scored = [
        score_quote(
            quote,
            min_rate=min_rate,
            performance=performance.get(quote.carrier, CarrierPerformance()),
            priority=priority,
        )
        for quote in priced
    ]
    scored.sort(
        key=lambda rec: (
            -rec.score,
            rec.quote.total_charge,
            rec.quote.carrier,
            rec.quote.service_name,
        )
    )
    return scored
