"""
Calculation endpoints
Revenue opportunity, revenue leak, percentile, threat impact and store
snapshot math for the dashboard
"""
from typing import Dict, Optional

from fastapi import APIRouter
from pydantic import ConfigDict, Field

from ghost_cro.schemas import CamelModel, Severity, TestResult
from ghost_cro.services.benchmarks import get_category_benchmarks
from ghost_cro.services.ghost_engine import (
    calculate_ghost_health_score,
    calculate_percentile_benchmark,
    calculate_revenue_leak,
    get_percentile_label,
)
from ghost_cro.services.ghost_summary import generate_ghost_summary
from ghost_cro.services.revenue_opportunity import (
    DEFAULT_BENCHMARK_CR,
    DEFAULT_CONVERSION_RATE,
    calculate_revenue_opportunity,
    format_opportunity_range,
    get_methodology_text,
)
from ghost_cro.services.store_snapshot import build_store_snapshot
from ghost_cro.services.threat_impact import (
    calculate_threat_impact,
    format_recovery_range,
    get_confidence_badge,
    get_estimated_cr_lift,
)
from ghost_cro.utils.helpers import is_missing

router = APIRouter(prefix="/api/calculations", tags=["calculations"])


class RevenueOpportunityRequest(CamelModel):
    monthly_visitors: Optional[float] = None
    current_conversion_rate: Optional[float] = None
    aov: Optional[float] = None
    category_benchmark_cr: Optional[float] = None
    # Used to look up the benchmark when categoryBenchmarkCr is omitted
    industry: Optional[str] = None


class RevenueLeakRequest(CamelModel):
    test_result: Optional[TestResult] = None
    metrics: Optional[Dict] = None


class PercentileRequest(CamelModel):
    score: float = Field(..., ge=0, le=100)
    category: Optional[str] = None


class ThreatImpactRequest(CamelModel):
    simulated_buyers_total: int = Field(..., ge=0)
    simulated_buyers_citing: int = Field(..., ge=0)
    threat_severity: Severity
    threat_type: Optional[str] = None
    estimated_cr_lift: Optional[Dict[str, float]] = None
    monthly_visitors: float = 50000
    aov: float = 85


class StoreSnapshotRequest(CamelModel):
    test_result: TestResult
    shopify_metrics: Optional[Dict] = None
    store_url: Optional[str] = None
    store_name: Optional[str] = None


class SnapshotPart(CamelModel):
    model_config = ConfigDict(extra="allow")


class SnapshotMetrics(SnapshotPart):
    conversion_rate: float


class SnapshotFunnel(SnapshotPart):
    visitors: float = 0
    added_to_cart: float = 0
    reached_checkout: float = 0
    purchased: float = 0


class SnapshotBenchmarks(SnapshotPart):
    category_name: str
    avg_conversion_rate: float


class SnapshotOpportunity(SnapshotPart):
    monthly_gap: float
    annual_gap: float


class StoreSnapshot(SnapshotPart):
    """The store-snapshot response, as the dashboard posts it back"""
    metrics: SnapshotMetrics
    funnel: SnapshotFunnel
    benchmarks: SnapshotBenchmarks
    opportunity: SnapshotOpportunity


class GhostSummaryRequest(CamelModel):
    snapshot: StoreSnapshot
    analysis: Dict = {}
    simulation: Dict = {}


@router.post("/revenue-opportunity")
async def revenue_opportunity(request: RevenueOpportunityRequest):
    current_cr = None if is_missing(request.current_conversion_rate) else request.current_conversion_rate
    benchmark_cr = None if is_missing(request.category_benchmark_cr) else request.category_benchmark_cr
    if not benchmark_cr and request.industry:
        benchmark_cr = get_category_benchmarks(request.industry)["avgConversionRate"]

    opportunity = calculate_revenue_opportunity(
        request.monthly_visitors,
        current_cr,
        request.aov,
        benchmark_cr,
    )
    result = opportunity.to_dict()
    result["formattedMonthlyRange"] = format_opportunity_range(
        opportunity.monthly_opportunity.min, opportunity.monthly_opportunity.max
    )
    result["methodology"] = get_methodology_text(
        opportunity.benchmark_gap,
        current_cr or DEFAULT_CONVERSION_RATE,
        benchmark_cr or DEFAULT_BENCHMARK_CR,
    )
    return result


@router.post("/revenue-leak")
async def revenue_leak(request: RevenueLeakRequest):
    leak = calculate_revenue_leak(request.test_result, request.metrics)
    return {**leak, "healthScore": calculate_ghost_health_score(request.test_result)}


@router.post("/percentile")
async def percentile(request: PercentileRequest):
    value = calculate_percentile_benchmark(request.score, request.category)
    return {"percentile": value, "label": get_percentile_label(value, request.category)}


@router.post("/threat-impact")
async def threat_impact(request: ThreatImpactRequest):
    lift = request.estimated_cr_lift or get_estimated_cr_lift(request.threat_severity, request.threat_type)

    impact = calculate_threat_impact(
        request.simulated_buyers_total,
        request.simulated_buyers_citing,
        request.threat_severity,
        lift,
        request.monthly_visitors,
        request.aov,
    )
    impact["formattedRange"] = format_recovery_range(impact["estimatedRecoveryMin"], impact["estimatedRecoveryMax"])
    impact["badge"] = get_confidence_badge(impact["confidenceLevel"])
    return impact


@router.post("/store-snapshot")
async def store_snapshot(request: StoreSnapshotRequest):
    return build_store_snapshot(
        request.test_result,
        request.shopify_metrics,
        store_url=request.store_url,
        store_name=request.store_name,
    )


@router.post("/ghost-summary")
async def ghost_summary(request: GhostSummaryRequest):
    return generate_ghost_summary(request.snapshot.model_dump(by_alias=True), request.analysis, request.simulation)
