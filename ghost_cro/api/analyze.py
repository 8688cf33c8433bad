"""
Store analysis endpoint
Scrapes a product/cart page and runs the simulated-shopper audit with Claude
"""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ghost_cro.models.base import get_db
from ghost_cro.schemas import CamelModel
from ghost_cro.services import billing, test_storage
from ghost_cro.services.analysis_service import (
    AnalysisError,
    AnalysisService,
    generate_personas_from_demographics,
)
from ghost_cro.services.llm_service import get_llm_service
from ghost_cro.utils.logger import log

router = APIRouter(prefix="/api/analyze", tags=["analyze"])


class AnalyzeRequest(CamelModel):
    url: Optional[str] = None
    persona_mix: str = "balanced"
    shop: Optional[str] = None
    # GA4 demographics from /api/analytics/ga4; personas follow the real audience when present
    demographics: Optional[Dict] = None


def get_analysis_service() -> AnalysisService:
    return AnalysisService(get_llm_service())


@router.post("")
async def analyze(
    request: AnalyzeRequest,
    service: AnalysisService = Depends(get_analysis_service),
    db: Session = Depends(get_db),
):
    """
    Run a checkout analysis

    Example: {"url": "https://store.com/products/tee", "personaMix": "price-sensitive"}
    """
    if not request.url:
        raise HTTPException(status_code=400, detail="URL is required")

    if not service.llm.is_available():
        raise HTTPException(
            status_code=503,
            detail="LLM service not available. Configure ANTHROPIC_API_KEY in .env",
        )

    personas = generate_personas_from_demographics(request.demographics) or None

    try:
        result = await service.analyze(request.url, request.persona_mix, personas=personas)

        previous_score = test_storage.get_latest_score(db, request.url)
        if previous_score is not None:
            result.previous_score = previous_score
            result.change = result.score - previous_score

        test_storage.save_test_result(db, result, shop=request.shop)
        if request.shop:
            billing.record_test_run(db, request.shop)

        return {"result": result.to_json_dict()}

    except AnalysisError as e:
        log.error(f"Analysis error for {request.url}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        log.error(f"Analysis error for {request.url}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to analyze checkout")
