"""
Saved simulation reports
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from sqlalchemy.orm import Session

from ghost_cro.models.base import get_db
from ghost_cro.schemas import TestResult
from ghost_cro.services import test_storage
from ghost_cro.utils.logger import log

router = APIRouter(prefix="/api/tests", tags=["tests"])


@router.post("")
async def save_test(result: TestResult, shop: Optional[str] = None, db: Session = Depends(get_db)):
    """Save a report"""
    try:
        test_storage.save_test_result(db, result, shop=shop)
        return {"success": True, "id": result.id}
    except Exception as e:
        log.error(f"Failed to save test result: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to save test result")


@router.get("")
async def list_tests(
    limit: int = Query(50, ge=1, le=500),
    shop: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """All reports, newest first"""
    results = test_storage.list_test_results(db, limit=limit, shop=shop)
    return {"results": [r.to_json_dict() for r in results]}


@router.get("/{test_id}")
async def get_test(test_id: str, db: Session = Depends(get_db)):
    result = test_storage.get_test_result(db, test_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Test result not found")
    return {"result": result.to_json_dict()}
