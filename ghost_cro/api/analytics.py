"""
Google Analytics 4 endpoints
Traffic and audience metrics via the merchant's OAuth connection, falling
back to a service account
"""
import math
from datetime import datetime, timedelta
from typing import Dict, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ghost_cro.connectors.ga4 import GA4Client, GA4Error, build_oauth_client, build_service_account_client
from ghost_cro.models.base import get_db
from ghost_cro.schemas import CamelModel
from ghost_cro.services import ga4_oauth
from ghost_cro.utils.helpers import iso_date
from ghost_cro.utils.logger import log

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


class GA4Request(CamelModel):
    property_id: Optional[str] = None
    credentials: Optional[Dict] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    use_oauth: bool = True
    user_id: Optional[str] = None


class DisconnectRequest(CamelModel):
    user_id: Optional[str] = None


class PropertySelectionRequest(CamelModel):
    user_id: Optional[str] = None
    property_id: Optional[str] = None


def _parse_date(value: Optional[str], default: datetime) -> datetime:
    if not value:
        return default
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")


def _period(start: datetime, end: datetime) -> Dict:
    return {
        "start": iso_date(start),
        "end": iso_date(end),
        "days": math.ceil((end - start).total_seconds() / 86400),
    }


def _ga4_http_error(e: Exception) -> HTTPException:
    message = str(e)
    status_code = getattr(e, "status_code", 500)

    if getattr(e, "reconnect", False) or "expired" in message:
        return HTTPException(
            status_code=401,
            detail={"error": "GA4 connection expired. Please reconnect your account.", "reconnect": True},
        )
    if status_code == 403 or "Permission denied" in message:
        return HTTPException(
            status_code=403,
            detail={
                "error": "Permission denied. Make sure the service account has access to the GA4 property.",
                "details": message,
            },
        )
    if status_code == 404 or "not found" in message:
        return HTTPException(
            status_code=404,
            detail={"error": "GA4 property not found. Check your Property ID.", "details": message},
        )
    return HTTPException(status_code=500, detail={"error": "Failed to fetch GA4 metrics", "details": message})


@router.post("/ga4")
async def get_ga4_metrics(request: GA4Request, db: Session = Depends(get_db)):
    """
    Sessions, users, transactions, conversion rate and demographics

    Example: {"userId": "u_123", "startDate": "2024-01-01", "endDate": "2024-01-31"}
    """
    end = _parse_date(request.end_date, datetime.utcnow())
    start = _parse_date(request.start_date, datetime.utcnow() - timedelta(days=30))

    if request.use_oauth and request.user_id and ga4_oauth.has_ga4_connection(db, request.user_id):
        try:
            tokens = await ga4_oauth.refresh_access_token_if_needed(db, request.user_id)
            property_id = request.property_id or ga4_oauth.get_selected_property_id(db, request.user_id)

            if not property_id:
                raise HTTPException(
                    status_code=400,
                    detail={"error": "No GA4 property selected", "hint": "Please select a property from your settings"},
                )

            client = GA4Client(build_oauth_client(tokens["access_token"]), property_id)
            metrics = await client.fetch_metrics(start, end)
            return {"success": True, "method": "oauth", "period": _period(start, end), "metrics": metrics}

        except (ga4_oauth.GA4ConnectionError, GA4Error) as e:
            log.warning(f"OAuth failed, falling back to service account: {str(e)}")

    if not request.property_id or not request.credentials:
        raise HTTPException(status_code=400, detail="Missing propertyId or credentials")

    if not request.credentials.get("client_email") or not request.credentials.get("private_key"):
        raise HTTPException(
            status_code=400,
            detail="Invalid credentials format. Need client_email and private_key from service account JSON.",
        )

    try:
        client = GA4Client(build_service_account_client(request.credentials), request.property_id)
        metrics = await client.fetch_metrics(start, end)
    except Exception as e:
        log.error(f"GA4 API error: {str(e)}")
        raise _ga4_http_error(e)

    return {"success": True, "method": "service_account", "period": _period(start, end), "metrics": metrics}


@router.get("/ga4/status")
async def get_ga4_status(user_id: Optional[str] = Query(None, alias="userId"), db: Session = Depends(get_db)):
    if not user_id:
        return {"connected": False, "propertyId": None}

    connection = ga4_oauth.get_connection(db, user_id)
    if connection is None:
        return {"connected": False, "propertyId": None}

    return {"connected": True, "propertyId": connection.selected_property_id}


@router.post("/ga4/disconnect")
async def disconnect_ga4(request: DisconnectRequest, db: Session = Depends(get_db)):
    if not request.user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    ga4_oauth.disconnect(db, request.user_id)
    return {"success": True, "message": "GA4 disconnected successfully"}


@router.get("/ga4/properties")
async def list_ga4_properties(user_id: Optional[str] = Query(None, alias="userId"), db: Session = Depends(get_db)):
    """GA4 properties visible to the user's connected Google account"""
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        tokens = await ga4_oauth.refresh_access_token_if_needed(db, user_id)
        properties = await ga4_oauth.list_properties(tokens["access_token"])
    except ga4_oauth.GA4ConnectionError as e:
        log.warning(f"GA4 properties unavailable for user {user_id}: {str(e)}")
        raise HTTPException(
            status_code=401,
            detail={"error": "GA4 connection expired. Please reconnect your account.", "reconnect": True},
        )
    except httpx.HTTPError as e:
        log.error(f"Failed to fetch GA4 properties: {str(e)}")
        raise HTTPException(status_code=500, detail={"error": "Failed to fetch GA4 properties", "details": str(e)})

    return {"success": True, "properties": properties}


@router.post("/ga4/properties")
async def select_ga4_property(request: PropertySelectionRequest, db: Session = Depends(get_db)):
    if not request.user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    if not request.property_id:
        raise HTTPException(status_code=400, detail="Property ID is required")

    if not ga4_oauth.select_property(db, request.user_id, request.property_id):
        raise HTTPException(status_code=404, detail="No GA4 connection found")

    return {"success": True, "message": "Property saved successfully"}
