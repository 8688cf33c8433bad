"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from ghost_cro.config import get_settings
from ghost_cro.services.llm_service import get_llm_service
from ghost_cro import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "features": {
            "llm_analysis": get_llm_service().is_available(),
            "shopify_oauth": bool(settings.shopify_client_id and settings.shopify_client_secret),
            "shopify_webhooks": bool(settings.shopify_webhook_secret),
            "ga4_oauth": bool(settings.google_client_id and settings.google_client_secret),
            "weekly_scan": settings.enable_scheduler,
        },
        "timestamp": datetime.utcnow().isoformat()
    }
