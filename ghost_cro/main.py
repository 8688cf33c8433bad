"""
Ghost CRO
Main FastAPI application
"""
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from ghost_cro.config import get_settings
from ghost_cro.utils.logger import log
from ghost_cro import __version__

# Import routers
from ghost_cro.api import health, analyze, auth, shopify, stripe, analytics, tests, calculations, cron
from ghost_cro.middleware.security_middleware import SecurityMiddleware

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from ghost_cro.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Weekly watchdog scan
    if settings.enable_scheduler:
        try:
            from ghost_cro.scheduler import start_scheduler
            start_scheduler()
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    if settings.enable_scheduler:
        from ghost_cro.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Checkout conversion intelligence for Shopify stores

    - Simulates shopper personas walking the product -> cart -> checkout flow with Claude
    - Grades the flow and lists friction points with fix recommendations
    - Prices the revenue leak and the opportunity against category benchmarks
    - Deploys code fixes into an unpublished sandbox theme for review

    Integrates data from:
    - Shopify (orders, abandoned checkouts, shipping, themes)
    - Google Analytics 4 (traffic and audience demographics)
    """,
    lifespan=lifespan
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Errors go out as {"error": ..., "details"?: ...}"""
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(content=content, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# X-Robots-Tag, Cache-Control
app.add_middleware(SecurityMiddleware)

# Gzip compression
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(auth.router)
app.include_router(analyze.router)
app.include_router(tests.router)
app.include_router(shopify.router)
app.include_router(analytics.router)
app.include_router(calculations.router)
app.include_router(cron.router)
app.include_router(stripe.router)


@app.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt():
    """Block all crawlers"""
    return "User-agent: *\nDisallow: /\n"


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "endpoints": {
            "analyze": "POST /api/analyze",
            "tests": "GET /api/tests",
            "shopify_install": "GET /api/auth/shopify?shop=",
            "shopify_metrics": "POST /api/shopify/metrics",
            "shopify_checkouts": "POST /api/shopify/checkouts",
            "shopify_shipping": "POST /api/shopify/shipping",
            "sandbox_deploy": "POST /api/shopify/sandbox/deploy",
            "theme_publish": "POST /api/shopify/theme/publish",
            "ga4_connect": "GET /api/auth/google-analytics?userId=",
            "ga4_properties": "GET /api/analytics/ga4/properties?userId=",
            "ga4_metrics": "POST /api/analytics/ga4",
            "revenue_opportunity": "POST /api/calculations/revenue-opportunity",
            "weekly_scan": "GET /api/cron/weekly-scan",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ghost_cro.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
