"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from advising.core.config import settings
from advising.core.deps import get_student_store
from advising.core.structured_logging import configure_logging
from advising.services.store_factory import build_student_store
from advising.services.student_store import StudentStore
from advising.services.summarizer import build_summarizer
from advising.services.summary_cache import SummaryCache

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[FastApiIntegration(transaction_style="endpoint")],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Don't send student contact details to Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from advising.core.rate_limit import limiter

# ============================================================================
# Lifespan: resolve the student store once per process
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.student_store = build_student_store(settings)
    app.state.summary_cache = SummaryCache(ttl_seconds=settings.SUMMARY_CACHE_TTL_SECONDS)
    app.state.summarizer = build_summarizer(settings)
    if not app.state.summarizer.is_configured:
        logger.info("HUGGINGFACE_API_KEY not set; AI summaries will return 503")
    logger.info(f"Student store backend: {app.state.student_store.backend_name}")
    yield


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Advising Dashboard API",
    description="Student advising records, outreach logging and AI summaries",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# ============================================================================
# Routers
# ============================================================================

from advising.routers import stream, students

app.include_router(students.router)
app.include_router(stream.router)


@app.get("/health")
async def health(store: StudentStore = Depends(get_student_store)):
    """
    Health check endpoint.

    Reports the active student store backend and environment info.
    """
    return {
        "status": "ok",
        "env": settings.ENV,
        "version": settings.VERSION,
        "backend": store.backend_name,
    }
