import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import settings
from core.exceptions import internal_error_detail
from core.limiter import limiter
from core.security import init_identity_verifier, close_identity_verifier
from database import connect_db, close_db
from services.payment_service import init_payment_gateway, close_payment_gateway

# Routers
from routers import tracking, users, parcels, payments, riders, reviews, admin

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await connect_db()
    init_identity_verifier()
    init_payment_gateway()
    logger.info("Parcel API started")
    yield
    # Shutdown
    await close_payment_gateway()
    close_identity_verifier()
    await close_db()
    logger.info("Parcel API stopped")


app = FastAPI(
    title="Parcel API",
    description="Suivi de colis, assignation livreurs et règlement des gains",
    version="1.0.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": "invalid_input", "message": "Requête invalide", "fields": fields}},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Trace complète côté serveur uniquement
    logger.exception(f"Erreur non gérée sur {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": internal_error_detail()},
    )


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers publics (sans auth)
app.include_router(tracking.router, prefix="/api/tracking", tags=["Tracking"])

# Routers avec auth
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(parcels.router, prefix="/api/parcels", tags=["Parcels"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(riders.router, prefix="/api/riders", tags=["Riders"])
app.include_router(reviews.router, prefix="/api/reviews", tags=["Reviews"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "app": "parcel-api", "version": "1.0.0"}
