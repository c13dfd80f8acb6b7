"""
Application principale FastAPI
"""
from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import init_db, async_session_maker
from app.dependencies import build_services
from app.exceptions import BioVaultError, SystemFault
from app.logging_config import configure_logging
from app.routers import auth, biometric, tokens, attendance

logger = logging.getLogger(__name__)


async def sweep_tokens_periodically(services, interval: int):
    """Nettoyage périodique des jetons expirés"""
    while True:
        await asyncio.sleep(interval)
        try:
            async with async_session_maker() as db:
                await services.tokens.sweep_expired(db)
        except Exception:
            logger.exception("Échec du nettoyage des jetons expirés")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie de l'application"""
    # Startup
    configure_logging(settings.LOG_LEVEL)
    await init_db()
    logger.info("Base de données initialisée")
    app.state.services = build_services(settings)

    sweeper = None
    if settings.TOKEN_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(
            sweep_tokens_periodically(app.state.services, settings.TOKEN_SWEEP_INTERVAL_SECONDS)
        )
    yield
    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
    logger.info("Arrêt de l'application")


# Créer l'application FastAPI
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    Vérification d'identité biométrique et jetons d'identité à durée de vie courte

    - Enrôlement et vérification faciale (qualité, vivacité, similarité)
    - Gabarits chiffrés au repos (AES-256-GCM)
    - Jetons QR à usage limité pour la présence et l'accès aux services
    """,
    lifespan=lifespan
)

# Configuration CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # En production, spécifier les origines autorisées
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BioVaultError)
async def biovault_error_handler(request: Request, exc: BioVaultError):
    """Chaque erreur garde son type (error_kind) jusqu'à l'appelant"""
    if isinstance(exc, SystemFault):
        logger.error(f"{exc.kind} sur {request.url.path}: {exc.message}")
        message = "Erreur interne, veuillez réessayer"
    else:
        message = exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error_kind": exc.kind,
            "message": message,
            "retryable": exc.retryable,
        },
    )


# Inclure les routers
app.include_router(auth.router, prefix="/api")
app.include_router(biometric.router, prefix="/api")
app.include_router(tokens.router, prefix="/api")
app.include_router(attendance.router, prefix="/api")


@app.get("/health")
async def health_check():
    """Vérification de santé"""
    return {"status": "healthy", "app": settings.APP_NAME, "version": settings.APP_VERSION}
