"""
Point d'entrée principal de l'API LMS (progression vidéo et présences).
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, OperationalError

import app.models  # noqa: F401 (enregistre tous les modèles dans Base.metadata avant les routers)
from app.config import settings
from app.routers import attendances, materials, video_progress
from app.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie de l'application : démarre et arrête le scheduler APScheduler."""
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="LMS Attendance API",
    description="Suivi de la progression vidéo et présence automatique par complétion",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : autorise tous les ports localhost en développement (à restreindre en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(video_progress.router)
app.include_router(materials.router)
app.include_router(attendances.router)


@app.exception_handler(OperationalError)
async def storage_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """
    Base de données injoignable : 503 avec Retry-After, le client renvoie son rapport.
    Aucune nouvelle tentative côté serveur.
    """
    logger.error("Base de données indisponible : %s", exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Base de données momentanément indisponible, réessayez."},
        headers={"Retry-After": "5"},
    )


@app.exception_handler(DBAPIError)
async def storage_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    """Connexion perdue en cours de requête → 503 ; toute autre erreur SQL → 500."""
    if exc.connection_invalidated:
        return await storage_unavailable_handler(request, exc)
    logger.error("Erreur SQL non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "LMS Attendance API", "version": "0.1.0"}
