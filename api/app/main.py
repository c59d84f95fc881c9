"""Application FastAPI — point d'entrée du backend API."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lucro_ecom.config.loader import load_config
from lucro_ecom.pipeline import DEFAULT_OWNER
from lucro_ecom.storage.settings import SettingsRepository

from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Charge la configuration YAML et les paramétrages de frais au démarrage.

    Les paramétrages du fichier alimentent le dépôt du propriétaire local ;
    le paramétrage par défaut est ensuite lu depuis le dépôt.
    """
    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    config = load_config(config_dir)
    application.state.config = config
    application.state.settings_repository = SettingsRepository.from_config(config, DEFAULT_OWNER)
    logger.info(
        "Configuration chargée depuis %s : %d paramétrage(s) de frais, pagination %d",
        config_dir,
        len(config.fee_settings),
        config.page_size,
    )
    yield


app = FastAPI(
    title="lucro-ecom API",
    description="Import de relevés bancaires, liquidations et commandes marketplace ; calcul de rentabilité.",
    lifespan=lifespan,
)

cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["POST", "GET"],
    allow_headers=["*"],
)

app.include_router(router)
