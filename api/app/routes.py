"""Endpoints de l'API : imports, calcul de rentabilité, compte de résultat, /api/defaults, /api/health."""

from __future__ import annotations

import json
import logging
from typing import Any, cast

from fastapi import APIRouter, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from lucro_ecom.engine import calculate_dre, calculate_results, default_periods
from lucro_ecom.engine.grouping import GROUP_BY_CHOICES, GROUP_BY_PRODUCT
from lucro_ecom.exporters.excel import ImportResult
from lucro_ecom.models import (
    BankStatement,
    CalculationResult,
    ConfigError,
    FeeSettings,
    OrderImport,
    ParseError,
    SettlementImport,
    UnsupportedFormatError,
)
from lucro_ecom.parsers.bank import SUPPORTED_BANKS
from lucro_ecom.parsers.base import detect_file_format
from lucro_ecom.pipeline import DEFAULT_OWNER, PipelineOrchestrator
from lucro_ecom.storage.fetcher import settlement_from_row

from .overrides import DreRequest, ResultsRequest, apply_fee_overrides
from .serializers import (
    serialize_calculation,
    serialize_income_statement,
    serialize_orders,
    serialize_period,
    serialize_record,
    serialize_settlements,
    serialize_statement,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB


async def _validate_and_read_file(file: UploadFile) -> tuple[str, bytes]:
    """Valide l'upload (extension, taille) et retourne (nom, contenu)."""
    filename = file.filename or "unknown"
    try:
        detect_file_format(filename)
    except UnsupportedFormatError as e:
        raise HTTPException(status_code=422, detail=str(e))

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"Fichier '{filename}' trop volumineux : {len(content)} octets (maximum {MAX_FILE_SIZE}).",
        )
    return filename, content


def _resolve_settings(request: Request, overrides: dict[str, Any] | None) -> FeeSettings:
    """Paramétrage de frais effectif (défaut du dépôt + surcharges)."""
    default = request.app.state.settings_repository.get_default(DEFAULT_OWNER)
    try:
        return apply_fee_overrides(request.app.state.config, overrides, default)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Overrides invalides : {e}")
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _parse_overrides_json(overrides_json: str | None) -> dict[str, Any] | None:
    if not overrides_json:
        return None
    try:
        data = json.loads(overrides_json)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"JSON overrides invalide : {e}")
    if not isinstance(data, dict):
        raise HTTPException(status_code=422, detail="Les overrides doivent être un objet JSON")
    return data


async def _run_import(
    request: Request,
    kind: str,
    file: UploadFile,
    *,
    bank_profile: str | None = None,
    group_by: str = GROUP_BY_PRODUCT,
    settings: FeeSettings | None = None,
) -> tuple[ImportResult, CalculationResult | None]:
    filename, content = await _validate_and_read_file(file)
    config = request.app.state.config
    pipeline = PipelineOrchestrator()

    try:
        return await pipeline.run_from_buffers(
            kind,
            content,
            filename,
            config,
            bank_profile=bank_profile,
            group_by=group_by,
            settings=settings,
        )
    except (ParseError, UnsupportedFormatError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ConfigError as e:
        logger.error("Erreur de configuration : %s", e)
        raise HTTPException(status_code=500, detail="Erreur de configuration interne")


@router.post("/api/import/bank")
async def import_bank(
    request: Request,
    file: UploadFile,
    bank_profile: str | None = Form(None),
) -> JSONResponse:
    """Upload relevé bancaire (OFX, CSV, XLSX) → transactions canoniques."""
    result, _ = await _run_import(request, "bank", file, bank_profile=bank_profile)
    return JSONResponse(content=serialize_statement(cast(BankStatement, result)))


@router.post("/api/import/settlements")
async def import_settlements(request: Request, file: UploadFile) -> JSONResponse:
    """Upload classeur de liquidation → lignes acceptées, relevés et diagnostic."""
    result, _ = await _run_import(request, "settlements", file)
    return JSONResponse(content=serialize_settlements(cast(SettlementImport, result)))


@router.post("/api/import/orders")
async def import_orders(
    request: Request,
    file: UploadFile,
    group_by: str = Form(GROUP_BY_PRODUCT),
    overrides: str | None = Form(None),
) -> JSONResponse:
    """Upload export de commandes → commandes, diagnostic et calcul de rentabilité."""
    if group_by not in GROUP_BY_CHOICES:
        raise HTTPException(status_code=422, detail=f"Regroupement inconnu : '{group_by}'")
    settings = _resolve_settings(request, _parse_overrides_json(overrides))
    result, calculation = await _run_import(request, "orders", file, group_by=group_by, settings=settings)
    return JSONResponse(content=serialize_orders(cast(OrderImport, result), calculation))


@router.post("/api/results")
async def results(request: Request, body: ResultsRequest) -> JSONResponse:
    """Commandes persistées (JSON) → groupes et totaux de la cascade de frais."""
    settings = _resolve_settings(request, body.overrides.model_dump() if body.overrides else None)
    calculation = calculate_results([o.to_order() for o in body.orders], settings, body.group_by)
    return JSONResponse(content=serialize_calculation(calculation))


@router.post("/api/dre")
async def dre(request: Request, body: DreRequest) -> JSONResponse:
    """Commandes, liquidations et coûts fixes (JSON) → compte de résultat de la période."""
    settings = _resolve_settings(request, body.overrides.model_dump() if body.overrides else None)
    period = body.period.to_period() if body.period is not None else default_periods()[0]
    statement = calculate_dre(
        [o.to_order() for o in body.orders],
        [settlement_from_row(s) for s in body.settlements],
        [c.to_fixed_cost() for c in body.fixed_costs],
        settings,
        period,
    )
    return JSONResponse(content=serialize_income_statement(statement))


@router.get("/api/defaults")
async def defaults(request: Request) -> JSONResponse:
    """Retourne les paramétrages de frais, les banques prises en charge et les options de calcul."""
    config = request.app.state.config
    default = request.app.state.settings_repository.get_default(DEFAULT_OWNER)
    return JSONResponse(content={
        "fee_settings": [serialize_record(s) for s in config.fee_settings],
        "default_settings": default.name if default is not None else config.default_settings().name,
        "banks": [{"id": bank_id, "name": name} for bank_id, name in SUPPORTED_BANKS.items()],
        "default_bank_profile": config.default_bank_profile,
        "group_by": list(GROUP_BY_CHOICES),
        "page_size": config.page_size,
        "dre_periods": [serialize_period(p) for p in default_periods()],
    })


@router.get("/api/health")
async def health() -> dict[str, str]:
    """Health check."""
    return {"status": "ok"}
