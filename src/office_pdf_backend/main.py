from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Dict
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from . import __version__
from .configuration import build_convert_metadata, load_settings
from .errors import HTTPError
from .libreoffice import LibreOfficeConverter, OfficeConverter
from .models import ConvertMetadata, Settings
from .pdf_engine import PdfEngine, build_pdf_engine
from .request_scope import CancellationToken, RequestScope
from .route import ConvertOutcome, ConvertRoute
from .utils import create_zip_archive, ensure_directory, sanitize_filename, unique_filename

logger = logging.getLogger(__name__)

settings = load_settings()
logging.getLogger("office_pdf_backend").setLevel(settings.logging.level.upper())

app = FastAPI(title="Office PDF API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

converter = LibreOfficeConverter(binary=settings.libreoffice.binary, extensions=settings.libreoffice.extensions)
pdf_engine = build_pdf_engine(settings)
ensure_directory(Path(settings.api.scratch_root))

# Interval at which a running conversion checks whether the client went away
DISCONNECT_POLL_INTERVAL = 0.25


def get_settings() -> Settings:
    return settings


def get_converter() -> OfficeConverter:
    return converter


def get_pdf_engine() -> PdfEngine:
    return pdf_engine


def get_convert_route(
    office_converter: OfficeConverter = Depends(get_converter),
    engine: PdfEngine = Depends(get_pdf_engine),
) -> ConvertRoute:
    return ConvertRoute(office_converter, engine)


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/config/defaults", response_model=ConvertMetadata)
def get_config_defaults(current: Settings = Depends(get_settings)) -> ConvertMetadata:
    return build_convert_metadata(current)


async def _store_upload(file: UploadFile, upload_dir: Path) -> tuple[str, Path]:
    filename = sanitize_filename(file.filename or "document")
    destination = ensure_directory(upload_dir / uuid4().hex) / filename

    with destination.open("wb") as buffer:
        while chunk := await file.read(8 * 1024 * 1024):
            buffer.write(chunk)
    await file.close()
    return filename, destination.resolve()


async def _build_scope(request: Request, scratch_dir: Path, current: Settings) -> RequestScope:
    scope = RequestScope(scratch_dir, token=CancellationToken(timeout=current.api.timeout))
    form = await request.form()
    upload_dir = ensure_directory(scratch_dir / "uploads")
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            filename, path = await _store_upload(value, upload_dir)
            # Distinct uploads may sanitize to the same name
            scope.add_file(unique_filename(filename, scope.files), path)
        else:
            scope.add_form_value(key, value)
    return scope


async def _run_route(request: Request, route: ConvertRoute, scope: RequestScope) -> ConvertOutcome:
    task = asyncio.ensure_future(run_in_threadpool(route.handle, scope))
    while True:
        done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
        if done:
            return task.result()
        if not scope.cancelled() and await request.is_disconnected():
            scope.logger.warning("Client disconnected; cancelling conversion")
            scope.token.cancel("client disconnected")


def _build_response(scope: RequestScope, outcome: ConvertOutcome, scratch_dir: Path) -> FileResponse:
    cleanup = BackgroundTask(shutil.rmtree, scratch_dir, ignore_errors=True)
    if len(outcome.output_paths) == 1:
        return FileResponse(
            outcome.output_paths[0], media_type="application/pdf", filename=outcome.output_names[0], background=cleanup
        )

    entries = zip(outcome.output_names, outcome.output_paths)
    archive_path = create_zip_archive(entries, scratch_dir / f"{scope.id}.zip")
    return FileResponse(archive_path, media_type="application/zip", filename=archive_path.name, background=cleanup)


@app.post("/forms/libreoffice/convert")
async def convert_office_documents(
    request: Request,
    route: ConvertRoute = Depends(get_convert_route),
    current: Settings = Depends(get_settings),
) -> FileResponse:
    scratch_dir = ensure_directory(Path(current.api.scratch_root) / uuid4().hex)
    try:
        scope = await _build_scope(request, scratch_dir, current)
        outcome = await _run_route(request, route, scope)
        return _build_response(scope, outcome, scratch_dir)
    except HTTPError as exc:
        shutil.rmtree(scratch_dir, ignore_errors=True)
        status_code, message = exc.http_error()
        raise HTTPException(status_code=status_code, detail=message) from exc
    except Exception as exc:  # noqa: BLE001
        shutil.rmtree(scratch_dir, ignore_errors=True)
        logger.exception(f"Conversion failed: {exc}")
        raise HTTPException(status_code=500, detail="Internal Server Error") from exc
