"""FastAPI application for ObjectVault.

A thin HTTP adapter over the services in ``object_vault.state``. The owner of
every request comes from the ``X-Owner-Id`` header, which the authentication
layer in front of this service is expected to set.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from object_vault import __version__
from object_vault.config import settings
from object_vault.errors import (
    IngestError,
    InvariantViolation,
    ObjectAlreadyPublicError,
    ObjectNotFoundError,
    ObjectVaultError,
    ThumbnailUnavailableError,
)
from object_vault.extraction.image import THUMBNAIL_CONTENT_TYPE
from object_vault.models import StoredObject
from object_vault.schemas import (
    DeleteObjectsRequest,
    DeleteObjectsResponse,
    ObjectOut,
    PublishObjectRequest,
)
from object_vault.services.ingest import UploadSource
from object_vault.state import Services, build_services, prepare_backends

logger = logging.getLogger(__name__)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_owner_id(x_owner_id: Annotated[UUID | None, Header()] = None) -> UUID:
    if x_owner_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_owner_id


ServicesDep = Annotated[Services, Depends(get_services)]
OwnerDep = Annotated[UUID, Depends(get_owner_id)]


def _attachment(obj: StoredObject, content: bytes, media_type: str) -> Response:
    # Header values are latin-1; other names go through RFC 5987 encoding
    quoted = quote(obj.file_name)
    if quoted != obj.file_name:
        disposition = f"attachment; filename*=utf-8''{quoted}"
    else:
        disposition = f'attachment; filename="{obj.file_name}"'
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": disposition},
    )


router = APIRouter(prefix="/api/cdn")


@router.get("/objects/list", response_model=list[ObjectOut])
async def list_objects(
    services: ServicesDep,
    owner_id: OwnerDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[StoredObject]:
    return await services.objects.list_objects(owner_id, limit=limit, skip=skip)


@router.get("/objects/search", response_model=list[ObjectOut])
async def search_objects(
    services: ServicesDep,
    owner_id: OwnerDep,
    q: str,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[StoredObject]:
    return await services.objects.search(owner_id, q, offset=offset)


@router.post("/objects/upload", response_model=list[ObjectOut])
async def upload(
    services: ServicesDep,
    owner_id: OwnerDep,
    files: Annotated[list[UploadFile], File()],
) -> list[StoredObject]:
    if len(files) > settings.upload_max_files:
        raise HTTPException(
            status_code=413,
            detail=f"At most {settings.upload_max_files} files per upload",
        )
    sources = [
        UploadSource(stream=f.file, content_type=f.content_type, file_name=f.filename)
        for f in files
    ]
    return await services.ingest.ingest(owner_id, sources)


@router.post("/objects/delete", response_model=DeleteObjectsResponse)
async def delete_objects(
    services: ServicesDep,
    owner_id: OwnerDep,
    body: DeleteObjectsRequest,
) -> DeleteObjectsResponse:
    deleted = await services.objects.delete(owner_id, body.files)
    return DeleteObjectsResponse(deleted=deleted)


@router.post("/objects/publish", response_model=ObjectOut)
async def publish_object(
    services: ServicesDep,
    owner_id: OwnerDep,
    body: PublishObjectRequest,
) -> StoredObject:
    return await services.objects.publish(owner_id, body.id)


@router.get("/objects/{object_id}/thumbnail")
async def fetch_object_thumbnail(
    services: ServicesDep,
    owner_id: OwnerDep,
    object_id: UUID,
) -> Response:
    obj = await services.objects.get(owner_id, object_id)
    thumbnail = await services.thumbnails.thumbnail_for(owner_id, object_id)
    return _attachment(obj, thumbnail, THUMBNAIL_CONTENT_TYPE)


@router.get("/objects/{object_id}")
async def fetch_object(
    services: ServicesDep,
    owner_id: OwnerDep,
    object_id: UUID,
) -> Response:
    obj, content = await services.objects.read(owner_id, object_id)
    return _attachment(obj, content, obj.content_type)


# Registered last: catches every other path under /api/cdn
@router.get("/{slug}")
async def fetch_object_by_slug(services: ServicesDep, slug: str) -> Response:
    obj, content = await services.objects.read_public(slug)
    return _attachment(obj, content, obj.content_type)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ObjectNotFoundError)
    async def not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": "Not Found"})

    @app.exception_handler(ThumbnailUnavailableError)
    async def no_thumbnail(request: Request, exc: ThumbnailUnavailableError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": "No thumbnail available"})

    @app.exception_handler(ObjectAlreadyPublicError)
    async def already_public(request: Request, exc: ObjectAlreadyPublicError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": "Conflict"})

    @app.exception_handler(IngestError)
    async def ingest_failed(request: Request, exc: IngestError) -> JSONResponse:
        logger.error("upload failed: %s", exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Upload failed"})

    @app.exception_handler(InvariantViolation)
    async def invariant_violated(request: Request, exc: InvariantViolation) -> JSONResponse:
        logger.critical("invariant violation: %s", exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    @app.exception_handler(ObjectVaultError)
    async def app_error(request: Request, exc: ObjectVaultError) -> JSONResponse:
        logger.error("app error: %s", exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application.

    With ``services`` given (tests, embedding), the caller owns their lifecycle.
    Otherwise the lifespan builds production services, prepares the database,
    bucket and search index, and runs the indexing scheduler.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            yield
            return

        from object_vault.db import dispose_db, init_db

        await init_db()
        owned = build_services()
        await prepare_backends(owned)
        app.state.services = owned
        if settings.indexing_enabled:
            owned.indexing.start()
        try:
            yield
        finally:
            await owned.close()
            await dispose_db()

    app = FastAPI(
        title="ObjectVault",
        description="Personal content-addressable object store with OCR search",
        version=__version__,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    app.include_router(router)
    _register_error_handlers(app)
    return app


app = create_app()
