import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Body, Depends, FastAPI, File, Query, Request, Response, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import configure_logging, settings
from .errors import (
    FinanceTrackerError,
    NoCredentialConfigured,
    RecordValidationError,
    StorageError,
    StoreUnavailable,
)
from .persistence import ImageCache, RecordGateway, SettingsRepository, guess_mime_type, make_image_key
from .schemas import CsvExportRequest, FailureEnvelope, SetupRequest, SuccessEnvelope, VerifyPasswordRequest
from .services.analytics import Analytics
from .services.export import default_export_filename, records_to_csv, write_csv
from .store import Store

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: Store
    records: RecordGateway
    settings: SettingsRepository
    images: ImageCache
    analytics: Analytics
    export_dir: Path

    @classmethod
    def for_store(cls, store: Store, export_dir: Path) -> "Services":
        return cls(
            store=store,
            records=RecordGateway(store),
            settings=SettingsRepository(store),
            images=ImageCache(store),
            analytics=Analytics(store),
            export_dir=export_dir,
        )


def ok(data: Any = None) -> dict[str, Any]:
    return SuccessEnvelope(data=jsonable_encoder(data)).model_dump()


def fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=FailureEnvelope(error=message).model_dump())


def _public_settings(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    public = {k: v for k, v in row.items() if k != "masterPasswordHash"}
    public["hasPassword"] = bool(row.get("masterPasswordHash"))
    return public


def get_services(request: Request) -> Services:
    startup_error = request.app.state.startup_error
    if startup_error is not None:
        raise startup_error
    return request.app.state.services


router = APIRouter(prefix="/api/v1")


@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    services: Services = request.app.state.services
    return ok(
        {
            "status": "ok" if request.app.state.startup_error is None else "degraded",
            "databasePath": str(services.store.path),
            "ready": services.store.is_open,
        }
    )


# auth


@router.get("/auth/first-run")
def auth_is_first_run(services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(services.settings.is_first_run())


@router.get("/auth/profile")
def auth_get_profile(services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(services.settings.get_profile().model_dump())


@router.post("/auth/verify")
def auth_verify_password(payload: VerifyPasswordRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(services.settings.verify_password(payload.password))


@router.post("/auth/setup", status_code=status.HTTP_201_CREATED)
def auth_complete_setup(payload: SetupRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    services.settings.complete_setup(payload.name, payload.currency, payload.password, payload.profileImage)
    return ok()


# images


@router.post("/images", status_code=status.HTTP_201_CREATED)
def image_upload(
    category: str = Query(min_length=1),
    file: UploadFile = File(...),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    mime_type = file.content_type if (file.content_type or "").startswith("image/") else None
    mime_type = mime_type or guess_mime_type(file.filename or "")
    image_key = make_image_key(category)
    data = file.file.read()
    services.images.save(image_key, data, mime_type)
    return ok({"imageKey": image_key})


@router.get("/images/{image_key}")
def image_get(image_key: str, services: Services = Depends(get_services)) -> Any:
    data_uri = services.images.get_data_uri(image_key)
    if data_uri is None:
        return fail(status.HTTP_404_NOT_FOUND, "Image not found")
    return ok(data_uri)


@router.delete("/images/{image_key}")
def image_delete(image_key: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok({"deletedCount": services.images.delete(image_key)})


# generic records


@router.get("/db/{kind}")
def db_get_all(kind: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(services.records.list_all(kind))


@router.get("/db/{kind}/{record_id}")
def db_get_one(kind: str, record_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(services.records.get_by_id(kind, record_id))


@router.post("/db/{kind}", status_code=status.HTTP_201_CREATED)
def db_insert(kind: str, fields: dict[str, Any] = Body(...), services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok({"insertedId": services.records.insert(kind, fields)})


@router.put("/db/{kind}/{record_id}")
def db_update(
    kind: str, record_id: str, fields: dict[str, Any] = Body(...), services: Services = Depends(get_services)
) -> dict[str, Any]:
    return ok({"modifiedCount": services.records.update(kind, record_id, fields)})


@router.delete("/db/{kind}/{record_id}")
def db_delete(kind: str, record_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok({"deletedCount": services.records.delete(kind, record_id)})


# settings


@router.get("/settings")
def db_get_settings(services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(_public_settings(services.settings.get_settings()))


@router.put("/settings")
def db_update_settings(updates: dict[str, Any] = Body(...), services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(_public_settings(services.settings.update_settings(updates)))


# analytics


@router.get("/stats/dashboard")
def db_get_dashboard_stats(services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(services.analytics.dashboard_summary())


@router.get("/stats/history")
def db_get_history(
    start: str = Query(...), end: str = Query(...), services: Services = Depends(get_services)
) -> dict[str, Any]:
    return ok(services.analytics.history_for_range(start, end))


@router.get("/stats/predictions")
def db_get_predictions(services: Services = Depends(get_services)) -> dict[str, Any]:
    return ok(services.analytics.predictions())


# export


@router.post("/export/csv", status_code=status.HTTP_201_CREATED)
def export_csv(payload: CsvExportRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    path = write_csv(payload.content, services.export_dir / payload.fileName)
    return ok({"path": str(path)})


@router.get("/export/{kind}/csv")
def export_records_csv(kind: str, services: Services = Depends(get_services)) -> Response:
    content = records_to_csv(kind, services.records.list_all(kind))
    filename = default_export_filename(kind, date.today())
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for err in exc.errors():
            loc = ".".join(str(item) for item in err.get("loc", []) if item != "body")
            messages.append(f"{loc or 'body'}: {err.get('msg', 'validation error')}")
        return fail(status.HTTP_422_UNPROCESSABLE_ENTITY, "; ".join(messages))

    @app.exception_handler(RecordValidationError)
    async def record_validation_handler(request: Request, exc: RecordValidationError) -> JSONResponse:
        return fail(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    @app.exception_handler(NoCredentialConfigured)
    async def no_credential_handler(request: Request, exc: NoCredentialConfigured) -> JSONResponse:
        return fail(status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        return fail(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return fail(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(FinanceTrackerError)
    async def tracker_error_handler(request: Request, exc: FinanceTrackerError) -> JSONResponse:
        return fail(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        return fail(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or exc.__class__.__name__)


def create_app(database_path: str | Path | None = None, export_dir: str | Path | None = None) -> FastAPI:
    store = Store(database_path or settings.database_path)
    services = Services.for_store(store, Path(export_dir) if export_dir else settings.export_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            store.open()
        except StoreUnavailable as exc:
            logger.error("Database initialization error: %s", exc)
            app.state.startup_error = exc
        yield
        try:
            store.close()
        except StorageError as exc:
            logger.error("Failed to close database: %s", exc)

    app = FastAPI(
        title="Finance Tracker API",
        version="0.1.0",
        description="Local persistence and analytics core for a personal finance tracker.",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.startup_error = None
    _install_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run(app, host="127.0.0.1", port=8000)
