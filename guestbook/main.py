from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from guestbook.config import AppConfig, load_config
from guestbook.errors import ConfigError, GuestbookError
from guestbook.features.comments.api import router as comments_router
from guestbook.features.comments.ledger import CommentLedger
from guestbook.features.comments.links import LinkResolver
from guestbook.features.comments.media import MediaUploader
from guestbook.features.comments.service import CommentService
from guestbook.infra.blobstore import BlobStore
from guestbook.infra.dropbox import DropboxBlobStore
from guestbook.infra.local_store import LocalBlobStore
from guestbook.log import configure_logging
from guestbook.web.health import router as health_router


def build_store(cfg: AppConfig) -> BlobStore:
    if cfg.storage_backend == "local":
        return LocalBlobStore(cfg.blobs_dir)
    if not cfg.access_token:
        raise ConfigError("DROPBOX_ACCESS_TOKEN is not set")
    return DropboxBlobStore(cfg.access_token, timeout=cfg.http_timeout)


def build_comment_service(cfg: AppConfig, store: BlobStore) -> CommentService:
    return CommentService(
        uploader=MediaUploader(store, cfg.media_prefix),
        resolver=LinkResolver(store),
        ledger=CommentLedger(store, cfg.ledger_path, max_attempts=cfg.max_append_attempts),
    )


async def _guestbook_error(request: Request, exc: GuestbookError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "message": exc.message})


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    loc = ".".join(str(p) for p in errs[0].get("loc") or []) if errs else ""
    return JSONResponse(status_code=400, content={"error": "validation_error", "message": f"invalid field: {loc}"})


def create_app(cfg: AppConfig | None = None, store: BlobStore | None = None) -> FastAPI:
    """App factory; run with `uvicorn guestbook.main:create_app --factory`."""

    cfg = cfg or load_config()
    configure_logging(cfg.log_level)
    store = store or build_store(cfg)

    app = FastAPI(title="Guestbook", version="0.1.0")
    app.state.cfg = cfg
    app.state.store = store
    app.state.comments = build_comment_service(cfg, store)
    app.add_exception_handler(GuestbookError, _guestbook_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.include_router(health_router)
    app.include_router(comments_router)
    return app
