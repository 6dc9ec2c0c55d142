import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictBool

from ted_catalog import config
from ted_catalog.catalog import CatalogAssembler, CatalogRepository
from ted_catalog.errors import CatalogError, InvalidInput, StoreError
from ted_catalog.ingestion import IngestionOrchestrator
from ted_catalog.logger import setup_logging
from ted_catalog.models import CatalogPage, VideoSummary
from ted_catalog.store import CatalogStore, create_store

setup_logging()
logger = logging.getLogger("ted_catalog.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_store()


app = FastAPI(title="TED Talk Catalog", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update with your frontend's URL in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Pydantic models for request validation
class AddVideoRequest(BaseModel):
    tedUrl: Optional[str] = None


class FavoriteRequest(BaseModel):
    videoId: int
    isFavorite: StrictBool


class DeleteVideoRequest(BaseModel):
    videoId: int


class CurrentUser(BaseModel):
    uid: str
    language: str


# ----- Dependencies -----

_store = None
_store_lock = threading.Lock()


def get_store() -> CatalogStore:
    global _store
    if _store is None:
        with _store_lock:
            # sync routes run in a threadpool, so first requests can race here
            if _store is None:
                _store = create_store()
    return _store


def close_store():
    global _store
    with _store_lock:
        if _store is not None:
            logger.info("Closing catalog store")
            _store.close()
            _store = None


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_language: Optional[str] = Header(None),
) -> CurrentUser:
    """Session resolution happens upstream; we only read what it forwards."""
    if not x_user_id:
        raise InvalidInput("Missing user")
    return CurrentUser(uid=x_user_id, language=config.normalize_language(x_user_language or config.DEFAULT_LANGUAGE))


def get_repository(store: CatalogStore = Depends(get_store)) -> CatalogRepository:
    return CatalogRepository(store)


def get_orchestrator(
    store: CatalogStore = Depends(get_store),
    repository: CatalogRepository = Depends(get_repository),
) -> IngestionOrchestrator:
    return IngestionOrchestrator(store, logger=logging.getLogger("ted_catalog.ingestion"), repository=repository)


def get_assembler(store: CatalogStore = Depends(get_store)) -> CatalogAssembler:
    return CatalogAssembler(store, logger=logging.getLogger("ted_catalog.catalog"))


# ----- Error mapping -----

@app.exception_handler(CatalogError)
async def catalog_error_handler(request, exc: CatalogError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc: RequestValidationError):
    err = InvalidInput()
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    err = StoreError("Internal error")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


# ----- Routes -----

@app.get("/")
def root():
    return {"message": "Welcome to the TED Talk Catalog API!"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/my-videos", response_model=CatalogPage)
def get_my_videos(
    page: int = Query(1),
    user: CurrentUser = Depends(get_current_user),
    assembler: CatalogAssembler = Depends(get_assembler),
):
    """
    List the user's videos, newest first.

    Returns:
        dict: list, totalCount, totalPage, currentPage and any rows skipped
        because their talk record is missing.
    """
    logger.info(f"getMyVideos - Request uid={user.uid} page={page}")
    return assembler.assemble(user.uid, user.language, page)


@app.post("/my-videos", response_model=VideoSummary)
def add_my_video(
    body: AddVideoRequest,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Scrape the TED talk if it is new, then add it to the user's list."""
    logger.info(f"addMyVideo - Request uid={user.uid}")
    return orchestrator.submit(user.uid, body.tedUrl, user.language)


@app.put("/my-videos/favorite")
def edit_favorite_status(
    body: FavoriteRequest,
    user: CurrentUser = Depends(get_current_user),
    repository: CatalogRepository = Depends(get_repository),
):
    logger.info(f"editFavoriteStatus - Request uid={user.uid} videoId={body.videoId}")
    repository.set_favorite(user.uid, body.videoId, body.isFavorite)
    return {"success": True}


@app.delete("/my-videos")
def delete_my_video(
    body: DeleteVideoRequest,
    user: CurrentUser = Depends(get_current_user),
    repository: CatalogRepository = Depends(get_repository),
):
    logger.info(f"deleteMyVideo - Request uid={user.uid} videoId={body.videoId}")
    repository.remove(user.uid, body.videoId)
    return {"success": True}


# Main entry point for server
def main():
    import uvicorn
    uvicorn.run("ted_catalog.fastapi_main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
