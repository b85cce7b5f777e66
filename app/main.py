# app/main.py
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from brotli_asgi import BrotliMiddleware
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Settings
from app.database import Database, create_client
from app.schemas import HealthStatus
from app.search_engine import SearchAPIError, SearchClient, filter_hits
from app.storage import LocalUploads, ObjectStore, StorageError

TEMPLATES_DIR = Path(__file__).parent / "templates"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

templates = Jinja2Templates(directory=TEMPLATES_DIR)
logger = logging.getLogger("visual-product-matcher")
router = APIRouter()


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    # force replaces handlers from an earlier call instead of stacking them
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


# Collaborators live on app.state, built once by create_app
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return request.app.state.database


def get_uploads(request: Request) -> LocalUploads:
    return request.app.state.uploads


def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.storage


def get_search_client(request: Request) -> SearchClient:
    return request.app.state.search_client


def _require_file(image: UploadFile | None) -> UploadFile:
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    return image


async def index_catalog_image(search: SearchClient, image_url: str, name: str, category: str) -> None:
    """Index a seeded catalog image once the response has gone out.

    Best effort: the client was already told the upload succeeded, so a
    failure here only ends up in the log.
    """
    try:
        await search.index_image(image_url, {"name": name, "category": category})
        logger.info(f"Catalog image indexed: {image_url}")
    except Exception:
        logger.exception(f"Indexing error for catalog image {image_url}")


@router.get("/", response_class=HTMLResponse)
async def home(request: Request):
    return templates.TemplateResponse(request, "index.html")


@router.get("/health", response_model=HealthStatus)
async def health():
    return HealthStatus(status="ok")


@router.post("/upload")
async def upload_image(
    image: UploadFile | None = File(None),
    db: Database = Depends(get_db),
    uploads: LocalUploads = Depends(get_uploads),
):
    image = _require_file(image)
    try:
        path = await run_in_threadpool(uploads.save, image.file, image.filename)
        await run_in_threadpool(db.replace_uploaded_image, uploads.public_path(path))
    except (StorageError, PyMongoError) as e:
        logger.error(f"Error saving image: {e}")
        raise HTTPException(status_code=500, detail="Error saving image")
    finally:
        await image.close()
    return RedirectResponse("/result", status_code=303)


@router.get("/result", response_class=HTMLResponse)
async def show_result(request: Request, db: Database = Depends(get_db)):
    try:
        result = await run_in_threadpool(db.list_uploaded_images)
    except PyMongoError as e:
        logger.error(f"Error retrieving images: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving images")
    return templates.TemplateResponse(request, "result.html", {"result": result})


@router.get("/admin", response_class=HTMLResponse)
async def admin_form(request: Request):
    return templates.TemplateResponse(request, "admin.html")


@router.post("/admin", response_class=PlainTextResponse)
async def seed_image(
    background_tasks: BackgroundTasks,
    image: UploadFile | None = File(None),
    name: str = Form(""),
    category: str = Form(""),
    db: Database = Depends(get_db),
    uploads: LocalUploads = Depends(get_uploads),
    storage: ObjectStore = Depends(get_object_store),
    search: SearchClient = Depends(get_search_client),
):
    """Store a catalog image with its metadata, then index it in the background."""
    image = _require_file(image)
    try:
        path = await run_in_threadpool(uploads.save, image.file, image.filename)
        image_url = await run_in_threadpool(
            storage.upload_file, path, image.filename, image.content_type
        )
        await run_in_threadpool(db.insert_catalog_image, name, category, image_url)
    except (StorageError, PyMongoError) as e:
        logger.error(f"Upload error: {e}")
        raise HTTPException(status_code=500, detail="Upload failed")
    finally:
        await image.close()

    background_tasks.add_task(index_catalog_image, search, image_url, name, category)
    return f"Image uploaded: {image_url}"


@router.post("/search-similar", response_class=HTMLResponse)
async def search_similar(
    request: Request,
    image: UploadFile | None = File(None),
    settings: Settings = Depends(get_settings),
    uploads: LocalUploads = Depends(get_uploads),
    storage: ObjectStore = Depends(get_object_store),
    search: SearchClient = Depends(get_search_client),
):
    """Upload the query image, index it, and render hits above the threshold."""
    image = _require_file(image)
    try:
        path = await run_in_threadpool(uploads.save, image.file, image.filename)
        image_url = await run_in_threadpool(
            storage.upload_file, path, image.filename, image.content_type
        )
        logger.info(f"Uploaded query image URL: {image_url}")

        # Every query image becomes a permanent entry of the remote corpus
        if settings.index_query_images:
            await search.index_image(image_url)
        hits = await search.search_by_image(image_url)
    except (StorageError, SearchAPIError) as e:
        logger.error(f"Error in searching similar images: {e}")
        raise HTTPException(status_code=500, detail="Error searching for similar images")
    finally:
        await image.close()

    results = filter_hits(hits, settings.similarity_threshold)
    logger.info(f"Kept {len(results)} of {len(hits)} hit(s) above {settings.similarity_threshold}")
    return templates.TemplateResponse(request, "results.html", {"results": results})


async def plain_text_http_error(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(
        str(exc.detail),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    storage: ObjectStore | None = None,
    search_client: SearchClient | None = None,
    uploads: LocalUploads | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if database is None:
        database = Database(create_client(settings.mongo_uri), settings.mongo_db)
    if storage is None:
        storage = ObjectStore.from_settings(settings)
    if search_client is None:
        search_client = SearchClient(
            settings.clarifai_api_key,
            base_url=settings.clarifai_api_url,
            timeout=settings.search_api_timeout,
        )
    uploads = uploads or LocalUploads(settings.upload_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        database.close()
        logger.info("Database connection closed")

    app = FastAPI(
        title="Visual Product Matcher",
        description="Find catalog products that look like an uploaded photo",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.storage = storage
    app.state.search_client = search_client
    app.state.uploads = uploads

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(BrotliMiddleware)
    app.add_exception_handler(StarletteHTTPException, plain_text_http_error)

    app.mount("/uploads", StaticFiles(directory=uploads.root), name="uploads")
    app.include_router(router)
    return app


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_file)
    logger.info(f"Server running on http://{settings.host}:{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
