# app/config.py
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from dotenv import load_dotenv

DEFAULT_MONGO_URI = "mongodb://127.0.0.1:27017/visual-product-matcher"
DEFAULT_DB_NAME = "visual-product-matcher"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _db_name_from_uri(uri: str) -> str:
    path = urlparse(uri).path.lstrip("/")
    return path or DEFAULT_DB_NAME


@dataclass(frozen=True)
class Settings:
    """Runtime configuration handed to the app factory."""

    mongo_uri: str = DEFAULT_MONGO_URI
    mongo_db: str = DEFAULT_DB_NAME
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "us-east-1"
    aws_bucket_name: str = ""
    aws_endpoint_url: str | None = None
    clarifai_api_key: str = ""
    clarifai_api_url: str = "https://api.clarifai.com"
    similarity_threshold: float = 0.5
    index_query_images: bool = True
    search_api_timeout: float = 30.0
    upload_dir: str = "./public/uploads"
    allowed_origins: str = "*"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_env(cls, env_file: str | None = ".env") -> "Settings":
        # Variables already set in the environment win over the dotenv file
        if env_file:
            load_dotenv(env_file)

        mongo_uri = os.getenv("MONGO_URI", DEFAULT_MONGO_URI)
        return cls(
            mongo_uri=mongo_uri,
            mongo_db=os.getenv("MONGO_DB") or _db_name_from_uri(mongo_uri),
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            aws_bucket_name=os.getenv("AWS_BUCKET_NAME", ""),
            aws_endpoint_url=os.getenv("AWS_ENDPOINT_URL") or None,
            clarifai_api_key=os.getenv("CLARIFAI_API_KEY", ""),
            clarifai_api_url=os.getenv("CLARIFAI_API_URL", "https://api.clarifai.com").rstrip("/"),
            similarity_threshold=float(os.getenv("SIMILARITY_THRESHOLD", 0.5)),
            index_query_images=_as_bool(os.getenv("INDEX_QUERY_IMAGES", "true")),
            search_api_timeout=float(os.getenv("SEARCH_API_TIMEOUT", 30)),
            upload_dir=os.getenv("UPLOAD_DIR", "./public/uploads"),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "*"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", 3000)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE") or None,
        )

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
