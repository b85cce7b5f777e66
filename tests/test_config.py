import logging
import os

import pytest

from app.config import Settings
from app.main import configure_logging

ENV_VARS = [
    "MONGO_URI", "MONGO_DB", "AWS_REGION", "AWS_BUCKET_NAME", "AWS_ENDPOINT_URL",
    "CLARIFAI_API_KEY", "CLARIFAI_API_URL", "SIMILARITY_THRESHOLD", "INDEX_QUERY_IMAGES",
    "SEARCH_API_TIMEOUT", "UPLOAD_DIR", "ALLOWED_ORIGINS", "HOST", "PORT", "LOG_LEVEL", "LOG_FILE",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings.from_env(env_file=None)
    assert settings.mongo_uri == "mongodb://127.0.0.1:27017/visual-product-matcher"
    assert settings.mongo_db == "visual-product-matcher"
    assert settings.similarity_threshold == 0.5
    assert settings.index_query_images is True
    assert settings.port == 3000
    assert settings.origins == ["*"]


def test_reads_environment(clean_env):
    clean_env.setenv("MONGO_URI", "mongodb://db.internal:27017/catalog?retryWrites=true")
    clean_env.setenv("CLARIFAI_API_KEY", "abc")
    clean_env.setenv("CLARIFAI_API_URL", "https://clarifai.internal/")
    clean_env.setenv("SIMILARITY_THRESHOLD", "0.75")
    clean_env.setenv("INDEX_QUERY_IMAGES", "false")
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("ALLOWED_ORIGINS", "https://a.example.com, https://b.example.com")
    clean_env.setenv("LOG_LEVEL", "debug")

    settings = Settings.from_env(env_file=None)

    assert settings.mongo_db == "catalog"
    assert settings.clarifai_api_key == "abc"
    assert settings.clarifai_api_url == "https://clarifai.internal"
    assert settings.similarity_threshold == 0.75
    assert settings.index_query_images is False
    assert settings.port == 8080
    assert settings.origins == ["https://a.example.com", "https://b.example.com"]
    assert settings.log_level == "DEBUG"


def test_explicit_db_name_wins(clean_env):
    clean_env.setenv("MONGO_URI", "mongodb://localhost/catalog")
    clean_env.setenv("MONGO_DB", "other")
    assert Settings.from_env(env_file=None).mongo_db == "other"


def test_loads_dotenv_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("AWS_BUCKET_NAME=from-dotenv\nPORT=4000\n")

    try:
        settings = Settings.from_env(env_file=str(env_file))
    finally:
        # load_dotenv writes straight into os.environ
        os.environ.pop("AWS_BUCKET_NAME", None)
        os.environ.pop("PORT", None)

    assert settings.aws_bucket_name == "from-dotenv"
    assert settings.port == 4000


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    level = root.level
    yield root
    # drop the plain handlers configure_logging installed, pytest uses subclasses
    for handler in root.handlers[:]:
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def _log_line(root, message):
    logging.getLogger("visual-product-matcher").info(message)
    for handler in root.handlers:
        handler.flush()


def test_configure_logging_writes_file(tmp_path, root_logger):
    log_file = tmp_path / "logs" / "app.log"

    configure_logging("INFO", str(log_file))
    _log_line(root_logger, "hello from the test")

    assert "INFO - hello from the test" in log_file.read_text()


def test_configure_logging_twice_does_not_duplicate(tmp_path, root_logger):
    log_file = tmp_path / "app.log"

    configure_logging("INFO", str(log_file))
    configure_logging("INFO", str(log_file))
    _log_line(root_logger, "only once")

    assert log_file.read_text().count("only once") == 1
    installed = [h for h in root_logger.handlers if type(h) in (logging.StreamHandler, logging.FileHandler)]
    assert len(installed) == 2
