from unittest.mock import AsyncMock, MagicMock

import mongomock
import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.database import Database
from app.main import create_app
from app.search_engine import SearchClient
from app.storage import LocalUploads, ObjectStore

S3_URL = "https://bucket.s3.us-east-1.amazonaws.com/1700000000000_chair.jpg"


@pytest.fixture
def settings(tmp_path):
    return Settings(upload_dir=str(tmp_path / "uploads"), aws_bucket_name="bucket")


@pytest.fixture
def database():
    return Database(mongomock.MongoClient(), "visual-product-matcher-test")


@pytest.fixture
def storage():
    store = MagicMock(spec=ObjectStore)
    store.upload_file.return_value = S3_URL
    return store


@pytest.fixture
def search():
    client = MagicMock(spec=SearchClient)
    client.index_image = AsyncMock(return_value=None)
    client.search_by_image = AsyncMock(return_value=[])
    return client


@pytest.fixture
def app(settings, database, storage, search):
    return create_app(
        settings,
        database=database,
        storage=storage,
        search_client=search,
        uploads=LocalUploads(settings.upload_dir),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
