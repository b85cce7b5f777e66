# app/database.py
import logging

from pymongo import MongoClient

from app.models import CatalogImage, UploadedImage

logger = logging.getLogger(__name__)

UPLOADED_IMAGES = "images"
CATALOG_IMAGES = "cloudimages"


def create_client(mongo_uri: str) -> MongoClient:
    # pymongo connects lazily, so the first query surfaces an unreachable server
    return MongoClient(
        mongo_uri,
        serverSelectionTimeoutMS=5000,  # 5-second timeout for server selection
        connectTimeoutMS=10000,         # 10-second timeout for connection
        maxPoolSize=50,
    )


class Database:
    """Record store for uploaded and catalog images."""

    def __init__(self, client: MongoClient, db_name: str):
        self.client = client
        self.db = client[db_name]
        self.uploaded_images = self.db[UPLOADED_IMAGES]
        self.catalog_images = self.db[CATALOG_IMAGES]

    def replace_uploaded_image(self, image_url: str) -> UploadedImage:
        """Drop every previous upload and keep only ``image_url``."""
        deleted = self.uploaded_images.delete_many({}).deleted_count
        image = UploadedImage(image_url=image_url)
        self.uploaded_images.insert_one(image.model_dump(by_alias=True))
        logger.info(f"Replaced {deleted} uploaded image(s) with {image_url}")
        return image

    def list_uploaded_images(self) -> list[UploadedImage]:
        return [
            UploadedImage(**doc)
            for doc in self.uploaded_images.find({}, {"_id": 0})
        ]

    def insert_catalog_image(self, name: str, category: str, image_url: str) -> CatalogImage:
        image = CatalogImage(name=name, category=category, image_url=image_url)
        self.catalog_images.insert_one(image.model_dump(by_alias=True))
        logger.info(f"Saved catalog image {name!r} ({category!r}): {image_url}")
        return image

    def close(self) -> None:
        self.client.close()
