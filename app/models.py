# app/models.py
from pydantic import BaseModel, ConfigDict, Field


class UploadedImage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(alias="imageUrl")


class CatalogImage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    category: str = ""
    image_url: str = Field(alias="imageUrl")
    embedding: list[float] = []  # never populated, similarity lives in the remote API
