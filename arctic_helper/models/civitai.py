"""
Pydantic models for the parts of the Civitai API responses we read.

Only the fields used for LoRA metadata are declared; everything else in the
payload is ignored.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator


class CivitaiImage(BaseModel):
    url: Optional[str] = None
    type: Optional[str] = None


class CivitaiModelVersion(BaseModel):
    """``GET /model-versions/{id}``"""

    model_id: Optional[Union[int, str]] = Field(default=None, alias="modelId")
    description: Optional[str] = None
    trained_words: list[str] = Field(default_factory=list, alias="trainedWords")
    settings: Optional[dict[str, Any]] = None
    images: list[CivitaiImage] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @field_validator("trained_words", "images", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def strength(self) -> Any:
        return (self.settings or {}).get("strength")


class CivitaiCreator(BaseModel):
    username: Optional[str] = None


class CivitaiModel(BaseModel):
    """``GET /models/{id}``"""

    creator: Optional[CivitaiCreator] = None
    description: Optional[str] = None
