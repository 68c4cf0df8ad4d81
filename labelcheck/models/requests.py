"""
Pydantic models for incoming job payloads
"""
import uuid
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class LabelJob(BaseModel):
    """Job handed to the pipeline by its host"""
    workflow_id: str = Field(
        default_factory=lambda: f"label-validation-{uuid.uuid4().hex[:12]}",
        description="Run identifier used in logs and in the verdict"
    )
    filename: str = Field("uploaded-image", description="Original file name")
    image_url: Optional[str] = Field(None, description="http(s) URL of the image")
    image_path: Optional[str] = Field(None, description="Local image path")
    image_base64: Optional[str] = Field(None, description="Image as base64 (data URI allowed)")
    label_type: str = Field("product-label", description="Kind of label")
    regulations: List[str] = Field(
        default_factory=lambda: ["FDA", "general"],
        description="Target regulation sets"
    )

    @field_validator("image_url", "image_path", "image_base64")
    @classmethod
    def strip_reference(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def check_single_image_reference(self) -> "LabelJob":
        provided = [ref for ref in (self.image_url, self.image_path, self.image_base64) if ref]
        if len(provided) != 1:
            raise ValueError(
                "Exactly one of image_url, image_path or image_base64 must be provided"
            )
        return self

    @property
    def image_source(self) -> str:
        return self.image_url or self.image_path or "buffer"

    class Config:
        json_schema_extra = {
            "example": {
                "workflow_id": "label-validation-3f2a9c1b7d4e",
                "filename": "granola-front.png",
                "image_path": "/uploads/granola-front.png",
                "label_type": "product-label",
                "regulations": ["FDA", "general"]
            }
        }
