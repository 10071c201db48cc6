"""Contract template schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...utils.sanitization import sanitize_multiline, sanitize_string


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    content: str = Field(..., min_length=1, max_length=100_000)
    is_default: bool = False

    @field_validator("name", "description", mode="before")
    @classmethod
    def clean_text(cls, v):
        return sanitize_string(v) if isinstance(v, str) else v

    @field_validator("content", mode="before")
    @classmethod
    def clean_content(cls, v):
        return sanitize_multiline(v) if isinstance(v, str) else v


class TemplateUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    content: Optional[str] = Field(None, min_length=1, max_length=100_000)
    is_default: Optional[bool] = None

    @field_validator("name", "description", mode="before")
    @classmethod
    def clean_text(cls, v):
        return sanitize_string(v) if isinstance(v, str) else v

    @field_validator("content", mode="before")
    @classmethod
    def clean_content(cls, v):
        return sanitize_multiline(v) if isinstance(v, str) else v


class TemplateResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    content: str
    is_default: bool
    is_system: bool
    placeholders: list[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
