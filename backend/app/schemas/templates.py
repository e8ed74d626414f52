"""Pydantic schemas for template folders and email templates"""
from typing import Any, Optional
from pydantic import BaseModel, Field


class FolderRequest(BaseModel):
    name: str = Field(..., max_length=255)


class TemplateCreate(BaseModel):
    name: str = Field(..., max_length=255)
    folder_id: Optional[int] = None


class TemplateImport(BaseModel):
    name: str = Field(..., max_length=255)
    content: str
    folder_id: Optional[int] = None


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    subject: Optional[str] = Field(None, max_length=512)
    content: Optional[Any] = None
    folder_id: Optional[int] = None


class TemplateMove(BaseModel):
    folder_id: Optional[int] = None
