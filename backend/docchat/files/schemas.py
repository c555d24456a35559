"""Pydantic schemas for the upload and document endpoints."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Response after a successful upload."""
    success: bool = Field(True, description="Always true")
    message: str = Field("File uploaded successfully", description="Result description")


class UploadErrorResponse(BaseModel):
    """Response body for a failed upload.

    ``error`` carries the underlying error message for diagnosis.
    """
    success: bool = Field(False, description="Always false")
    message: str = Field("Upload failed", description="Generic failure description")
    error: str = Field(..., description="Underlying error message")


class DocumentSummary(BaseModel):
    """One row of the document listing."""
    id: str
    filename: str
    mime_type: str
    upload_date: datetime
    external_uri: Optional[str] = None
    synced: bool = Field(..., description="True when the content store holds the file")
