from typing import List, Optional
from pydantic import BaseModel, Field


class UpdateRequest(BaseModel):
    project_id: Optional[str] = None
    environment_id: Optional[str] = None
    image_prefixes: Optional[List[str]] = None
    new_version: Optional[str] = None


class UpdateResponse(BaseModel):
    message: str
    updated_services: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    request_id: Optional[str] = None
    updated_services: Optional[List[str]] = None


class HealthResponse(BaseModel):
    status: str = "ok"
