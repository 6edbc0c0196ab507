"""API request/response schemas."""

from typing import Dict, Optional

from pydantic import BaseModel


class OptimizedImageResult(BaseModel):
    id: str
    format: str
    size: int
    width: int
    height: int
    url: str


class OptimizeResponse(BaseModel):
    success: bool = True
    result: OptimizedImageResult


class AppInfoResponse(BaseModel):
    app: str
    version: str
    status: str = "running"


class ReadinessResponse(BaseModel):
    status: str
    checks: Dict[str, bool]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[str] = None
    stage: Optional[str] = None
