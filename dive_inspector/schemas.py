"""Pydantic schemas for API requests and responses."""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class LayerSchema(BaseModel):
    id: str
    index: int
    command: str
    size: int
    wasted_size: int = 0
    efficiency: float = 100.0
    file_count: int = 0
    change_type: str = "modified"
    size_percentage: float = 0.0
    created: Optional[str] = None


class SummarySchema(BaseModel):
    """Aggregate numbers for the whole image."""
    total_layers: int
    total_size: int
    wasted_space: int
    wasted_percent: float
    efficiency: float
    user_data: int


class MetadataSchema(BaseModel):
    image_id: str
    created: Optional[str] = None
    architecture: str
    os: str


class InefficientFileSchema(BaseModel):
    path: str
    count: int
    wasted_size: int


class AnalysisSchema(BaseModel):
    image_name: str
    timestamp: str
    source: str
    summary: SummarySchema
    layers: List[LayerSchema]
    metadata: MetadataSchema
    inefficient_files: List[InefficientFileSchema] = []
    suggestions: List[str] = []


class InspectionResponse(BaseModel):
    """Response for POST /api/inspect/{image}."""
    success: bool = True
    image_name: str
    analysis: AnalysisSchema
    completed_at: str


class ProgressResponse(BaseModel):
    image_name: str
    status: str
    progress: float
    message: str
    error: Optional[str] = None
    started_at: str
    updated_at: str


class ActiveInspectionsResponse(BaseModel):
    count: int
    inspections: List[ProgressResponse]


class CancelResponse(BaseModel):
    success: bool = True
    image_name: str
    message: str = "Inspection cancelled"


class DependencyStatus(BaseModel):
    available: bool
    version: Optional[str] = None


class InspectHealthResponse(BaseModel):
    """Response for GET /api/inspect/health."""
    status: str
    dependencies: Dict[str, DependencyStatus]
    active_inspections: int


class ServiceHealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str
    uptime: float
    version: str
    environment: str
    system: Dict[str, str]
    docker: DependencyStatus


class PullRequest(BaseModel):
    image_name: str = Field(..., min_length=1, max_length=255)


class PullResponse(BaseModel):
    success: bool = True
    image_name: str
    pulled_at: str


class LocalImage(BaseModel):
    name: str
    id: str
    repository: str
    tag: str
    tags: List[str] = []
    size: int
    size_human: str
    created: str


class LocalImagesResponse(BaseModel):
    count: int
    images: List[LocalImage]


class RemoveResponse(BaseModel):
    success: bool = True
    image_name: str
    removed_at: str


class HistoryEntrySchema(BaseModel):
    id: str
    size: int
    size_human: str
    created_by: str
    comment: str = ""


class HistoryResponse(BaseModel):
    image_name: str
    layers: List[HistoryEntrySchema]


class ErrorResponse(BaseModel):
    error: str
    message: str
    image_name: Optional[str] = None
