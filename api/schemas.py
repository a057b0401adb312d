from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional


class CamelModel(BaseModel):
    # JSON anahtarlari camelCase (inferenceTime, boundingBox, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractEmbeddingRequest(BaseModel):
    image: Optional[str] = None


class BatchExtractRequest(BaseModel):
    # Elemanlar item bazinda dogrulanir; str olmayan bir eleman sadece o item'i dusurur
    images: Optional[List[Any]] = None


class BoundingBox(CamelModel):
    x: int
    y: int
    width: int
    height: int


class ExtractEmbeddingResponse(CamelModel):
    success: bool
    inference_time: int
    embedding: Optional[List[float]] = None
    strategy: Optional[str] = None
    bounding_box: Optional[BoundingBox] = None
    confidence: Optional[float] = None
    landmarks: Optional[int] = None
    error: Optional[str] = None
    strategies_tried: Optional[List[str]] = None


class BatchItem(CamelModel):
    index: int
    success: bool
    inference_time: int
    embedding: Optional[List[float]] = None
    confidence: Optional[float] = None
    error: Optional[str] = None


class BatchSummary(CamelModel):
    total: int
    successful: int
    failed: int
    total_time: int
    average_time: int


class BatchExtractResponse(CamelModel):
    results: List[BatchItem]
    summary: BatchSummary


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    progress: Optional[Dict[str, str]] = None
    inference_time: Optional[int] = None


class ModelsResponse(CamelModel):
    models_loaded: bool
    loading_progress: Dict[str, str]
    available_models: List[str]


class HealthResponse(CamelModel):
    status: str
    timestamp: str
    uptime: float
    models_loaded: bool
    loading_progress: Dict[str, str]
    memory: Dict[str, str]
    python_version: str


class StatsResponse(CamelModel):
    models_loaded: bool
    uptime: float
    memory: Dict[str, Any]
    loading_progress: Dict[str, str]
    latency: Dict[str, Any]
