from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from dataclasses import dataclass, field
from typing import Any
import asyncio
import datetime
import uvicorn
import sys
import os
import time

# Proje ana dizinini path'e ekle
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.schemas import (
    BatchExtractRequest, BatchExtractResponse, ErrorResponse, ExtractEmbeddingRequest, ExtractEmbeddingResponse,
    HealthResponse, ModelsResponse, StatsResponse,
)
from inference.batch import BatchRunner
from inference.errors import BadInputError, ModelLoadError, NotReadyError
from inference.registry import ModelRegistry, ReadinessSnapshot
from inference.strategies import DetectionStrategyController
from inference.utils import decode_base64_image
from monitoring.latency_meter import LatencyMeter
from monitoring.logger import get_logger
from monitoring.system_stats import (
    init_gpu_monitor, memory_summary, python_version, raw_memory, shutdown_gpu_monitor,
)

# --- LOGGER ---
logger = get_logger("API", log_type="json")

# --- AYARLAR ---
PORT = int(os.getenv("PORT", "5000"))
HOST = os.getenv("HOST", "0.0.0.0")
MODELS_DIR = os.getenv("MODELS_DIR", "./models")
DEVICE = os.getenv("DEVICE", "cpu")
MAX_BODY_MB = int(os.getenv("MAX_BODY_MB", "50"))

AVAILABLE_ENDPOINTS = ["/health", "/models", "/extract_embedding", "/batch_extract", "/stats"]
PROCESS_START = time.time()

app = FastAPI(title="Face Embedding API", description="YuNet + SFace face embedding server")

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_ALLOWED_HEADERS = ["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"]
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(CORS_METHODS),
    "Access-Control-Allow-Headers": ", ".join(CORS_ALLOWED_HEADERS),
}

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=CORS_METHODS,
    allow_headers=CORS_ALLOWED_HEADERS,
)


@dataclass
class ServiceState:
    """Startup'ta bir kez kurulur; handler'lar sadece okur."""
    engine: Any = None
    readiness: ReadinessSnapshot = field(default_factory=ReadinessSnapshot)


# Global Değişkenler
state = ServiceState()
latency_meter = LatencyMeter()


def install_engine(engine, readiness):
    global state
    state = ServiceState(engine=engine, readiness=readiness)


def _ms_since(start):
    return max(0, int(round((time.perf_counter() - start) * 1000)))


def _uptime():
    return round(time.time() - PROCESS_START, 3)


def require_ready():
    readiness = state.readiness
    if not readiness.ready or state.engine is None:
        raise NotReadyError(readiness.progress)
    return state.engine


def _error_response(status_code, error, **fields):
    body = ErrorResponse(error=error, **fields)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))


def _log_batch_progress(processed, total):
    logger.info(f"Processed {processed}/{total} images")


# --- MIDDLEWARE ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Preflight olsun olmasin her OPTIONS istegi 200 + CORS basliklari
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)

    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > MAX_BODY_MB * 1024 * 1024:
        logger.warning(f"Request body too large: {length} bytes")
        return _error_response(413, "Request body too large")

    start = time.perf_counter()
    response = await call_next(request)
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({_ms_since(start)}ms)")
    return response


# --- HATA YONETIMI ---
@app.exception_handler(NotReadyError)
async def not_ready_handler(request: Request, exc: NotReadyError):
    logger.error(f"{request.url.path} rejected: models not loaded")
    return _error_response(503, str(exc), progress=exc.progress)


@app.exception_handler(BadInputError)
async def bad_input_handler(request: Request, exc: BadInputError):
    logger.warning(f"Bad input on {request.url.path}: {exc}")
    return _error_response(400, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_handler(request: Request, exc: RequestValidationError):
    if request.url.path == "/batch_extract":
        message = "Images array is required"
    elif request.url.path == "/extract_embedding":
        message = "No image provided in request body"
    else:
        message = "Invalid request body"
    logger.warning(f"Validation failed on {request.url.path}: {exc.errors()}")
    return _error_response(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Bilinmeyen route veya method -> 404 + endpoint listesi
    if exc.status_code in (404, 405):
        return JSONResponse(
            status_code=404,
            content={"error": "Endpoint not found", "availableEndpoints": AVAILABLE_ENDPOINTS},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(exc)})


# --- LIFECYCLE ---
@app.on_event("startup")
async def startup_event():
    """Requirement: modeller istek kabul edilmeden once yuklenir"""
    # 1. GPU Monitor Başlat
    if DEVICE == "cuda":
        init_gpu_monitor()

    if state.readiness.ready:
        return

    # 2. Modelleri Yükle (event loop'u bloklamadan)
    registry = ModelRegistry(models_dir=MODELS_DIR, device=DEVICE)
    try:
        engine, readiness = await asyncio.get_running_loop().run_in_executor(None, registry.load)
    except ModelLoadError as e:
        logger.critical(f"Kritik Hata: {e}. Model dosyalarinin {MODELS_DIR} altinda oldugundan emin olun.")
        raise

    install_engine(engine, readiness)
    logger.info("=" * 60)
    logger.info("FACE EMBEDDING SERVER READY")
    logger.info(f"Server URL: http://localhost:{PORT}")
    logger.info(f"Health check: http://localhost:{PORT}/health")
    logger.info(f"Models status: http://localhost:{PORT}/models")
    logger.info(f"Statistics: http://localhost:{PORT}/stats")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down gracefully...")
    if state.engine is not None:
        state.engine.unload()
    shutdown_gpu_monitor()


# --- ENDPOINTS ---
@app.get("/health", response_model=HealthResponse)
def health_check():
    readiness = state.readiness
    return HealthResponse(
        status="ok",
        timestamp=datetime.datetime.now(datetime.timezone.utc).isoformat(),
        uptime=_uptime(),
        models_loaded=readiness.ready,
        loading_progress=dict(readiness.progress),
        memory=memory_summary(),
        python_version=python_version(),
    )


@app.get("/models", response_model=ModelsResponse)
def get_models():
    readiness = state.readiness
    return ModelsResponse(
        models_loaded=readiness.ready,
        loading_progress=dict(readiness.progress),
        available_models=list(readiness.model_names),
    )


@app.post("/extract_embedding", response_model=ExtractEmbeddingResponse, response_model_exclude_none=True)
def extract_embedding(body: ExtractEmbeddingRequest, engine=Depends(require_ready)):
    """Requirement: tek resim -> fallback stratejileri ile embedding"""
    start = time.perf_counter()

    if not body.image:
        raise BadInputError("No image provided in request body")

    image = decode_base64_image(body.image)

    try:
        result = DetectionStrategyController(engine).detect_with_fallback(image)
    except Exception as e:
        total_time = _ms_since(start)
        logger.error(f"Extraction error: {e}", exc_info=e)
        return _error_response(500, str(e), inference_time=total_time)

    total_time = _ms_since(start)
    latency_meter.record("extract_embedding", total_time)

    if not result.success:
        logger.info(f"Face detection failed ({total_time}ms)", extra={"inference_time_ms": total_time})
        return ExtractEmbeddingResponse(
            success=False,
            error="No face detected with any strategy",
            inference_time=total_time,
            strategies_tried=result.strategies_tried,
        )

    detection = result.detection
    logger.info(
        f"Embedding extracted successfully ({total_time}ms)",
        extra={"strategy": result.strategy, "inference_time_ms": total_time},
    )
    return ExtractEmbeddingResponse(
        success=True,
        embedding=list(detection.descriptor),
        inference_time=total_time,
        strategy=result.strategy,
        bounding_box={
            "x": detection.box.x,
            "y": detection.box.y,
            "width": detection.box.width,
            "height": detection.box.height,
        },
        confidence=detection.confidence,
        landmarks=detection.landmarks,
    )


@app.post("/batch_extract", response_model=BatchExtractResponse, response_model_exclude_none=True)
def batch_extract(body: BatchExtractRequest, engine=Depends(require_ready)):
    """Requirement: batch -> her item icin sonuc + ozet"""
    if body.images is None:
        raise BadInputError("Images array is required")

    runner = BatchRunner(engine, on_progress=_log_batch_progress)
    try:
        results, summary = runner.run_batch(body.images)
    except Exception as e:
        logger.error(f"Batch processing error: {e}", exc_info=e)
        return _error_response(500, str(e))

    latency_meter.record("batch_extract", summary.total_time_ms)

    return {
        "results": [
            {
                "index": r.index,
                "success": r.success,
                "inference_time": r.elapsed_ms,
                "embedding": r.embedding,
                "confidence": r.confidence,
                "error": r.error,
            }
            for r in results
        ],
        "summary": {
            "total": summary.total,
            "successful": summary.successful,
            "failed": summary.failed,
            "total_time": summary.total_time_ms,
            "average_time": summary.average_time_ms,
        },
    }


@app.get("/stats", response_model=StatsResponse)
def get_stats():
    readiness = state.readiness
    return StatsResponse(
        models_loaded=readiness.ready,
        uptime=_uptime(),
        memory=raw_memory(),
        loading_progress=dict(readiness.progress),
        latency=latency_meter.snapshot(),
    )


def main():
    logger.info("Starting face embedding server...")
    logger.info(f"Port: {PORT}")
    logger.info(f"Models path: {MODELS_DIR}")
    server = uvicorn.Server(uvicorn.Config(app, host=HOST, port=PORT))
    server.run()

    # Startup hook (model yukleme) basarisizsa sunucu hic baslamaz
    if not server.started:
        logger.critical("Failed to load models. Server not started.")
        sys.exit(1)


if __name__ == "__main__":
    main()
