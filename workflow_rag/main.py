"""Workflow RAG service: PDF upload, search and workflow execution endpoints."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from workflow_rag.api.health import check_all_dependencies
from workflow_rag.core.config import settings
from workflow_rag.core.dependencies import ServiceContainer, get_services
from workflow_rag.core.exceptions import (
    ConfigurationError,
    DocumentNotFoundError,
    DocumentProcessingError,
    EmbeddingError,
    LLMError,
    ProviderError,
    RAGError,
    WorkflowError,
    error_message,
)
from workflow_rag.models.api import (
    ClearMemoryRequest,
    ClearMemoryResponse,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    SearchRequest,
    SearchResponse,
    UploadResponse,
    WorkflowExecuteRequest,
    WorkflowExecuteResponse,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}


def status_for(error: Exception) -> int:
    """HTTP status code for a service error."""
    if isinstance(error, DocumentNotFoundError):
        return 404
    if isinstance(error, (WorkflowError, DocumentProcessingError)):
        return 400
    if isinstance(error, ConfigurationError):
        return 503
    if isinstance(error, (EmbeddingError, LLMError, ProviderError)):
        return 502
    return 500


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


async def read_upload(upload: UploadFile, max_bytes: int) -> Optional[bytes]:
    """
    Read an upload without buffering more than ``max_bytes + 1`` bytes.

    Returns:
        File content, or None if the file exceeds ``max_bytes``.
    """
    if upload.size is not None and upload.size > max_bytes:
        return None
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        return None
    return data


router = APIRouter(prefix="/api")


@router.post("/pdf/upload", response_model=UploadResponse)
async def upload_pdf(
    pdf: Optional[UploadFile] = File(default=None),
    services: ServiceContainer = Depends(get_services),
):
    """
    Upload a PDF and index its text.

    Args:
        pdf: Uploaded PDF file.

    Returns:
        Document id, extracted text and chunk count.
    """
    if pdf is None:
        return error_response(400, "No PDF file provided")
    if pdf.content_type not in PDF_CONTENT_TYPES:
        return error_response(400, "Only PDF files are allowed")

    data = await read_upload(pdf, services.settings.max_upload_bytes)
    if data is None:
        limit_mb = services.settings.max_upload_bytes // (1024 * 1024)
        return error_response(400, f"File too large. Maximum size is {limit_mb}MB")

    result = await services.ingestion_service.process_pdf(data)
    logger.info(f"Indexed {pdf.filename} as {result.document_id}")
    return UploadResponse(
        document_id=result.document_id,
        text=result.text,
        chunks=len(result.chunks),
    )


@router.post("/rag/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    services: ServiceContainer = Depends(get_services),
) -> SearchResponse:
    """Return the chunks of a document most similar to the query."""
    results = await services.rag_service.search(
        request.query, request.document_id, request.top_k)
    return SearchResponse(results=results, query=request.query)


@router.post("/rag/generate", response_model=GenerateResponse)
async def generate(
    request: GenerateRequest,
    services: ServiceContainer = Depends(get_services),
) -> GenerateResponse:
    """Answer a question directly, without a workflow graph."""
    response = await services.rag_service.generate_response(
        request.query,
        context=request.context,
        document_id=request.document_id,
        session_id=request.session_id,
    )
    return GenerateResponse(response=response, query=request.query)


@router.post("/workflow/execute", response_model=WorkflowExecuteResponse)
async def execute_workflow(
    request: WorkflowExecuteRequest,
    services: ServiceContainer = Depends(get_services),
) -> WorkflowExecuteResponse:
    """Execute an editor workflow graph."""
    result = await services.workflow_executor.execute(
        request.nodes, request.edges, request.node_data, request.workflow_id)
    return WorkflowExecuteResponse(result=result)


@router.post("/workflow/clear-memory", response_model=ClearMemoryResponse)
async def clear_memory(
    request: ClearMemoryRequest,
    services: ServiceContainer = Depends(get_services),
) -> ClearMemoryResponse:
    """Forget the conversation of a workflow session."""
    services.workflow_executor.clear_memory(request.workflow_id)
    return ClearMemoryResponse()


@router.get("/health")
async def health(services: ServiceContainer = Depends(get_services)) -> dict:
    """
    Health check endpoint.

    Returns:
        Health status with provider and store details.
    """
    result = await check_all_dependencies(services)
    return {"service": settings.service_name, **result}


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"success": false, "error": "<message>"}``."""

    @app.exception_handler(RAGError)
    async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
        status_code = status_for(exc)
        logger.error(f"{request.method} {request.url.path} failed: {error_message(exc)}")
        return error_response(status_code, error_message(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in exc.errors()
        )
        return error_response(400, f"Invalid request: {details}")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return error_response(500, error_message(exc))


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Prebuilt container; created from settings at startup when omitted.

    Returns:
        Configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        if getattr(app.state, "services", None) is None:
            app.state.services = ServiceContainer(settings)
        logger.info("Workflow RAG service started")
        yield
        await app.state.services.shutdown()
        logger.info("Workflow RAG service stopped")

    app = FastAPI(title="Workflow RAG Service", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.service_port)
