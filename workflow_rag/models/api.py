"""Pydantic models for the HTTP API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from workflow_rag.models.document import SearchResult
from workflow_rag.models.workflow import WorkflowResult


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadResponse(_CamelModel):
    """Model for PDF upload response."""

    success: bool = True
    document_id: str
    text: str
    chunks: int
    message: str = "PDF processed successfully"


class SearchRequest(_CamelModel):
    """Model for a similarity search."""

    query: str = Field(..., min_length=1)
    document_id: str = Field(..., min_length=1)
    top_k: Optional[int] = Field(default=None, ge=1)


class SearchResponse(_CamelModel):
    """Model for search response."""

    success: bool = True
    results: List[SearchResult]
    query: str


class GenerateRequest(_CamelModel):
    """Model for a direct answer request."""

    query: str = Field(..., min_length=1)
    context: Optional[List[SearchResult]] = None
    document_id: Optional[str] = None
    session_id: Optional[str] = None


class GenerateResponse(_CamelModel):
    """Model for generate response."""

    success: bool = True
    response: str
    query: str


class WorkflowExecuteRequest(_CamelModel):
    """Model for a workflow run as posted by the editor."""

    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    node_data: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    workflow_id: Optional[str] = None


class WorkflowExecuteResponse(_CamelModel):
    """Model for workflow run response."""

    success: bool = True
    result: WorkflowResult


class ClearMemoryRequest(_CamelModel):
    """Model for clearing a session."""

    workflow_id: str = Field(..., min_length=1)


class ClearMemoryResponse(_CamelModel):
    """Model for clear memory response."""

    success: bool = True
    message: str = "Workflow memory cleared"


class ErrorResponse(BaseModel):
    """Error body returned for every failure."""

    success: bool = False
    error: str
