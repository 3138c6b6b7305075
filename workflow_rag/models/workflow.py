"""Workflow graph models.

Nodes form a tagged union keyed by ``type``; each variant only carries the
payload its type needs.
"""

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from workflow_rag.core.exceptions import WorkflowValidationError


class Position(BaseModel):
    """Editor canvas coordinates."""

    x: float = 0.0
    y: float = 0.0


class InputNodeData(BaseModel):
    """Payload of an input node."""

    model_config = ConfigDict(extra="ignore")

    text: str = ""


class RetrievalNodeData(BaseModel):
    """Payload of a retrieval node."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    document_id: Optional[str] = Field(default=None, alias="documentId")


class OutputNodeData(BaseModel):
    """Payload of an output node."""

    model_config = ConfigDict(extra="allow")


class _BaseNode(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    position: Optional[Position] = None


class InputNode(_BaseNode):
    """Supplies the active query."""

    type: Literal["input"] = "input"
    data: InputNodeData = Field(default_factory=InputNodeData)


class RetrievalNode(_BaseNode):
    """Searches one document with the active query."""

    # "rag" is the tag used by older saved graphs
    type: Literal["retrieval", "rag"] = "retrieval"
    data: RetrievalNodeData = Field(default_factory=RetrievalNodeData)


class OutputNode(_BaseNode):
    """Sink for the workflow answer."""

    type: Literal["output"] = "output"
    data: OutputNodeData = Field(default_factory=OutputNodeData)


WorkflowNode = Annotated[
    Union[InputNode, RetrievalNode, OutputNode], Field(discriminator="type")
]

_node_adapter = TypeAdapter(WorkflowNode)


class Edge(BaseModel):
    """Directed connection between two nodes."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    source: str
    target: str


class StepSummary(BaseModel):
    """Outcome of one executed node."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    node_id: str
    type: str
    has_result: bool = False
    query: Optional[str] = None
    document_id: Optional[str] = None
    context_count: Optional[int] = None
    top_score: Optional[float] = None


class WorkflowResult(BaseModel):
    """Aggregated answer payload of a workflow run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    query: str
    response: str
    context_snippets: List[str]
    context_source_count: int
    step_summaries: List[StepSummary]
    output_node_id: str
    session_id: str


def _merge_payload(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if value not in (None, ""):
            merged[key] = value
    return merged


def parse_node(raw: Union[Mapping[str, Any], BaseModel],
               node_data: Optional[Mapping[str, Mapping[str, Any]]] = None):
    """
    Validate one editor node, applying its live ``node_data`` overlay.

    Args:
        raw: Node as sent by the editor (dict or model).
        node_data: Mapping of node id to payload values that override ``data``.

    Returns:
        Typed workflow node.

    Raises:
        WorkflowValidationError: If the node is malformed or of unknown type.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True)
    node = dict(raw)
    overlay = (node_data or {}).get(str(node.get("id")), {}) or {}
    node["data"] = _merge_payload(node.get("data") or {}, overlay)
    try:
        return _node_adapter.validate_python(node)
    except ValidationError as e:
        raise WorkflowValidationError(
            f"Invalid node {node.get('id')!r} of type {node.get('type')!r}: "
            f"{e.errors()[0].get('msg', 'validation failed')}") from e


def parse_graph(
    nodes: Sequence[Union[Mapping[str, Any], BaseModel]],
    edges: Sequence[Union[Mapping[str, Any], Edge]],
    node_data: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> tuple[list, List[Edge]]:
    """
    Validate a whole editor graph.

    Returns:
        Tuple of (typed nodes, edges).
    """
    typed_nodes = [parse_node(node, node_data) for node in nodes]
    typed_edges = []
    for edge in edges:
        if isinstance(edge, Edge):
            typed_edges.append(edge)
            continue
        try:
            typed_edges.append(Edge.model_validate(edge))
        except ValidationError as e:
            raise WorkflowValidationError(f"Invalid edge: {edge!r}") from e
    return typed_nodes, typed_edges
