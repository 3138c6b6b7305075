"""Workflow orchestration over Input → Retrieval → Output graphs."""

import hashlib
import logging
import time
from collections import deque
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from workflow_rag.core.config import Settings, settings as default_settings
from workflow_rag.core.exceptions import WorkflowError, WorkflowValidationError
from workflow_rag.models.document import SearchResult
from workflow_rag.models.workflow import (
    Edge,
    InputNode,
    OutputNode,
    RetrievalNode,
    StepSummary,
    WorkflowResult,
    parse_graph,
)
from workflow_rag.monitoring.metrics import (
    workflow_duration_seconds,
    workflow_errors_total,
    workflow_executions_total,
)
from workflow_rag.services.rag import RAGService

logger = logging.getLogger(__name__)

DEDUP_PREFIX_CHARS = 100
MAX_CONTEXT_SNIPPETS = 5


def build_execution_order(nodes: Sequence[Any], edges: Iterable[Edge]) -> List[List[Any]]:
    """
    Group nodes into topological levels (Kahn's algorithm).

    Nodes on a cycle never reach in-degree zero and are left out. Edges that
    reference unknown nodes are ignored.

    Args:
        nodes: Typed workflow nodes.
        edges: Graph edges.

    Returns:
        Levels in execution order; nodes within a level in discovery order.

    Raises:
        WorkflowValidationError: If two nodes share an id.
    """
    node_map: Dict[str, Any] = {}
    for node in nodes:
        if node.id in node_map:
            raise WorkflowValidationError(f"Duplicate node id {node.id!r}")
        node_map[node.id] = node
    graph: Dict[str, List[str]] = {node_id: [] for node_id in node_map}
    in_degree: Dict[str, int] = {node_id: 0 for node_id in node_map}

    for edge in edges:
        if edge.source not in node_map or edge.target not in node_map:
            logger.debug(f"Ignoring edge {edge.source} -> {edge.target}: unknown node")
            continue
        graph[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
    processed = set()
    levels: List[List[Any]] = []

    while queue:
        level = []
        for _ in range(len(queue)):
            node_id = queue.popleft()
            if node_id in processed:
                continue
            processed.add(node_id)
            level.append(node_map[node_id])

            for target in graph[node_id]:
                in_degree[target] -= 1
                if in_degree[target] == 0 and target not in processed:
                    queue.append(target)

        if level:
            levels.append(level)

    skipped = len(node_map) - len(processed)
    if skipped:
        logger.warning(f"{skipped} node(s) excluded from execution (cycle)")
    return levels


def context_key(text: str) -> str:
    """Stable hash of a chunk's first 100 characters."""
    return hashlib.sha1(text[:DEDUP_PREFIX_CHARS].encode("utf-8")).hexdigest()


def deduplicate_context(context: Iterable[SearchResult]) -> List[SearchResult]:
    """
    Drop chunks sharing a prefix, keeping the best scoring one.

    Returns:
        Unique chunks sorted by descending score.
    """
    unique: List[SearchResult] = []
    seen = set()
    for item in sorted(context, key=lambda r: r.score, reverse=True):
        key = context_key(item.text)
        if key not in seen:
            seen.add(key)
            unique.append(item)
    return unique


class WorkflowExecutor:
    """Runs a node graph and answers its query over the retrieved context."""

    def __init__(self, rag_service: RAGService, settings: Optional[Settings] = None) -> None:
        """
        Initialize the executor.

        Args:
            rag_service: Service used for search and the final answer.
            settings: Retrieval limits.
        """
        settings = settings or default_settings
        self.rag_service = rag_service
        self.max_context_chunks = settings.max_context_chunks
        self.max_total_context_chunks = settings.max_total_context_chunks

    async def execute(
        self,
        nodes: Sequence[Any],
        edges: Sequence[Any],
        node_data: Optional[Mapping[str, Mapping[str, Any]]] = None,
        session_id: Optional[str] = None,
    ) -> WorkflowResult:
        """
        Execute a workflow graph.

        Args:
            nodes: Editor nodes (dicts or typed nodes).
            edges: Editor edges (dicts or Edge models).
            node_data: Live per-node payload overriding each node's ``data``.
            session_id: Conversation session; generated when omitted.

        Returns:
            Answer, context and per-step summaries.

        Raises:
            WorkflowError: If the graph has no executable node or no output node.
            WorkflowValidationError: If a node lacks its query or document id.
        """
        start_time = time.time()
        workflow_executions_total.inc()
        try:
            result = await self._execute(nodes, edges, node_data, session_id)
        except Exception:
            workflow_errors_total.inc()
            raise
        workflow_duration_seconds.observe(time.time() - start_time)
        return result

    async def _execute(self, nodes, edges, node_data, session_id) -> WorkflowResult:
        session_id = session_id or f"workflow-{int(time.time() * 1000)}"
        typed_nodes, typed_edges = parse_graph(nodes, edges, node_data)

        execution_order = build_execution_order(typed_nodes, typed_edges)
        if not execution_order:
            raise WorkflowError(
                "No valid execution path found. Ensure nodes are properly connected.")

        output_node = next((n for n in typed_nodes if isinstance(n, OutputNode)), None)
        if output_node is None:
            raise WorkflowError("Output node not found")

        steps: List[StepSummary] = []
        current_query = ""
        aggregated: List[SearchResult] = []
        document_ids: List[str] = []

        for level in execution_order:
            for node in level:
                if isinstance(node, InputNode):
                    current_query = node.data.text
                    if not current_query:
                        raise WorkflowValidationError("No query provided in input node")
                    steps.append(StepSummary(node_id=node.id, type="input", query=current_query))

                elif isinstance(node, RetrievalNode):
                    document_id = node.data.document_id
                    if not document_id:
                        raise WorkflowValidationError(
                            f"No document ID found in RAG node {node.id}. Please upload a PDF first.")

                    context = await self.rag_service.search(
                        current_query, document_id, self.max_context_chunks)
                    aggregated.extend(context)
                    document_ids.append(document_id)
                    steps.append(StepSummary(
                        node_id=node.id,
                        type="retrieval",
                        has_result=True,
                        document_id=document_id,
                        context_count=len(context),
                        top_score=context[0].score if context else 0.0,
                    ))

                else:
                    steps.append(StepSummary(node_id=node.id, type=node.type))

        primary_document_id = document_ids[0] if document_ids else None
        unique_context = deduplicate_context(aggregated)
        history = self.rag_service.session_history(session_id)

        response = await self.rag_service.generate_response(
            current_query,
            unique_context[:self.max_total_context_chunks],
            primary_document_id,
            session_id,
            history,
        )

        logger.info(
            f"Workflow {session_id} executed {len(steps)} steps over "
            f"{len(document_ids)} document(s), {len(unique_context)} unique chunks")

        return WorkflowResult(
            query=current_query,
            response=response,
            context_snippets=[c.text for c in unique_context[:MAX_CONTEXT_SNIPPETS]],
            context_source_count=len(document_ids),
            step_summaries=steps,
            output_node_id=output_node.id,
            session_id=session_id,
        )

    def clear_memory(self, session_id: str) -> None:
        """Forget a workflow session's conversation."""
        self.rag_service.memory.clear(session_id)
