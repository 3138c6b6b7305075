"""Health check utilities."""

from typing import Dict

from workflow_rag.core.dependencies import ServiceContainer


async def check_all_dependencies(services: ServiceContainer) -> Dict:
    """
    Report provider configuration and in-memory store sizes.

    Args:
        services: Service container.

    Returns:
        Dictionary with overall status and individual component statuses.
    """
    embedding = services.embedding_gateway
    generation = services.generation_gateway

    components = {
        "embedding": {
            "status": "healthy" if embedding.providers else "unhealthy",
            "model": embedding.model,
            "providers": [p.name for p in embedding.providers],
        },
        "generation": {
            "status": "healthy" if generation.providers else "unhealthy",
            "model": generation.model,
            "providers": [p.name for p in generation.providers],
        },
        "vector_store": {
            "status": "healthy",
            "documents": services.vector_store.document_count,
            "chunks": services.vector_store.chunk_count,
        },
        "memory": {
            "status": "healthy",
            "sessions": services.memory.session_count,
        },
    }

    overall_status = "healthy"
    if any(c["status"] != "healthy" for c in components.values()):
        overall_status = "unhealthy"

    return {"status": overall_status, "services": components}
