"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

documents_indexed_total = Counter(
    "rag_documents_indexed_total", "Total number of documents indexed")
chunks_indexed_total = Counter(
    "rag_chunks_indexed_total", "Total number of chunks embedded and stored")
searches_total = Counter("rag_searches_total",
                         "Total number of similarity searches")

workflow_executions_total = Counter(
    "rag_workflow_executions_total", "Total number of workflow runs")
workflow_errors_total = Counter(
    "rag_workflow_errors_total", "Total number of failed workflow runs")
workflow_duration_seconds = Histogram(
    "rag_workflow_duration_seconds", "Workflow execution duration", buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0])

provider_failures_total = Counter(
    "rag_provider_failures_total", "Provider calls that failed and fell through",
    ["capability", "provider"])
max_tokens_clamped_total = Counter(
    "rag_max_tokens_clamped_total", "Requests whose max_tokens exceeded a provider ceiling",
    ["provider"])
