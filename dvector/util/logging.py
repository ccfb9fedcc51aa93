"""
Structured operation logging for the vector cache, sync engine and query path.
Document content and answers are never written to the log, only identifiers and counts.
"""

import logging
from typing import Any, Dict, Optional


def _truncate(value: str, limit: int = 50) -> str:
    return value[:limit] + "..." if len(value) > limit else value


class StructuredLogger:
    """Structured logger for cache, sync, ingestion and query operations."""

    def __init__(self, name: str = "dvector"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "aborted"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_sync(self, event: str, status: str = "success", local_version: Optional[int] = None,
                 registry_version: Optional[int] = None, details: Dict[str, Any] = None):
        """Log a sync engine transition or resync outcome."""
        log_details = {}
        if local_version is not None:
            log_details["local_version"] = local_version
        if registry_version is not None:
            log_details["registry_version"] = registry_version
        if details:
            log_details.update(details)

        self.log_operation(f"sync.{event}", status, log_details)

    def log_ingest(self, filename: str, blob_id: str, chunk_count: int, status: str = "success",
                   details: Dict[str, Any] = None):
        """Log a document ingestion."""
        log_details = {
            "filename": _truncate(filename),
            "blob_id": _truncate(blob_id, 16),
            "chunk_count": chunk_count,
        }
        if details:
            log_details.update(details)

        self.log_operation("ingest.document", status, log_details)

    def log_query(self, query: str, top_k: int, documents_retrieved: int, processing_time_ms: int,
                  status: str = "success"):
        """Log a RAG query. Only the first characters of the question are kept."""
        log_details = {
            "query": _truncate(query, 30),
            "top_k": top_k,
            "documents_retrieved": documents_retrieved,
            "processing_time_ms": processing_time_ms,
        }
        self.log_operation("rag.query", status, log_details)

    def log_blob_fetch(self, blob_id: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a single blob fetch."""
        log_details = {"blob_id": _truncate(blob_id, 16)}
        if details:
            log_details.update(details)

        self.log_operation("blob.fetch", status, log_details)

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float, status: str = "success",
                           details: Dict[str, Any] = None):
        """Log heartbeat task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Heartbeat task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Heartbeat task '{task_name}' failed after {duration_ms}ms"

        self.log_operation(f"heartbeat.{task_name}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
