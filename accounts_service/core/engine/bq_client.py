"""
BigQuery Client Service
Thread-safe BigQuery client with retry logic for the accounts store.
"""

import threading
import logging
from typing import Optional, List, Dict, Any

from google.cloud import bigquery
from google.cloud.bigquery import QueryJobConfig
from tenacity import (
    retry as tenacity_retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)

from accounts_service.app.config import get_settings
from accounts_service.core.exceptions import (
    AccountServiceError,
    ConcurrentModificationError,
    classify_exception,
)

logger = logging.getLogger(__name__)
settings = get_settings()


# ============================================
# Retry Policy Configuration
# ============================================

def is_transient_error(exception: BaseException) -> bool:
    """
    Determine if a classified storage error should be retried here.

    Version conflicts are retryable too, but only by re-running the whole
    service operation, so they pass straight through.
    """
    if isinstance(exception, ConcurrentModificationError):
        return False
    return isinstance(exception, AccountServiceError) and exception.is_retryable()


TRANSIENT_RETRY_POLICY = retry_if_exception(is_transient_error)


class BigQueryClient:
    """
    BigQuery client used by the accounts store.

    Features:
    - Lazy, thread-safe client creation
    - Automatic retries with exponential backoff on transient errors
    - Google API errors classified into the service error hierarchy
    """

    def __init__(self, project_id: Optional[str] = None, location: Optional[str] = None):
        """
        Args:
            project_id: GCP project ID (defaults to settings)
            location: BigQuery location (defaults to settings)
        """
        self.project_id = project_id or settings.gcp_project_id
        self.location = location or settings.bigquery_location
        self._client: Optional[bigquery.Client] = None
        self._client_lock = threading.Lock()

    @property
    def client(self) -> bigquery.Client:
        """Lazy-load the BigQuery client (double-checked locking)."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = bigquery.Client(
                        project=self.project_id,
                        location=self.location
                    )
                    logger.info(
                        "Initialized BigQuery client",
                        extra={
                            "project_id": self.project_id,
                            "location": self.location,
                        }
                    )
        return self._client

    def table_id(self, dataset: str, table: str) -> str:
        return f"{self.project_id}.{dataset}.{table}"

    @tenacity_retry(
        stop=stop_after_attempt(settings.bq_max_retry_attempts),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=TRANSIENT_RETRY_POLICY,
        reraise=True
    )
    def query(
        self,
        query: str,
        parameters: Optional[List[Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Execute a SQL query or multi-statement script.

        Args:
            query: SQL query string
            parameters: Query parameters for parameterized queries

        Returns:
            Row dictionaries (empty for scripts without a final SELECT)

        Raises:
            Classified exceptions: Wrapped in structured error hierarchy
        """
        try:
            job_config = QueryJobConfig(use_legacy_sql=False)

            if parameters:
                job_config.query_parameters = parameters

            logger.debug(f"Executing query: {query[:100]}...")
            query_job = self.client.query(query, job_config=job_config)
            results = query_job.result(timeout=settings.bq_query_timeout_seconds)

            logger.debug(
                "Query completed",
                extra={"total_bytes_processed": query_job.total_bytes_processed,
                       "cache_hit": query_job.cache_hit}
            )
            return [dict(row) for row in results]

        except Exception as e:
            structured_error = classify_exception(e)
            log = logger.warning if isinstance(structured_error, ConcurrentModificationError) else logger.error
            log(
                f"BigQuery query failed: {structured_error.message}",
                extra={
                    "error_code": structured_error.error_code.value,
                    "category": structured_error.category.value,
                    "is_retryable": structured_error.is_retryable()
                }
            )
            raise structured_error from e


# Global singleton instance for connection reuse
_global_bq_client: Optional[BigQueryClient] = None
_global_client_lock = threading.Lock()


def get_bigquery_client() -> BigQueryClient:
    """Get shared BigQuery client instance (singleton)."""
    global _global_bq_client
    if _global_bq_client is None:
        with _global_client_lock:
            if _global_bq_client is None:
                _global_bq_client = BigQueryClient()
    return _global_bq_client
