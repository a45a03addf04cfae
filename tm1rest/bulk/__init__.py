"""
Bulk engine: chunked and retried writes, best-effort reads, mixed batches
and in-memory transactions.
"""

from .models import (
    BatchResult,
    BulkReadOptions,
    BulkWriteOptions,
    CSVImportOptions,
    DeleteOperation,
    ExportOptions,
    JSONImportOptions,
    Operation,
    ReadOperation,
    Transaction,
    TransactionStatus,
    UpdateOperation,
    WriteOperation,
    parse_operation,
)
from .retry import RetryPolicy, chunk, group_by_target, with_retry
from .service import BulkService
from .transactions import TransactionManager

__all__ = [
    "BatchResult",
    "BulkReadOptions",
    "BulkService",
    "BulkWriteOptions",
    "CSVImportOptions",
    "DeleteOperation",
    "ExportOptions",
    "JSONImportOptions",
    "Operation",
    "ReadOperation",
    "RetryPolicy",
    "Transaction",
    "TransactionManager",
    "TransactionStatus",
    "UpdateOperation",
    "WriteOperation",
    "chunk",
    "group_by_target",
    "parse_operation",
    "with_retry",
]
