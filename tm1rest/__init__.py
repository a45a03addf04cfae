"""
TM1Rest - Async bulk client for the TM1 / Planning Analytics REST API

=== QUICK START ===

    from tm1rest import connect, WriteOperation

    async with connect("https://tm1:8010/api/v1", user="admin", password="<your-password>") as tm1:

        # Chunked, retried writes
        await tm1.bulk.execute_bulk_write([
            WriteOperation(target="Sales", coordinates=("2024", "Q1", "Revenue"), value=100),
            WriteOperation(target="Sales", coordinates=("2024", "Q2", "Revenue"), value=200),
        ])

        # Best-effort reads, None where a read failed
        values = await tm1.bulk.execute_bulk_read(queries)

        # Run a process asynchronously and wait for its result
        result = await tm1.processes.poll_execute_with_return("Load.Sales", timeout=600)

=== FROM tm1_config.json ===

    from tm1rest import ClientConfig, TM1Service

    config = ClientConfig.load()
    async with TM1Service.from_config(config, "production") as tm1:
        ...
"""

from .bulk import (
    BatchResult,
    BulkReadOptions,
    BulkService,
    BulkWriteOptions,
    CSVImportOptions,
    DeleteOperation,
    ExportOptions,
    JSONImportOptions,
    ReadOperation,
    RetryPolicy,
    Transaction,
    TransactionStatus,
    UpdateOperation,
    WriteOperation,
    chunk,
    group_by_target,
    with_retry,
)
from .cells import CellService
from .config import ClientConfig, TM1InstanceConfig
from .dataframe import pull_dataframe, push_dataframe
from .exceptions import (
    AsyncExecutionError,
    BulkWriteFailure,
    ExecutionCancelled,
    ExecutionFailure,
    StartFailure,
    TimeoutExceeded,
    TM1Error,
    TM1RestError,
    TM1TimeoutError,
    TransactionError,
    TransactionFailed,
    TransactionInvalidState,
    TransactionNotFound,
    UnknownOperationKind,
)
from .processes import ProcessService
from .rest import RestService
from .service import TM1Service, connect

__version__ = "1.0.0"

__all__ = [
    "AsyncExecutionError",
    "BatchResult",
    "BulkReadOptions",
    "BulkService",
    "BulkWriteFailure",
    "BulkWriteOptions",
    "CSVImportOptions",
    "CellService",
    "ClientConfig",
    "DeleteOperation",
    "ExecutionCancelled",
    "ExecutionFailure",
    "ExportOptions",
    "JSONImportOptions",
    "ProcessService",
    "ReadOperation",
    "RestService",
    "RetryPolicy",
    "StartFailure",
    "TM1Error",
    "TM1InstanceConfig",
    "TM1RestError",
    "TM1Service",
    "TM1TimeoutError",
    "TimeoutExceeded",
    "Transaction",
    "TransactionError",
    "TransactionFailed",
    "TransactionInvalidState",
    "TransactionNotFound",
    "TransactionStatus",
    "UnknownOperationKind",
    "UpdateOperation",
    "WriteOperation",
    "__version__",
    "chunk",
    "connect",
    "group_by_target",
    "pull_dataframe",
    "push_dataframe",
    "with_retry",
]
