"""
TM1Rest exceptions.

Every error raised by the client derives from TM1Error, so callers that
only care about "the TM1 call did not work" can catch a single type.
"""

from typing import Any


class TM1Error(Exception):
    """TM1 REST API error."""

    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class TM1RestError(TM1Error):
    """Remote call answered with an HTTP error status."""


class TM1TimeoutError(TM1Error):
    """A single request did not complete within the client timeout."""

    def __init__(self, message: str, timeout: float = 0.0):
        super().__init__(message)
        self.timeout = timeout


# =============================================================================
# Bulk Operations
# =============================================================================


class BulkWriteFailure(TM1Error):
    """A write chunk exhausted its retries or was cancelled at first failure."""

    def __init__(self, target: str, attempts: int, reason: str = ""):
        message = f"Bulk write failed for cube '{target}' after {attempts} attempt(s)"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.target = target
        self.attempts = attempts


class ReadFailure(TM1Error):
    """A single cell read failed. Recorded as None by bulk reads."""

    def __init__(self, target: str, coordinates: tuple[str, ...], reason: str = ""):
        super().__init__(f"Read failed for cube '{target}' at {list(coordinates)}: {reason}")
        self.target = target
        self.coordinates = coordinates


class UnknownOperationKind(TM1Error):
    """Batch item kind is not one of write, read, update, delete."""

    def __init__(self, kind: Any):
        super().__init__(f"Unknown operation type: {kind}")
        self.kind = kind


class ImportDataError(TM1Error):
    """A CSV line or JSON row could not be turned into a write operation."""

    def __init__(self, line: int, message: str):
        super().__init__(f"Error parsing line {line}: {message}")
        self.line = line


# =============================================================================
# Transactions
# =============================================================================


class TransactionError(TM1Error):
    """Base class for batch transaction errors."""

    def __init__(self, message: str, transaction_id: str):
        super().__init__(message)
        self.transaction_id = transaction_id


class TransactionNotFound(TransactionError):
    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction not found: {transaction_id}", transaction_id)


class TransactionInvalidState(TransactionError):
    def __init__(self, transaction_id: str, status: str):
        super().__init__(
            f"Transaction {transaction_id} is not in pending state (status: {status})",
            transaction_id,
        )
        self.status = status


class TransactionFailed(TransactionError):
    """Commit ran every operation but at least one of them failed."""

    def __init__(self, transaction_id: str, failures: int, results: list | None = None):
        super().__init__(
            f"Transaction {transaction_id} failed with {failures} errors", transaction_id
        )
        self.failures = failures
        self.results = results or []


# =============================================================================
# Asynchronous Process Execution
# =============================================================================


class AsyncExecutionError(TM1Error):
    """Base class for asynchronous process execution errors."""

    def __init__(self, message: str, process_name: str):
        super().__init__(message)
        self.process_name = process_name


class StartFailure(AsyncExecutionError):
    def __init__(self, process_name: str):
        super().__init__(
            f"Failed to start async execution of process '{process_name}'", process_name
        )


class ExecutionFailure(AsyncExecutionError):
    def __init__(self, process_name: str, execution_id: str, message: str = ""):
        super().__init__(
            f"Process execution failed: {message or 'Unknown error'}", process_name
        )
        self.execution_id = execution_id
        self.remote_message = message


class TimeoutExceeded(AsyncExecutionError):
    def __init__(self, process_name: str, timeout: float):
        super().__init__(
            f"Process '{process_name}' execution timed out after {timeout} seconds",
            process_name,
        )
        self.timeout = timeout


class ExecutionCancelled(AsyncExecutionError):
    def __init__(self, process_name: str, execution_id: str):
        super().__init__(
            f"Polling of process '{process_name}' (execution {execution_id}) was cancelled",
            process_name,
        )
        self.execution_id = execution_id
