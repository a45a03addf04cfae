"""
Bulk operation types.

Operations are a tagged union discriminated on ``kind``. Build them
directly or parse them from JSON with parse_operation():

    WriteOperation(target="Sales", coordinates=("2024", "Q1"), value=100)
    parse_operation({"kind": "delete", "target": "Sales", "coordinates": ["2024", "Q1"]})
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# =============================================================================
# Options
# =============================================================================


class BulkWriteOptions(BaseModel):
    """Tuning knobs for chunked writes."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    chunk_size: int = Field(default=1000, ge=1, description="Cells per tm1.Update request")
    max_retries: int = Field(default=3, ge=0, description="Retries per chunk after the first attempt")
    retry_delay: float = Field(default=1000, ge=0, description="Base backoff delay in milliseconds")
    cancel_at_failure: bool = Field(default=False, description="Abort on the first failed attempt")
    sandbox_name: str | None = Field(default=None, description="Write into this sandbox")
    increment: bool = Field(default=False, description="Add to current values")


class BulkReadOptions(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    chunk_size: int = Field(default=1000, ge=1)
    sandbox_name: str | None = None


class CSVImportOptions(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    delimiter: str = Field(default=",", min_length=1, max_length=1)
    has_header: bool = True
    batch_size: int = Field(default=1000, ge=1)
    skip_errors: bool = False
    decimal_separator: str = "."
    thousand_separator: str = ""
    sandbox_name: str | None = None
    increment: bool = False


class JSONImportOptions(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    batch_size: int = Field(default=1000, ge=1)
    skip_errors: bool = False
    validate_rows: bool = Field(default=True, alias="validate")
    sandbox_name: str | None = None
    increment: bool = False


class ExportOptions(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    delimiter: str = ","
    include_header: bool = True
    sandbox_name: str | None = None
    skip_zeros: bool = False
    skip_consolidated: bool = False
    skip_rule_derived: bool = False
    format: Literal["compact", "full"] = "compact"


class CellRow(BaseModel):
    """One imported JSON row."""

    coordinates: list[str] = Field(min_length=1)
    value: float | str


# =============================================================================
# Operations
# =============================================================================


class _CellOperation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    target: str = Field(min_length=1, description="Cube name")
    coordinates: tuple[str, ...] = Field(description="Element names in dimension order")
    options: BulkWriteOptions | None = None


class WriteOperation(_CellOperation):
    kind: Literal["write"] = "write"
    value: Any


class ReadOperation(_CellOperation):
    kind: Literal["read"] = "read"


class UpdateOperation(_CellOperation):
    kind: Literal["update"] = "update"
    value: Any
    increment: bool = False


class DeleteOperation(_CellOperation):
    kind: Literal["delete"] = "delete"
    string_cells: bool = Field(default=False, description="Clear with '' instead of 0")


Operation = Annotated[
    Union[WriteOperation, ReadOperation, UpdateOperation, DeleteOperation],
    Field(discriminator="kind"),
]

OPERATION_KINDS = ("write", "read", "update", "delete")

_operation_adapter: TypeAdapter = TypeAdapter(Operation)


def parse_operation(data: dict[str, Any]) -> Operation:
    """Build an operation from a plain dict (raises pydantic.ValidationError)."""
    return _operation_adapter.validate_python(data)


# =============================================================================
# Results and Transactions
# =============================================================================


@dataclass
class BatchResult:
    """Outcome of one item of execute_batch_operations."""

    success: bool
    operation: Any
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        operation = self.operation
        if isinstance(operation, BaseModel):
            operation = operation.model_dump(exclude_none=True)
        data = {"success": self.success, "operation": operation}
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error
        return data


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class Transaction:
    id: str
    operations: list[Any]
    status: TransactionStatus = TransactionStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
