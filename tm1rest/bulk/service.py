"""
TM1 Bulk Service

Chunked, retried cell writes and best-effort bulk reads across one or more
cubes, mixed batches with per-item results, staged transactions, and
CSV / JSON import and export.

=== BULK WRITE ===

    bulk = BulkService(cells)

    await bulk.execute_bulk_write([
        WriteOperation(target="Sales", coordinates=("2024", "Q1", "Revenue"), value=100000),
        WriteOperation(target="Sales", coordinates=("2024", "Q2", "Revenue"), value=120000),
    ], BulkWriteOptions(chunk_size=1000, max_retries=3))

Writes are fail-fast: the first chunk that exhausts its retries raises
BulkWriteFailure and nothing after it is attempted. Chunks written before
the failure stay written.

=== BULK READ ===

    values = await bulk.execute_bulk_read([
        ReadOperation(target="Sales", coordinates=("2024", "Q1", "Revenue")),
    ])

Reads are best-effort: a failed read shows up as None at its position.

=== MIXED BATCH / TRANSACTION ===

    results = await bulk.execute_batch_operations([write_op, read_op, delete_op])

    tx_id = await bulk.create_batch_transaction([write_op, delete_op])
    await bulk.commit_batch_transaction(tx_id)
"""

import asyncio
import csv
import io
import logging
import time
from collections.abc import Sequence
from functools import partial
from typing import Any, NamedTuple

from pydantic import ValidationError

from ..cells import CellService
from ..exceptions import ImportDataError, ReadFailure, UnknownOperationKind
from ..utils.logging import log_tm1_operation
from .models import (
    OPERATION_KINDS,
    BatchResult,
    BulkReadOptions,
    BulkWriteOptions,
    CellRow,
    CSVImportOptions,
    DeleteOperation,
    ExportOptions,
    JSONImportOptions,
    ReadOperation,
    UpdateOperation,
    WriteOperation,
    parse_operation,
)
from .retry import RetryPolicy, chunk, group_by_target, with_retry
from .transactions import TransactionManager

logger = logging.getLogger("tm1rest.bulk")


class _Cell(NamedTuple):
    target: str
    coordinates: tuple[str, ...]
    value: Any
    increment: bool


class BulkService:
    """
    Bulk operations on top of CellService.

    Args:
        cells: Cell read/write primitive
        default_options: Write options used when a call passes none
    """

    def __init__(self, cells: CellService, default_options: BulkWriteOptions | None = None):
        self._cells = cells
        self.default_options = default_options or BulkWriteOptions()
        self.transactions = TransactionManager(self.execute_batch_operations)

    @property
    def cells(self) -> CellService:
        return self._cells

    # =========================================================================
    # Writes
    # =========================================================================

    async def execute_bulk_write(
        self,
        operations: Sequence[WriteOperation],
        options: BulkWriteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """
        Write cells grouped by cube, chunk by chunk, retrying each chunk.

        Raises:
            BulkWriteFailure: A chunk exhausted its retries (remaining chunks skipped)
        """
        options = options or self.default_options
        cells = [
            _Cell(op.target, tuple(op.coordinates), op.value, options.increment)
            for op in operations
        ]
        await self._write_cells(cells, options, cancel_event, "bulk_write")

    async def execute_bulk_update(
        self,
        updates: Sequence[UpdateOperation],
        options: BulkWriteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Write values, adding to current contents where an update has increment set."""
        options = options or self.default_options
        cells = [
            _Cell(op.target, tuple(op.coordinates), op.value, op.increment or options.increment)
            for op in updates
        ]
        await self._write_cells(cells, options, cancel_event, "bulk_update")

    async def execute_bulk_delete(
        self,
        deletes: Sequence[DeleteOperation],
        options: BulkWriteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Clear cells by writing 0 (or '' for string cells)."""
        options = options or self.default_options
        cells = [
            _Cell(op.target, tuple(op.coordinates), "" if op.string_cells else 0, False)
            for op in deletes
        ]
        await self._write_cells(cells, options, cancel_event, "bulk_delete")

    async def _write_cells(
        self,
        cells: list[_Cell],
        options: BulkWriteOptions,
        cancel_event: asyncio.Event | None,
        operation: str,
    ) -> None:
        if not cells:
            return

        started = time.perf_counter()
        policy = RetryPolicy.from_options(options)
        groups = group_by_target(cells, key=lambda c: (c.target, c.increment))

        chunks_written = 0
        for (target, increment), group in groups.items():
            for cells_chunk in chunk(group, options.chunk_size):
                cellset = _chunk_cellset(cells_chunk, increment)
                write = partial(
                    self._cells.write_values,
                    target,
                    cellset,
                    increment=increment,
                    sandbox_name=options.sandbox_name,
                )
                await with_retry(write, target, policy, cancel_event)
                chunks_written += 1
                logger.debug(f"Wrote chunk {chunks_written}: {len(cellset)} cell(s) to '{target}'")

        targets = list(dict.fromkeys(target for target, _ in groups))
        log_tm1_operation(
            logger,
            operation,
            ", ".join(targets),
            success=True,
            duration_ms=(time.perf_counter() - started) * 1000,
            details={"cells": len(cells), "chunks": chunks_written},
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def execute_bulk_read(
        self, queries: Sequence[ReadOperation], options: BulkReadOptions | None = None
    ) -> list[Any]:
        """
        Read cells one by one, grouped by cube.

        Returns:
            Values in the order of queries; None where the read failed
        """
        options = options or BulkReadOptions()
        results: list[Any] = [None] * len(queries)
        groups = group_by_target(enumerate(queries), key=lambda item: item[1].target)

        failed = 0
        for target, group in groups.items():
            for read_chunk in chunk(group, options.chunk_size):
                for position, query in read_chunk:
                    try:
                        results[position] = await self._cells.get_value(
                            target, query.coordinates, sandbox_name=options.sandbox_name
                        )
                    except Exception as e:
                        failed += 1
                        logger.warning(str(ReadFailure(target, tuple(query.coordinates), str(e))))

        if failed:
            logger.info(f"Bulk read finished with {failed} failed read(s) of {len(queries)}")
        return results

    # =========================================================================
    # Mixed Batches
    # =========================================================================

    async def execute_batch_operations(self, batch: Sequence[Any]) -> list[BatchResult]:
        """
        Execute a mixed list of operations one at a time.

        Items may be operation models or dicts with a 'kind' key. Each item's
        error is captured in its BatchResult; the rest of the batch still runs.
        """
        results = []
        for item in batch:
            try:
                operation = _coerce_operation(item)
                result = await self._execute_one(operation)
                results.append(BatchResult(success=True, operation=operation, result=result))
            except Exception as e:
                logger.warning(f"Batch operation failed: {e}")
                results.append(BatchResult(success=False, operation=item, error=str(e)))
        return results

    async def _execute_one(self, operation: Any) -> Any:
        match operation:
            case WriteOperation():
                await self.execute_bulk_write([operation], operation.options)
                return {"success": True}
            case ReadOperation():
                sandbox = operation.options.sandbox_name if operation.options else None
                return await self._cells.get_value(
                    operation.target, operation.coordinates, sandbox_name=sandbox
                )
            case UpdateOperation():
                await self.execute_bulk_update([operation], operation.options)
                return {"success": True}
            case DeleteOperation():
                await self.execute_bulk_delete([operation], operation.options)
                return {"success": True}
            case _:
                raise UnknownOperationKind(getattr(operation, "kind", type(operation).__name__))

    # =========================================================================
    # Transactions
    # =========================================================================

    async def create_batch_transaction(self, operations: Sequence[Any]) -> str:
        return await self.transactions.create(operations)

    async def commit_batch_transaction(self, transaction_id: str) -> list[BatchResult]:
        return await self.transactions.commit(transaction_id)

    async def rollback_batch_transaction(self, transaction_id: str) -> None:
        await self.transactions.rollback(transaction_id)

    # =========================================================================
    # Import
    # =========================================================================

    async def import_csv(
        self, cube: str, csv_text: str, options: CSVImportOptions | None = None
    ) -> int:
        """
        Import CSV rows into a cube.

        Every column but the last is a coordinate; the last is the value.

        Returns:
            Number of cells written
        """
        options = options or CSVImportOptions()
        reader = csv.reader(io.StringIO(csv_text.strip()), delimiter=options.delimiter)

        operations = []
        for line_number, row in enumerate(reader, 1):
            if options.has_header and line_number == 1:
                continue
            if not any(field.strip() for field in row):
                continue
            try:
                if len(row) < 2:
                    raise ValueError("expected at least one coordinate and a value")
                operations.append(
                    WriteOperation(
                        target=cube,
                        coordinates=tuple(field.strip() for field in row[:-1]),
                        value=_parse_value(
                            row[-1], options.decimal_separator, options.thousand_separator
                        ),
                    )
                )
            except (ValueError, ValidationError) as e:
                if not options.skip_errors:
                    raise ImportDataError(line_number, str(e)) from e
                logger.warning(f"Skipping CSV line {line_number}: {e}")

        await self.execute_bulk_write(operations, self._import_options(options))
        logger.info(f"Imported {len(operations)} cell(s) from CSV into '{cube}'")
        return len(operations)

    async def import_json(
        self, cube: str, rows: Sequence[dict[str, Any]], options: JSONImportOptions | None = None
    ) -> int:
        """
        Import rows of {"coordinates": [...], "value": ...} into a cube.

        Returns:
            Number of cells written
        """
        options = options or JSONImportOptions()

        operations = []
        for index, row in enumerate(rows, 1):
            try:
                if options.validate_rows:
                    parsed = CellRow.model_validate(row)
                    coordinates, value = parsed.coordinates, parsed.value
                else:
                    coordinates, value = row["coordinates"], row["value"]
                operations.append(
                    WriteOperation(target=cube, coordinates=tuple(coordinates), value=value)
                )
            except (ValidationError, KeyError, TypeError) as e:
                if not options.skip_errors:
                    raise ImportDataError(index, str(e)) from e
                logger.warning(f"Skipping JSON row {index}: {e}")

        await self.execute_bulk_write(operations, self._import_options(options))
        logger.info(f"Imported {len(operations)} cell(s) from JSON into '{cube}'")
        return len(operations)

    def _import_options(self, options: CSVImportOptions | JSONImportOptions) -> BulkWriteOptions:
        return self.default_options.model_copy(
            update={
                "chunk_size": options.batch_size,
                "sandbox_name": options.sandbox_name,
                "increment": options.increment,
            }
        )

    # =========================================================================
    # Export
    # =========================================================================

    async def export_csv(self, mdx: str, options: ExportOptions | None = None) -> str:
        """Run MDX and render one CSV row per cell: member names then value."""
        options = options or ExportOptions()
        cellset = await self._cells.execute_mdx(mdx, sandbox_name=options.sandbox_name)

        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=options.delimiter, lineterminator="\n")
        if options.include_header and cellset.get("Cells"):
            writer.writerow([*_cellset_headers(cellset), "Value"])
        for members, cell in _iter_cells(cellset, options):
            writer.writerow([*members, cell.get("Value")])

        return buffer.getvalue().rstrip("\n")

    async def export_json(self, mdx: str, options: ExportOptions | None = None) -> list[dict]:
        """Run MDX and return one dict per cell."""
        options = options or ExportOptions()
        cellset = await self._cells.execute_mdx(mdx, sandbox_name=options.sandbox_name)

        data = []
        for members, cell in _iter_cells(cellset, options):
            row = {"coordinates": members, "value": cell.get("Value")}
            if options.format == "full":
                row.update(
                    {
                        "ordinal": cell.get("Ordinal"),
                        "ruleDerived": cell.get("RuleDerived"),
                        "updateable": cell.get("Updateable"),
                        "consolidated": cell.get("Consolidated"),
                    }
                )
            data.append(row)
        return data


# =============================================================================
# Helpers
# =============================================================================


def _coerce_operation(item: Any) -> Any:
    if isinstance(item, dict):
        if item.get("kind") not in OPERATION_KINDS:
            raise UnknownOperationKind(item.get("kind"))
        return parse_operation(item)
    return item


def _chunk_cellset(cells: Sequence[_Cell], increment: bool) -> dict[tuple[str, ...], Any]:
    """Coordinates to value; repeated increments add up, repeated writes keep the last."""
    cellset: dict[tuple[str, ...], Any] = {}
    for cell in cells:
        if increment and cell.coordinates in cellset:
            cellset[cell.coordinates] += cell.value
        else:
            cellset[cell.coordinates] = cell.value
    return cellset


def _parse_value(raw: str, decimal_separator: str = ".", thousand_separator: str = "") -> Any:
    """Parse a CSV value as float when it looks numeric, else keep the string."""
    text = raw.strip()
    candidate = text
    if thousand_separator:
        candidate = candidate.replace(thousand_separator, "")
    if decimal_separator != ".":
        candidate = candidate.replace(decimal_separator, ".")
    try:
        return float(candidate)
    except ValueError:
        return text


def _cellset_headers(cellset: dict[str, Any]) -> list[str]:
    """Hierarchy names, outermost axis first."""
    headers: list[str] = []
    for axis_index, axis in reversed(list(enumerate(cellset.get("Axes") or []))):
        hierarchies = axis.get("Hierarchies") or []
        if hierarchies:
            headers.extend(h.get("Name", "") for h in hierarchies)
            continue
        tuples = axis.get("Tuples") or []
        width = len(tuples[0].get("Members", [])) if tuples else 0
        headers.extend(f"Axis{axis_index}_Dim{i + 1}" for i in range(width))
    return headers


def _iter_cells(cellset: dict[str, Any], options: ExportOptions):
    """Yield (member names, cell) for each cell passing the skip filters."""
    axes = cellset.get("Axes") or []
    sizes = [len(axis.get("Tuples") or []) for axis in axes]

    for position, cell in enumerate(cellset.get("Cells") or []):
        value = cell.get("Value")
        if options.skip_zeros and (value is None or value == 0):
            continue
        if options.skip_consolidated and cell.get("Consolidated"):
            continue
        if options.skip_rule_derived and cell.get("RuleDerived"):
            continue

        # ordinal is mixed radix over the axes, axis 0 varying fastest
        remaining = cell.get("Ordinal", position)
        per_axis = []
        for axis, size in zip(axes, sizes):
            if not size:
                per_axis.append([])
                continue
            tuple_ = axis["Tuples"][remaining % size]
            remaining //= size
            per_axis.append([m.get("Name", "") for m in tuple_.get("Members", [])])

        members = [name for names in reversed(per_axis) for name in names]
        yield members, cell
