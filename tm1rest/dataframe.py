"""
Polars DataFrame Integration

Push DataFrames into cubes through the bulk engine and pull MDX results
back as DataFrames.

Usage:
    import polars as pl
    from tm1rest import connect, push_dataframe, pull_dataframe

    async with connect("https://tm1:8010/api/v1", user="admin", password="<your-password>") as tm1:
        df = pl.DataFrame({
            "Year": ["2024", "2024", "2024"],
            "Region": ["North", "South", "East"],
            "Measure": ["Revenue", "Revenue", "Revenue"],
            "Value": [100.0, 200.0, 150.0],
        })
        await push_dataframe(tm1.bulk, "SalesCube", df, value_column="Value")

        df = await pull_dataframe(tm1.cells, "SELECT ... FROM [SalesCube]")
"""

import logging
from typing import Any

import polars as pl

from .bulk import BulkService, BulkWriteOptions, WriteOperation
from .cells import CellService

logger = logging.getLogger("tm1rest.dataframe")


# =============================================================================
# Push DataFrame to TM1
# =============================================================================


async def push_dataframe(
    bulk: BulkService,
    cube: str,
    df: pl.DataFrame,
    value_column: str = "Value",
    options: BulkWriteOptions | None = None,
    skip_zeros: bool = False,
    skip_nulls: bool = True,
) -> int:
    """
    Push a Polars DataFrame into a TM1 cube.

    The DataFrame has one column per dimension plus a value column. Columns
    named like a cube dimension map to it; the rest map positionally to the
    remaining dimensions.

    Args:
        bulk: BulkService bound to the target server
        cube: Target cube name
        df: Polars DataFrame with dimension columns + value column
        value_column: Name of the column containing values (default: "Value")
        options: Write options (chunk size, retries, sandbox)
        skip_zeros: Skip cells with value 0 (default: False)
        skip_nulls: Skip cells with null values (default: True)

    Returns:
        Number of cells written

    Raises:
        TypeError: df is not a polars.DataFrame
        ValueError: Value column missing or column count does not match the cube
        BulkWriteFailure: A chunk exhausted its retries
    """
    if not isinstance(df, pl.DataFrame):
        raise TypeError(f"Expected polars.DataFrame, got {type(df).__name__}")

    if value_column not in df.columns:
        raise ValueError(
            f"Value column '{value_column}' not found in DataFrame. Columns: {df.columns}"
        )

    dimensions = await bulk.cells.get_cube_dimensions(cube)
    dim_columns = [c for c in df.columns if c != value_column]

    if len(dim_columns) != len(dimensions):
        raise ValueError(
            f"DataFrame has {len(dim_columns)} dimension columns {dim_columns} "
            f"but cube '{cube}' has {len(dimensions)} dimensions: {dimensions}"
        )

    ordered_columns = _order_columns(dim_columns, dimensions)

    operations = []
    rows_skipped = 0
    for row in df.iter_rows(named=True):
        value = row[value_column]
        if value is None and skip_nulls:
            rows_skipped += 1
            continue
        if value == 0 and skip_zeros:
            rows_skipped += 1
            continue

        operations.append(
            WriteOperation(
                target=cube,
                coordinates=tuple(str(row[col]) for col in ordered_columns),
                value=0.0 if value is None else value,
            )
        )

    if rows_skipped:
        logger.info(f"Skipped {rows_skipped} rows (nulls/zeros)")

    if not operations:
        logger.info("No cells to update")
        return 0

    await bulk.execute_bulk_write(operations, options)
    logger.info(f"Push complete: {len(operations)} cells written to cube '{cube}'")
    return len(operations)


def _order_columns(dim_columns: list[str], dimensions: list[str]) -> list[str]:
    """Return DataFrame columns in cube dimension order."""
    by_dimension = {col: col for col in dim_columns if col in dimensions}
    unmatched_cols = [c for c in dim_columns if c not in by_dimension]
    unmatched_dims = [d for d in dimensions if d not in by_dimension]

    for col, dim in zip(unmatched_cols, unmatched_dims):
        by_dimension[dim] = col
        logger.info(f"Mapping column '{col}' to dimension '{dim}' (positional)")

    return [by_dimension[dim] for dim in dimensions]


# =============================================================================
# Pull Data from TM1 into DataFrame
# =============================================================================


async def pull_dataframe(
    cells: CellService,
    mdx: str,
    value_column: str = "Value",
    sandbox_name: str | None = None,
) -> pl.DataFrame:
    """
    Execute an MDX query and return the result as a Polars DataFrame.

    One-axis results become one row per tuple. Two-axis results become one
    row per row tuple with one value column per column tuple.

    Example:
        df = await pull_dataframe(tm1.cells,
            mdx="SELECT {[Year].[2024]} * {[Region].Members} ON ROWS, "
                "{[Measure].[Revenue]} ON COLUMNS FROM [SalesCube]"
        )
    """
    cellset = await cells.execute_mdx(mdx, sandbox_name=sandbox_name)

    axes = cellset.get("Axes") or []
    cell_values = [_parse_numeric(c.get("Value")) for c in cellset.get("Cells") or []]

    if not axes or not cell_values:
        return pl.DataFrame()

    if len(axes) == 1:
        return _build_df_single_axis(axes[0], cell_values, value_column)
    if len(axes) == 2:
        return _build_df_two_axes(axes[0], axes[1], cell_values)
    return pl.DataFrame({value_column: cell_values})


def _dimension_labels(axis: dict, width: int) -> list[str]:
    hierarchies = axis.get("Hierarchies") or []
    if len(hierarchies) == width:
        return [h.get("Name", "") for h in hierarchies]
    return [f"Dim{i + 1}" for i in range(width)]


def _build_df_single_axis(axis: dict, values: list[Any], value_column: str) -> pl.DataFrame:
    tuples = axis.get("Tuples") or []
    if not tuples:
        return pl.DataFrame()

    labels = _dimension_labels(axis, len(tuples[0].get("Members", [])))
    columns: dict[str, list] = {label: [] for label in labels}
    columns[value_column] = []

    for i, t in enumerate(tuples):
        for label, member in zip(labels, t.get("Members", [])):
            columns[label].append(member.get("Name", ""))
        columns[value_column].append(values[i] if i < len(values) else 0.0)

    return pl.DataFrame(columns)


def _build_df_two_axes(col_axis: dict, row_axis: dict, values: list[Any]) -> pl.DataFrame:
    col_tuples = col_axis.get("Tuples") or []
    row_tuples = row_axis.get("Tuples") or []
    if not col_tuples or not row_tuples:
        return pl.DataFrame()

    labels = _dimension_labels(row_axis, len(row_tuples[0].get("Members", [])))
    columns: dict[str, list] = {label: [] for label in labels}

    col_headers = ["_".join(m.get("Name", "") for m in ct.get("Members", [])) for ct in col_tuples]
    for header in col_headers:
        columns[header] = []

    n_cols = len(col_tuples)
    for row_idx, rt in enumerate(row_tuples):
        for label, member in zip(labels, rt.get("Members", [])):
            columns[label].append(member.get("Name", ""))
        for col_idx, header in enumerate(col_headers):
            cell_idx = row_idx * n_cols + col_idx
            columns[header].append(values[cell_idx] if cell_idx < len(values) else 0.0)

    return pl.DataFrame(columns)


def _parse_numeric(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (ValueError, TypeError):
        return 0.0
