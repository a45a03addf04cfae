"""
TM1 Cell Operations

Reads and writes individual cells and executes MDX against a cube.
This is the unit of work the bulk engine drives; it knows nothing about
chunking or retries.

Coordinates are tuples of element names in cube dimension order:

    cells = CellService(rest)

    value = await cells.get_value("Sales", ("2024", "Q1", "Revenue"))

    await cells.write_values("Sales", {
        ("2024", "Q1", "Revenue"): 100000,
        ("2024", "Q2", "Revenue"): 120000,
    })

    cellset = await cells.execute_mdx("SELECT {[Year].[2024]} ON COLUMNS FROM [Sales]")
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .exceptions import TM1Error
from .rest import RestService, quote_name

logger = logging.getLogger("tm1rest.cells")

CELLSET_EXPAND = (
    "$expand=Axes($expand=Hierarchies($select=Name),"
    "Tuples($expand=Members($select=Name))),"
    "Cells($select=Ordinal,Value,Updateable,Consolidated,RuleDerived)"
)


class CellService:
    """Cell level read / write primitive on top of RestService."""

    def __init__(self, rest: RestService):
        self._rest = rest
        self._dimension_cache: dict[str, list[str]] = {}

    # =========================================================================
    # Metadata
    # =========================================================================

    async def get_cube_dimensions(self, cube: str) -> list[str]:
        """
        Get dimension names for a cube (in order).

        Results are cached per cube for the lifetime of the service.
        """
        if cube not in self._dimension_cache:
            url = f"/Cubes('{quote_name(cube)}')/Dimensions?$select=Name"
            response = await self._rest.get(url)
            self._dimension_cache[cube] = [d["Name"] for d in response.body.get("value", [])]
        return self._dimension_cache[cube]

    async def clear_cube(self, cube: str, sandbox_name: str | None = None) -> None:
        """Clear all data in a cube."""
        await self._rest.post(_with_sandbox(f"/Cubes('{quote_name(cube)}')/tm1.Clear", sandbox_name))
        logger.info(f"Cleared cube '{cube}'")

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_value(
        self, cube: str, coordinates: Sequence[str], sandbox_name: str | None = None
    ) -> Any:
        """
        Get a single cell value.

        Returns the raw cell value: a number for numeric cells, a string
        for string cells, None when the server returns no cell.
        """
        values = await self.get_values(cube, [coordinates], sandbox_name=sandbox_name)
        return values[0]

    async def get_values(
        self,
        cube: str,
        coordinates_list: Sequence[Sequence[str]],
        sandbox_name: str | None = None,
    ) -> list[Any]:
        """
        Get multiple cell values with one MDX query.

        Values come back in the order of coordinates_list; missing cells are None.
        """
        if not coordinates_list:
            return []

        dimensions = await self.get_cube_dimensions(cube)
        member_refs = []
        for coordinates in coordinates_list:
            _check_arity(cube, coordinates, dimensions)
            member = ",".join(
                f"[{_mdx_escape(dim)}].[{_mdx_escape(elem)}]"
                for dim, elem in zip(dimensions, coordinates)
            )
            member_refs.append(f"({member})")

        mdx = f"SELECT {{{','.join(member_refs)}}} ON COLUMNS FROM [{_mdx_escape(cube)}]"
        url = _with_sandbox("/ExecuteMDX?$expand=Cells($select=Value)", sandbox_name)
        response = await self._rest.post(url, body={"MDX": mdx})

        values = [cell.get("Value") for cell in response.body.get("Cells", [])]
        values.extend([None] * (len(coordinates_list) - len(values)))
        return values

    async def execute_mdx(self, mdx: str, sandbox_name: str | None = None) -> dict[str, Any]:
        """
        Execute an MDX query and return the cellset.

        Returns:
            Dict with 'Axes' (hierarchies and member tuples) and 'Cells'
        """
        url = _with_sandbox(f"/ExecuteMDX?{CELLSET_EXPAND}", sandbox_name)
        response = await self._rest.post(url, body={"MDX": mdx})
        return response.body

    # =========================================================================
    # Writes
    # =========================================================================

    async def write_value(
        self, cube: str, coordinates: Sequence[str], value: Any, sandbox_name: str | None = None
    ) -> None:
        await self.write_values(cube, {tuple(coordinates): value}, sandbox_name=sandbox_name)

    async def write_values(
        self,
        cube: str,
        cells: Mapping[tuple[str, ...], Any],
        increment: bool = False,
        sandbox_name: str | None = None,
    ) -> None:
        """
        Write multiple cells in a single tm1.Update request.

        Args:
            cube: Cube name
            cells: Mapping of coordinate tuple to value
            increment: Add values to the current cell contents instead of replacing
            sandbox_name: Write into this sandbox instead of base data
        """
        if not cells:
            return

        dimensions = await self.get_cube_dimensions(cube)
        items = list(cells.items())

        if increment:
            current = await self.get_values(
                cube, [coordinates for coordinates, _ in items], sandbox_name=sandbox_name
            )
            items = [
                (coordinates, _increment(existing, value))
                for (coordinates, value), existing in zip(items, current)
            ]

        updates = []
        for coordinates, value in items:
            _check_arity(cube, coordinates, dimensions)
            updates.append(
                {
                    "Cells": [
                        {
                            "Tuple@odata.bind": [
                                f"Dimensions('{quote_name(dim)}')/Hierarchies('{quote_name(dim)}')"
                                f"/Elements('{quote_name(elem)}')"
                                for dim, elem in zip(dimensions, coordinates)
                            ]
                        }
                    ],
                    "Value": value,
                }
            )

        url = _with_sandbox(f"/Cubes('{quote_name(cube)}')/tm1.Update", sandbox_name)
        await self._rest.post(url, body=updates)
        logger.debug(f"Updated {len(updates)} cell(s) in cube '{cube}'")


# =============================================================================
# Helpers
# =============================================================================


def _with_sandbox(url: str, sandbox_name: str | None) -> str:
    if not sandbox_name:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}$sandbox={quote_name(sandbox_name)}"


def _mdx_escape(name: str) -> str:
    return name.replace("]", "]]")


def _check_arity(cube: str, coordinates: Sequence[str], dimensions: list[str]) -> None:
    if len(coordinates) != len(dimensions):
        raise TM1Error(
            f"Coordinates {list(coordinates)} have {len(coordinates)} parts but cube '{cube}' "
            f"has {len(dimensions)} dimensions: {dimensions}"
        )


def _increment(existing: Any, value: Any) -> Any:
    """Add value to the current cell value; string cells are overwritten."""
    if isinstance(value, str):
        return value
    try:
        return float(existing or 0) + float(value)
    except (TypeError, ValueError):
        return value
