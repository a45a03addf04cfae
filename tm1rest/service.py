"""
TM1Service facade: one REST session with the cell, process and bulk
services wired to it.
"""

import logging

from .bulk import BulkService, BulkWriteOptions
from .cells import CellService
from .config import ClientConfig
from .processes import ProcessService
from .rest import RestService

logger = logging.getLogger("tm1rest.service")


class TM1Service:
    """
    Entry point for talking to one TM1 server.

    Example:
        async with TM1Service(RestService("https://tm1:8010/api/v1", user="admin")) as tm1:
            await tm1.bulk.execute_bulk_write(operations)
            result = await tm1.processes.poll_execute_with_return("Load.Sales")
    """

    def __init__(self, rest: RestService, bulk_options: BulkWriteOptions | None = None):
        self.rest = rest
        self.cells = CellService(rest)
        self.processes = ProcessService(rest)
        self.bulk = BulkService(self.cells, default_options=bulk_options)

    @classmethod
    def from_config(cls, config: ClientConfig, instance: str | None = None) -> "TM1Service":
        """Build a (not yet connected) service for a configured instance."""
        instance_config = config.get_instance(instance)
        logger.debug(f"Creating TM1Service for instance '{instance_config.name}'")
        rest = RestService(**instance_config.connection_params(config.session_context))
        return cls(rest, bulk_options=config.bulk_options())

    async def connect(self) -> str:
        return await self.rest.connect()

    async def close(self) -> None:
        await self.rest.close()

    async def __aenter__(self) -> "TM1Service":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def connect(
    base_url: str,
    user: str = "",
    password: str = "",
    namespace: str = "",
    access_token: str = "",
    ssl_verify: bool = True,
    timeout: float = 60.0,
    bulk_options: BulkWriteOptions | None = None,
) -> TM1Service:
    """
    Create a TM1Service (does NOT connect yet - use await tm1.connect() or async with).

    Example:
        async with connect("https://tm1:8010/api/v1", user="admin", password="<your-password>") as tm1:
            values = await tm1.bulk.execute_bulk_read(queries)
    """
    rest = RestService(
        base_url,
        user=user,
        password=password,
        namespace=namespace,
        access_token=access_token,
        ssl_verify=ssl_verify,
        timeout=timeout,
    )
    return TM1Service(rest, bulk_options=bulk_options)
