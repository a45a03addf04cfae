"""
TM1 Process Execution

Run TurboIntegrator processes synchronously, or start them
asynchronously and poll until they finish.

Usage:
    processes = ProcessService(rest)

    # Blocking call, returns (success, status, error_log_file)
    success, status, log_file = await processes.execute_with_return(
        "load.sales", {"pYear": "2024"}
    )

    # Async start + poll every 5 seconds, give up after 10 minutes
    result = await processes.poll_execute_with_return(
        "load.sales", {"pYear": "2024"}, timeout=600, poll_interval=5
    )
"""

import asyncio
import logging
import time
from typing import Any

from .exceptions import (
    ExecutionCancelled,
    ExecutionFailure,
    StartFailure,
    TimeoutExceeded,
    TM1RestError,
)
from .rest import RestService, quote_name

logger = logging.getLogger("tm1rest.processes")

STATUS_COMPLETED = "Completed"
STATUS_FAILED = "Failed"


class ProcessService:
    """Execute TI processes on the TM1 server."""

    def __init__(self, rest: RestService):
        self._rest = rest

    async def exists(self, process_name: str) -> bool:
        """Check whether a process exists."""
        try:
            await self._rest.get(f"/Processes('{quote_name(process_name)}')?$select=Name")
            return True
        except TM1RestError as e:
            if e.status_code == 404:
                return False
            raise

    async def execute(self, process_name: str, parameters: dict[str, Any] | None = None) -> None:
        """Execute a process and wait for the HTTP call to return."""
        url = f"/Processes('{quote_name(process_name)}')/tm1.Execute"
        await self._rest.post(url, body=_parameters_body(parameters))
        logger.info(f"Executed process '{process_name}'")

    async def execute_with_return(
        self, process_name: str, parameters: dict[str, Any] | None = None
    ) -> tuple[bool, str, str | None]:
        """
        Execute a process and return its execution summary.

        Returns:
            Tuple of (success, status, error_log_file). success is True only
            for status 'CompletedSuccessfully'.
        """
        url = f"/Processes('{quote_name(process_name)}')/tm1.ExecuteWithReturn?$expand=*"
        response = await self._rest.post(url, body=_parameters_body(parameters))
        status = response.body.get("ProcessExecuteStatusCode", "")
        error_log = response.body.get("ErrorLogFile") or None
        if isinstance(error_log, dict):
            error_log = error_log.get("Filename")
        success = status == "CompletedSuccessfully"
        logger.info(f"Process '{process_name}' finished with status {status}")
        return success, status, error_log

    async def poll_execute_with_return(
        self,
        process_name: str,
        parameters: dict[str, Any] | None = None,
        timeout: float = 300,
        poll_interval: float = 5,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        """
        Start a process asynchronously and poll until it reaches a terminal state.

        Args:
            process_name: Name of the process
            parameters: Process parameters (name -> value)
            timeout: Wall-clock seconds to wait for completion
            poll_interval: Seconds between status checks
            cancel_event: Optional event; polling stops when it is set

        Returns:
            Body of /ExecutionResults for the execution

        Raises:
            StartFailure: The server did not return an execution id
            ExecutionFailure: The execution reported status Failed
            TimeoutExceeded: No terminal status before the timeout
            ExecutionCancelled: cancel_event was set while polling
        """
        url = f"/Processes('{quote_name(process_name)}')/tm1.ExecuteAsync"
        response = await self._rest.post(url, body=_parameters_body(parameters))
        body = response.body if isinstance(response.body, dict) else {}
        execution_id = body.get("ID") or body.get("ExecutionId")
        if not execution_id:
            raise StartFailure(process_name)

        logger.info(f"Started process '{process_name}' asynchronously (execution {execution_id})")
        start = time.monotonic()
        checks = 0

        while time.monotonic() - start < timeout:
            if cancel_event is not None and cancel_event.is_set():
                raise ExecutionCancelled(process_name, execution_id)

            try:
                status_response = await self._rest.get(
                    f"/ExecutionStatus('{quote_name(str(execution_id))}')"
                )
                status = status_response.body.get("Status")
            except Exception as e:
                # transient, keep polling until timeout
                logger.warning(f"Status check for execution {execution_id} failed: {e}")
                await asyncio.sleep(poll_interval)
                continue

            checks += 1

            if status == STATUS_COMPLETED:
                result = await self._rest.get(
                    f"/ExecutionResults('{quote_name(str(execution_id))}')"
                )
                logger.info(f"Process '{process_name}' completed after {checks} status check(s)")
                return result.body

            if status == STATUS_FAILED:
                raise ExecutionFailure(
                    process_name, execution_id, status_response.body.get("ErrorMessage", "")
                )

            logger.debug(f"Process '{process_name}' status: {status}")
            await asyncio.sleep(poll_interval)

        raise TimeoutExceeded(process_name, timeout)


def _parameters_body(parameters: dict[str, Any] | None) -> dict[str, Any]:
    if not parameters:
        return {}
    return {"Parameters": [{"Name": name, "Value": value} for name, value in parameters.items()]}
