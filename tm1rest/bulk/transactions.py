"""
In-memory batch transactions.

A transaction only stages operations locally. Commit runs them all in one
pass through the batch executor; rollback discards the staged intent. No
compensating calls are ever sent to TM1, so a failed commit leaves the
successful operations applied on the server.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from ..exceptions import TransactionFailed, TransactionInvalidState, TransactionNotFound
from .models import BatchResult, Transaction, TransactionStatus

logger = logging.getLogger("tm1rest.bulk.transactions")

BatchExecutor = Callable[[Sequence[Any]], Awaitable[list[BatchResult]]]


class TransactionManager:
    """
    Keeps staged transactions for one BulkService instance.

    Commit and rollback of the same transaction are serialised with a
    per-transaction lock; the map itself is guarded by a separate lock.
    """

    def __init__(self, executor: BatchExecutor):
        self._executor = executor
        self._transactions: dict[str, Transaction] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._map_lock = asyncio.Lock()

    async def create(self, operations: Sequence[Any]) -> str:
        """Stage operations under a new transaction id."""
        async with self._map_lock:
            transaction_id = f"tx_{uuid.uuid4().hex}"
            self._transactions[transaction_id] = Transaction(
                id=transaction_id, operations=list(operations)
            )
            self._locks[transaction_id] = asyncio.Lock()
        logger.debug(f"Created transaction {transaction_id} with {len(operations)} operation(s)")
        return transaction_id

    async def commit(self, transaction_id: str) -> list[BatchResult]:
        """
        Execute all staged operations.

        Raises:
            TransactionNotFound: Unknown id
            TransactionInvalidState: Transaction is not pending
            TransactionFailed: At least one operation failed (status becomes rolled_back)
        """
        transaction, lock = await self._lookup(transaction_id)

        async with lock:
            if transaction.status is not TransactionStatus.PENDING:
                raise TransactionInvalidState(transaction_id, transaction.status.value)

            results = await self._executor(transaction.operations)
            failures = [r for r in results if not r.success]

            if failures:
                transaction.status = TransactionStatus.ROLLED_BACK
                logger.error(
                    f"Transaction {transaction_id} failed: "
                    f"{len(failures)} of {len(results)} operation(s) failed"
                )
                raise TransactionFailed(transaction_id, len(failures), results)

            transaction.status = TransactionStatus.COMMITTED
            logger.info(f"Committed transaction {transaction_id} ({len(results)} operation(s))")
            return results

    async def rollback(self, transaction_id: str) -> None:
        """
        Discard a staged transaction.

        A committed transaction cannot be rolled back; its status never
        moves backwards once COMMITTED.

        Raises:
            TransactionNotFound: Unknown id
            TransactionInvalidState: Transaction was already committed
        """
        transaction, lock = await self._lookup(transaction_id)

        async with lock:
            if transaction.status is TransactionStatus.COMMITTED:
                raise TransactionInvalidState(transaction_id, transaction.status.value)
            transaction.status = TransactionStatus.ROLLED_BACK

        async with self._map_lock:
            self._transactions.pop(transaction_id, None)
            self._locks.pop(transaction_id, None)
        logger.info(f"Rolled back transaction {transaction_id}")

    def get(self, transaction_id: str) -> Transaction:
        transaction = self._transactions.get(transaction_id)
        if transaction is None:
            raise TransactionNotFound(transaction_id)
        return transaction

    def list_transactions(self) -> list[Transaction]:
        """
        All known transactions, including committed and failed ones.

        Only rollback removes an entry, so committed and failed transactions
        stay listed for the life of this manager.
        """
        return list(self._transactions.values())

    async def _lookup(self, transaction_id: str) -> tuple[Transaction, asyncio.Lock]:
        async with self._map_lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None:
                raise TransactionNotFound(transaction_id)
            return transaction, self._locks[transaction_id]
