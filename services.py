import asyncio
from typing import Iterable, List, Optional
import structlog

from exceptions import AccountError
from models import AccountSnapshot, Operation, RunSummary
from repositories import AccountRepository, InMemoryAccountRepository, get_account_repository

# Configure structured logging
logger = structlog.get_logger()


class TransactionRouter:
    """Dispatches operations to per-client accounts, in arrival order.

    Account-level failures are logged and returned, never raised, so one bad
    operation cannot stop the stream.
    """

    def __init__(self, account_repo: AccountRepository):
        self.account_repo = account_repo
        self.operations_applied = 0
        self.operations_rejected = 0

    def route(self, operation: Operation) -> Optional[AccountError]:
        """Apply an operation to its client's account. Returns the error, if any."""
        account = self.account_repo.get_or_create(operation.client_id())

        try:
            account.apply(operation)
        except AccountError as e:
            self.operations_rejected += 1
            logger.warning(
                "Operation rejected",
                client_id=e.client_id,
                tx_id=e.tx_id,
                operation=operation.type.value,
                error_code=e.error_code,
                detail=e.detail,
            )
            return e

        self.operations_applied += 1
        return None

    def process(self, operations: Iterable[Operation]) -> RunSummary:
        """Route a whole stream of operations and summarize the run."""
        for operation in operations:
            self.route(operation)

        summary = self.summary()
        logger.info(
            "Operation stream processed",
            accounts_count=summary.accounts_count,
            operations_applied=summary.operations_applied,
            operations_rejected=summary.operations_rejected,
        )
        return summary

    def accounts(self) -> List[AccountSnapshot]:
        return [account.snapshot() for account in self.account_repo.all_accounts()]

    def summary(self) -> RunSummary:
        return RunSummary(
            accounts_count=self.account_repo.get_accounts_count(),
            operations_applied=self.operations_applied,
            operations_rejected=self.operations_rejected,
        )


class ShardedRouter:
    """Fans operations out to shards keyed by client id.

    Each shard owns its accounts and drains a single queue, so operations for
    one client are still applied strictly in input order while different
    clients never share state.
    """

    def __init__(self, shard_count: int, queue_size: int = 1000):
        if shard_count < 1:
            raise ValueError("shard_count must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.queue_size = queue_size
        self.shards = [
            TransactionRouter(InMemoryAccountRepository()) for _ in range(shard_count)
        ]

    def shard_for(self, client_id: int) -> int:
        return client_id % len(self.shards)

    async def process(self, operations: Iterable[Operation]) -> RunSummary:
        queues: List[asyncio.Queue] = [asyncio.Queue(maxsize=self.queue_size) for _ in self.shards]
        workers = [
            asyncio.create_task(self._drain(shard, queue))
            for shard, queue in zip(self.shards, queues)
        ]

        try:
            for operation in operations:
                shard = self.shard_for(operation.client_id())
                await self._enqueue(queues[shard], workers[shard], operation)
            for queue, worker in zip(queues, workers):
                await self._enqueue(queue, worker, None)
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        summary = self.summary()
        logger.info(
            "Operation stream processed",
            shards=len(self.shards),
            accounts_count=summary.accounts_count,
            operations_applied=summary.operations_applied,
            operations_rejected=summary.operations_rejected,
        )
        return summary

    async def _enqueue(self, queue: asyncio.Queue, worker: asyncio.Task, item: Optional[Operation]) -> None:
        """Put an item on a shard queue, waiting while it is full.

        Raises the worker's exception if the shard dies while the producer waits.
        """
        if not queue.full():
            queue.put_nowait(item)
            return

        put = asyncio.ensure_future(queue.put(item))
        await asyncio.wait({put, worker}, return_when=asyncio.FIRST_COMPLETED)
        if not put.done():
            put.cancel()
            await asyncio.gather(put, return_exceptions=True)
            worker.result()
            raise RuntimeError("Shard worker stopped before the stream ended")

    async def _drain(self, shard: TransactionRouter, queue: asyncio.Queue) -> None:
        while True:
            operation = await queue.get()
            if operation is None:
                return
            shard.route(operation)
            # Let the other shards make progress
            await asyncio.sleep(0)

    def accounts(self) -> List[AccountSnapshot]:
        return [snapshot for shard in self.shards for snapshot in shard.accounts()]

    def summary(self) -> RunSummary:
        shard_summaries = [shard.summary() for shard in self.shards]
        return RunSummary(
            accounts_count=sum(s.accounts_count for s in shard_summaries),
            operations_applied=sum(s.operations_applied for s in shard_summaries),
            operations_rejected=sum(s.operations_rejected for s in shard_summaries),
        )


# Factory function for dependency injection
def get_transaction_router(account_repo: Optional[AccountRepository] = None) -> TransactionRouter:
    return TransactionRouter(account_repo or get_account_repository())
