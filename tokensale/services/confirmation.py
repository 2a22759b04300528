"""
Transaction confirmation waiting.

The waiter suspends the calling coroutine until a broadcast transaction is
buried under the requested number of blocks. A timeout only stops waiting:
a broadcast transaction cannot be recalled.
"""

import asyncio
from typing import Optional

import structlog

from tokensale.config import Settings, settings as default_settings
from tokensale.models import TxHandle, TxReceipt
from tokensale.services.chain_client import ChainClient
from tokensale.utils.exceptions import (
    ChainClientError,
    InvalidInputError,
    TransactionDroppedError,
    TransactionRevertedError,
    TransactionTimeoutError,
)


class ConfirmationWaiter:
    """Wait for receipts at a given confirmation depth"""

    def __init__(
        self,
        client: ChainClient,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        dropped_after: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            client: Chain client used to poll receipts and block height
            timeout: Seconds to wait before giving up (default from settings)
            poll_interval: Seconds between polls (default from settings)
            dropped_after: Seconds a transaction may be unknown to the node
                before it is considered dropped (default from settings)
            settings: Settings supplying the defaults (module settings if omitted)
        """
        settings = settings or default_settings
        self.client = client
        self.timeout = settings.CONFIRMATION_TIMEOUT if timeout is None else timeout
        self.poll_interval = settings.POLL_INTERVAL if poll_interval is None else poll_interval
        self.dropped_after = settings.DROPPED_AFTER if dropped_after is None else dropped_after
        self.logger = structlog.get_logger()

    async def _bounded(self, read, deadline: float):
        """Run one node read, giving up once the wait deadline has passed"""
        remaining = deadline - asyncio.get_running_loop().time()
        try:
            return await asyncio.wait_for(read, timeout=max(remaining, self.poll_interval))
        except asyncio.TimeoutError as e:
            raise ChainClientError("Node read did not finish before the confirmation deadline", cause=e) from e

    async def wait(self, handle: TxHandle, confirmations: int = 1, timeout: Optional[float] = None) -> TxReceipt:
        """
        Block until the transaction has `confirmations` blocks, counting its own.

        Returns:
            TxReceipt: Receipt with the observed confirmation depth

        Raises:
            InvalidInputError: If confirmations is not a positive integer
            TransactionRevertedError: If the transaction was mined with a failed status
            TransactionDroppedError: If the node forgot the transaction before mining it
            TransactionTimeoutError: If the depth was not reached in time
        """
        if isinstance(confirmations, bool) or not isinstance(confirmations, int) or confirmations < 1:
            raise InvalidInputError(f"Confirmations must be a positive integer, got {confirmations!r}")

        timeout = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout
        unknown_since: Optional[float] = None
        depth = 0

        self.logger.info(
            "Waiting for confirmation",
            description=handle.description,
            tx_hash=handle.tx_hash,
            confirmations=confirmations,
            timeout=timeout,
        )

        while True:
            now = loop.time()
            try:
                receipt = await self._bounded(self.client.get_transaction_receipt(handle.tx_hash), deadline)
                if receipt is not None:
                    unknown_since = None
                    if not receipt.succeeded:
                        self.logger.error(
                            "Transaction reverted",
                            description=handle.description,
                            tx_hash=handle.tx_hash,
                            block_number=receipt.block_number,
                        )
                        raise TransactionRevertedError(
                            f"{handle.description} transaction {handle.tx_hash} reverted "
                            f"in block {receipt.block_number}",
                            tx_hash=handle.tx_hash,
                            receipt=receipt,
                        )

                    head = await self._bounded(self.client.get_block_number(), deadline)
                    depth = max(head - receipt.block_number + 1, 0)
                    if depth >= confirmations:
                        self.logger.info(
                            "Transaction confirmed",
                            description=handle.description,
                            tx_hash=handle.tx_hash,
                            block_number=receipt.block_number,
                            confirmations=depth,
                        )
                        return receipt.with_confirmations(depth)
                else:
                    depth = 0
                    if await self._bounded(self.client.is_transaction_known(handle.tx_hash), deadline):
                        unknown_since = None
                    else:
                        if unknown_since is None:
                            unknown_since = now
                        if now - unknown_since >= self.dropped_after:
                            self.logger.error(
                                "Transaction dropped",
                                description=handle.description,
                                tx_hash=handle.tx_hash,
                                unknown_for=now - unknown_since,
                            )
                            raise TransactionDroppedError(
                                f"{handle.description} transaction {handle.tx_hash} is no longer known to the node",
                                tx_hash=handle.tx_hash,
                            )
            except ChainClientError as e:
                self.logger.warning(
                    "Confirmation poll failed",
                    description=handle.description,
                    tx_hash=handle.tx_hash,
                    error=str(e),
                )

            if loop.time() >= deadline:
                self.logger.error(
                    "Timed out waiting for confirmation",
                    description=handle.description,
                    tx_hash=handle.tx_hash,
                    confirmations=confirmations,
                    confirmations_seen=depth,
                )
                raise TransactionTimeoutError(
                    f"{handle.description} transaction {handle.tx_hash} reached {depth}/{confirmations} "
                    f"confirmations within {timeout}s",
                    tx_hash=handle.tx_hash,
                    timeout=timeout,
                    confirmations_seen=depth,
                )

            await asyncio.sleep(min(self.poll_interval, max(deadline - loop.time(), 0)))
