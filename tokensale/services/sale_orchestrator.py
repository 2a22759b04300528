"""
Sale lifecycle orchestration.

Each operation is a short sequence of dependent transactions. A step is
submitted only after the previous one has a confirmed receipt, and every
error leaving an operation records which steps were already done so the
operation can be retried.
"""

import json
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from tokensale.config import Settings, settings as default_settings
from tokensale.models import LifecycleResult, Sale, SaleStatus, TxReceipt
from tokensale.services.chain_client import ChainClient, normalize_address
from tokensale.services.confirmation import ConfirmationWaiter
from tokensale.utils.amounts import compute_deposit_amount, format_units
from tokensale.utils.exceptions import (
    ChainClientError,
    InsufficientSupplyError,
    InvalidDurationError,
    InvalidInputError,
    PreconditionViolationError,
    TokenSaleException,
)

SECONDS_PER_MINUTE = 60


def _require_uint(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInputError(f"{name} must be a non-negative integer, got {value!r}")
    return value


class SaleLifecycleOrchestrator:
    """Drive create / fund / pause-and-withdraw against the sale contract"""

    def __init__(
        self,
        client: ChainClient,
        waiter: Optional[ConfirmationWaiter] = None,
        settings: Optional[Settings] = None,
    ):
        self.client = client
        self.settings = settings or default_settings
        self.waiter = waiter or ConfirmationWaiter(client, settings=self.settings)
        self.logger = structlog.get_logger()

    async def _submit_and_confirm(self, result: LifecycleResult, step: str, submit, confirmations: int) -> TxReceipt:
        handle = await submit()
        receipt = await self.waiter.wait(handle, confirmations)
        result.record(step, receipt)
        return receipt

    def _fail(self, error: TokenSaleException, result: LifecycleResult, step: str) -> TokenSaleException:
        error.attach_progress(result.operation, step, result.completed_steps)
        self.logger.error(
            "Lifecycle operation failed",
            token_id=result.token_id,
            error=error.message,
            **error.context(),
        )
        return error

    async def get_sale(self, token_id: int) -> Sale:
        """Read the current on-chain state of a sale slot"""
        _require_uint(token_id, "token_id")
        return await self.client.sale_contract().get_sale(token_id)

    async def create_sale(self, token_id: int, token_address: str, token_price: int, duration_minutes: int) -> LifecycleResult:
        """
        Open a new sale on an unused slot.

        Args:
            token_id: Sale slot identifier
            token_address: ERC20 token to be sold
            token_price: Price per token in wei of the payment asset
            duration_minutes: Sale duration, converted to seconds on-chain

        Raises:
            InvalidDurationError: If duration_minutes is not a positive integer
            InvalidInputError: If any other argument is malformed
            PreconditionViolationError: If the slot holds a sale that is not fully withdrawn
        """
        if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0:
            raise InvalidDurationError(f"Duration must be a positive number of minutes, got {duration_minutes!r}")
        _require_uint(token_id, "token_id")
        _require_uint(token_price, "token_price")
        token = normalize_address(token_address, "token address")
        duration_seconds = duration_minutes * SECONDS_PER_MINUTE

        result = LifecycleResult(operation="create_sale", token_id=token_id)
        step = "precheck"
        try:
            contract = self.client.sale_contract()
            existing = await contract.get_sale(token_id)
            if existing.status not in (SaleStatus.NOT_CREATED, SaleStatus.WITHDRAWN):
                raise PreconditionViolationError(
                    f"Sale {token_id} is {existing.status.value} for token {existing.token}; "
                    "a slot must be fully withdrawn before reuse"
                )

            self.logger.info(
                "Adding token sale",
                token_id=token_id,
                token=token,
                token_price=str(token_price),
                duration_seconds=duration_seconds,
            )
            step = "add_token_sale"
            await self._submit_and_confirm(
                result,
                step,
                lambda: contract.add_token_sale(token_id, token, token_price, duration_seconds),
                self.settings.CREATE_CONFIRMATIONS,
            )

            step = "verify"
            result.sale = await contract.get_sale(token_id)
        except TokenSaleException as e:
            raise self._fail(e, result, step)

        if not result.sale.sale_active or result.sale.tokens_sold != 0:
            self.logger.warning("Unexpected sale state after creation", **result.sale.to_dict())

        self.logger.info("Token sale added", token_id=token_id, sale_end_date=result.sale.sale_end_date)
        return result

    async def fund_sale(self, token_id: int) -> LifecycleResult:
        """
        Approve the sale contract and deposit half the token supply minus one token.

        The deposit is submitted only once the approval is confirmed on-chain,
        or skipped because an equal or larger allowance is already there.

        Raises:
            PreconditionViolationError: If the sale is missing, paused or already funded
            InsufficientSupplyError: If the supply is too small to fund the sale
        """
        _require_uint(token_id, "token_id")
        result = LifecycleResult(operation="fund_sale", token_id=token_id)
        step = "precheck"
        try:
            contract = self.client.sale_contract()
            sale = await contract.get_sale(token_id)
            if not sale.exists:
                raise PreconditionViolationError(f"Sale {token_id} does not exist")
            if not sale.sale_active:
                raise PreconditionViolationError(f"Sale {token_id} is not active")
            if sale.is_funded:
                raise PreconditionViolationError(
                    f"Sale {token_id} is already funded with {sale.total_tokens} tokens"
                )

            token = self.client.erc20(sale.token)
            total_supply = await token.total_supply()
            decimals = await token.decimals()
            amount = compute_deposit_amount(total_supply, decimals)
            if amount == 0:
                raise InsufficientSupplyError(f"Deposit amount for sale {token_id} is zero")
            result.deposit_amount = amount

            step = "approve"
            allowance = await token.allowance(self.client.signer_address, contract.address)
            if allowance >= total_supply:
                result.record(step)
                self.logger.info(
                    "Approval already on-chain, skipping",
                    token_id=token_id,
                    allowance=str(allowance),
                )
            else:
                self.logger.info(
                    "Approving tokens",
                    token_id=token_id,
                    token=token.address,
                    amount=format_units(total_supply, decimals),
                )
                await self._submit_and_confirm(
                    result,
                    step,
                    lambda: token.approve(contract.address, total_supply),
                    self.settings.FUND_CONFIRMATIONS,
                )

            step = "deposit"
            self.logger.info("Depositing tokens", token_id=token_id, amount=format_units(amount, decimals))
            await self._submit_and_confirm(
                result,
                step,
                lambda: contract.deposit_tokens(token_id, amount),
                self.settings.FUND_CONFIRMATIONS,
            )

            step = "verify"
            result.sale = await contract.get_sale(token_id)
        except TokenSaleException as e:
            raise self._fail(e, result, step)

        self.logger.info("Tokens deposited", token_id=token_id, total_tokens=str(result.sale.total_tokens))
        return result

    async def pause_and_withdraw(self, token_id: int) -> LifecycleResult:
        """
        Pause a sale, then withdraw its unsold tokens.

        A sale that is already paused skips straight to the withdrawal, which
        makes the operation safe to re-run after an interruption.

        Raises:
            PreconditionViolationError: If the sale does not exist
        """
        _require_uint(token_id, "token_id")
        result = LifecycleResult(operation="pause_and_withdraw", token_id=token_id)
        step = "precheck"
        try:
            contract = self.client.sale_contract()
            sale = await contract.get_sale(token_id)
            if not sale.exists:
                raise PreconditionViolationError(f"Sale {token_id} does not exist")

            step = "pause"
            if sale.sale_active:
                self.logger.info("Pausing sale", token_id=token_id)
                await self._submit_and_confirm(
                    result,
                    step,
                    lambda: contract.pause_sale(token_id),
                    self.settings.WITHDRAW_CONFIRMATIONS,
                )
            else:
                result.record(step)
                self.logger.info("Sale already paused, skipping", token_id=token_id)

            step = "withdraw"
            token = self.client.erc20(sale.token)
            balance_before = await token.balance_of(contract.address)
            self.logger.info("Withdrawing remaining tokens", token_id=token_id, remaining=str(sale.remaining_tokens))
            await self._submit_and_confirm(
                result,
                step,
                lambda: contract.withdraw_remaining_tokens(token_id),
                self.settings.WITHDRAW_CONFIRMATIONS,
            )

            step = "verify"
            result.sale = await contract.get_sale(token_id)
            result.withdrawn_amount = balance_before - await token.balance_of(contract.address)
        except TokenSaleException as e:
            raise self._fail(e, result, step)

        if result.sale.sale_active or result.sale.remaining_tokens > 0:
            self.logger.warning("Unsold tokens left in sale after withdrawal", **result.sale.to_dict())

        self.logger.info("Remaining tokens withdrawn", token_id=token_id, amount=str(result.withdrawn_amount))
        return result

    async def deploy_sale_contract(self, sale_receiver: str, artifact_path: Union[str, Path]) -> LifecycleResult:
        """
        Deploy a compiled TokenSale contract.

        Args:
            sale_receiver: Address receiving sale proceeds
            artifact_path: Compiler artifact JSON holding "abi" and "bytecode"

        Returns:
            LifecycleResult with contract_address set from the deployment receipt
        """
        receiver = normalize_address(sale_receiver, "sale receiver")
        abi, bytecode = load_artifact(artifact_path)

        result = LifecycleResult(operation="deploy_sale_contract")
        step = "deploy"
        try:
            self.logger.info("Deploying sale contract", deployer=self.client.signer_address, sale_receiver=receiver)
            receipt = await self._submit_and_confirm(
                result,
                step,
                lambda: self.client.deploy_contract(abi, bytecode, receiver),
                self.settings.DEPLOY_CONFIRMATIONS,
            )
        except TokenSaleException as e:
            raise self._fail(e, result, step)

        if not receipt.contract_address:
            raise self._fail(
                ChainClientError(f"Deployment receipt {receipt.tx_hash} has no contract address"),
                result,
                step,
            )
        result.contract_address = receipt.contract_address
        self.logger.info("Sale contract deployed", contract_address=receipt.contract_address)
        return result


def load_artifact(artifact_path: Union[str, Path]):
    """Read abi and bytecode from a compiler artifact file"""
    path = Path(artifact_path)
    try:
        artifact = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise InvalidInputError(f"Cannot read contract artifact {path}: {e}")

    abi = artifact.get("abi") if isinstance(artifact, dict) else None
    bytecode = artifact.get("bytecode") if isinstance(artifact, dict) else None
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if not isinstance(abi, list) or not isinstance(bytecode, str) or bytecode in ("", "0x"):
        raise InvalidInputError(f"Contract artifact {path} must contain an abi list and bytecode")
    if not bytecode.startswith("0x"):
        bytecode = f"0x{bytecode}"
    return abi, bytecode
