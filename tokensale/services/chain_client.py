"""
Chain client for EVM JSON-RPC interaction.

Exposes one typed capability interface per contract role (the TokenSale
contract and ERC20 tokens) on top of a signing client. Reads are retried
with exponential backoff; submissions are never retried because a
re-broadcast could reuse or skip a nonce.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import wraps
from typing import Any, Optional, Sequence

import structlog
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TransactionNotFound

from tokensale.config import Settings, settings
from tokensale.models import Sale, TxHandle, TxReceipt
from tokensale.services.abi import ERC20_ABI, TOKEN_SALE_ABI
from tokensale.utils.exceptions import (
    ChainClientError,
    InvalidInputError,
    TokenSaleException,
    TransactionRevertedError,
)

logger = structlog.get_logger()


def normalize_address(value: str, field: str = "address") -> str:
    """Validate an address and return its checksum form"""
    if not isinstance(value, str) or not AsyncWeb3.is_address(value):
        raise InvalidInputError(f"Invalid {field}: {value!r}")
    return AsyncWeb3.to_checksum_address(value)


@dataclass(frozen=True)
class ChainClientConfig:
    """Explicit connection settings handed to a chain client"""

    endpoint_url: str
    signer_key: str
    contract_address: Optional[str] = None

    def __post_init__(self):
        if not self.endpoint_url:
            raise ValueError("RPC endpoint URL is required")
        if not self.signer_key:
            raise ValueError("Signing key is required")

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "ChainClientConfig":
        source = source or settings
        return cls(
            endpoint_url=source.ALCHEMY_API_URL,
            signer_key=source.PRIVATE_KEY,
            contract_address=source.CONTRACT_ADDRESS,
        )

    def __repr__(self):
        return (
            f"ChainClientConfig(endpoint_url={self.endpoint_url!r}, signer_key='***', "
            f"contract_address={self.contract_address!r})"
        )


def retry_on_rpc_error(max_retries: Optional[int] = None, base_delay: Optional[float] = None, max_delay: float = 30.0):
    """
    Decorator for automatic retry with exponential backoff on read-only RPC calls.

    Defaults come from the client's max_retries / retry_delay attributes.
    Errors from this package and contract reverts are deterministic and are
    not retried. Reverts and anything left after the last attempt are
    wrapped into ChainClientError.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            retries = self.max_retries if max_retries is None else max_retries
            delay_base = self.retry_delay if base_delay is None else base_delay
            last_exception = None

            for attempt in range(retries + 1):
                try:
                    return await func(self, *args, **kwargs)
                except TokenSaleException:
                    raise
                except ContractLogicError as e:
                    logger.error("RPC call reverted", function=func.__name__, reason=str(e))
                    raise ChainClientError(f"{func.__name__} reverted: {e}", cause=e) from e
                except Exception as e:
                    last_exception = e

                    if attempt == retries:
                        logger.error(
                            "RPC call failed after all retries",
                            function=func.__name__,
                            error=str(e),
                            attempts=attempt + 1,
                        )
                        break

                    delay = min(delay_base * (2**attempt), max_delay)
                    jitter = random.uniform(0, delay * 0.1)  # nosec B311
                    actual_delay = delay + jitter

                    logger.info(
                        "RPC call failed, retrying",
                        function=func.__name__,
                        error=str(e),
                        attempt=attempt + 1,
                        max_retries=retries,
                        retry_delay=actual_delay,
                    )

                    await asyncio.sleep(actual_delay)

            raise ChainClientError(f"{func.__name__} failed: {last_exception}", cause=last_exception) from last_exception

        return wrapper

    return decorator


class ERC20Token(ABC):
    """Capabilities of an ERC20 token used by the sale lifecycle"""

    address: str

    @abstractmethod
    async def total_supply(self) -> int:
        pass

    @abstractmethod
    async def decimals(self) -> int:
        pass

    @abstractmethod
    async def balance_of(self, account: str) -> int:
        pass

    @abstractmethod
    async def allowance(self, owner: str, spender: str) -> int:
        pass

    @abstractmethod
    async def approve(self, spender: str, amount: int) -> TxHandle:
        pass


class TokenSaleContract(ABC):
    """Capabilities of the deployed TokenSale contract"""

    address: str

    @abstractmethod
    async def get_sale(self, token_id: int) -> Sale:
        pass

    @abstractmethod
    async def add_token_sale(self, token_id: int, token: str, token_price: int, duration_seconds: int) -> TxHandle:
        pass

    @abstractmethod
    async def deposit_tokens(self, token_id: int, amount: int) -> TxHandle:
        pass

    @abstractmethod
    async def pause_sale(self, token_id: int) -> TxHandle:
        pass

    @abstractmethod
    async def withdraw_remaining_tokens(self, token_id: int) -> TxHandle:
        pass


class ChainClient(ABC):
    """
    The contract between lifecycle logic and a blockchain node.
    Implementations MUST sign every submission with a single operator key.
    """

    signer_address: str

    @abstractmethod
    async def get_block_number(self) -> int:
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        """Receipt of a mined transaction, or None while it is not mined"""
        pass

    @abstractmethod
    async def is_transaction_known(self, tx_hash: str) -> bool:
        """True while the node still knows the transaction (pending or mined)"""
        pass

    @abstractmethod
    def sale_contract(self) -> TokenSaleContract:
        pass

    @abstractmethod
    def erc20(self, address: str) -> ERC20Token:
        pass

    @abstractmethod
    async def deploy_contract(self, abi: Sequence[dict], bytecode: str, *args: Any) -> TxHandle:
        pass

    async def close(self):
        pass


class Web3ERC20Token(ERC20Token):

    def __init__(self, client: "Web3ChainClient", address: str):
        self.client = client
        self.address = normalize_address(address, "token address")
        self._contract = client.w3.eth.contract(address=self.address, abi=ERC20_ABI)

    async def total_supply(self) -> int:
        return int(await self.client.call(self._contract.functions.totalSupply()))

    async def decimals(self) -> int:
        return int(await self.client.call(self._contract.functions.decimals()))

    async def balance_of(self, account: str) -> int:
        account = normalize_address(account, "account")
        return int(await self.client.call(self._contract.functions.balanceOf(account)))

    async def allowance(self, owner: str, spender: str) -> int:
        fn = self._contract.functions.allowance(normalize_address(owner, "owner"), normalize_address(spender, "spender"))
        return int(await self.client.call(fn))

    async def approve(self, spender: str, amount: int) -> TxHandle:
        fn = self._contract.functions.approve(normalize_address(spender, "spender"), amount)
        return await self.client.submit(fn, "approve")


class Web3TokenSaleContract(TokenSaleContract):

    def __init__(self, client: "Web3ChainClient", address: str):
        self.client = client
        self.address = normalize_address(address, "sale contract address")
        self._contract = client.w3.eth.contract(address=self.address, abi=TOKEN_SALE_ABI)

    async def get_sale(self, token_id: int) -> Sale:
        values = await self.client.call(self._contract.functions.tokens(token_id))
        return Sale.from_chain(token_id, values)

    async def add_token_sale(self, token_id: int, token: str, token_price: int, duration_seconds: int) -> TxHandle:
        fn = self._contract.functions.addTokenSale(token_id, normalize_address(token, "token address"), token_price, duration_seconds)
        return await self.client.submit(fn, "add_token_sale")

    async def deposit_tokens(self, token_id: int, amount: int) -> TxHandle:
        return await self.client.submit(self._contract.functions.depositTokens(token_id, amount), "deposit")

    async def pause_sale(self, token_id: int) -> TxHandle:
        return await self.client.submit(self._contract.functions.pauseSale(token_id), "pause")

    async def withdraw_remaining_tokens(self, token_id: int) -> TxHandle:
        return await self.client.submit(self._contract.functions.withdrawRemainingTokens(token_id), "withdraw")


class Web3ChainClient(ChainClient):
    """
    AsyncWeb3 backed client signing locally with the operator key.
    """

    def __init__(
        self,
        config: ChainClientConfig,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        w3: Optional[AsyncWeb3] = None,
    ):
        """
        Initialize the chain client.

        Args:
            config: Endpoint, signing key and sale contract address
            max_retries: Retry attempts for read calls (default from settings)
            retry_delay: Base backoff delay in seconds (default from settings)
            w3: Pre-built AsyncWeb3 instance, mainly for tests
        """
        self.config = config
        self.max_retries = settings.MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.RETRY_DELAY if retry_delay is None else retry_delay
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.endpoint_url))

        try:
            self.account = Account.from_key(config.signer_key)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid signing key: {type(e).__name__}") from None
        self.signer_address = self.account.address

        self._chain_id: Optional[int] = None
        self._sale_contract: Optional[Web3TokenSaleContract] = None

        logger.info(
            "Chain client initialized",
            endpoint_url=config.endpoint_url,
            signer=self.signer_address,
            sale_contract=config.contract_address,
        )

    @retry_on_rpc_error()
    async def call(self, fn) -> Any:
        """Execute a read-only contract function"""
        return await fn.call()

    @retry_on_rpc_error()
    async def get_block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    @retry_on_rpc_error()
    async def get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self.w3.eth.chain_id)
        return self._chain_id

    @retry_on_rpc_error()
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        try:
            raw = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        if raw is None:
            return None

        contract_address = raw.get("contractAddress")
        return TxReceipt(
            tx_hash=AsyncWeb3.to_hex(raw["transactionHash"]),
            block_number=int(raw["blockNumber"]),
            block_hash=AsyncWeb3.to_hex(raw["blockHash"]),
            status=int(raw["status"]),
            gas_used=int(raw.get("gasUsed", 0)),
            contract_address=AsyncWeb3.to_checksum_address(contract_address) if contract_address else None,
        )

    @retry_on_rpc_error()
    async def is_transaction_known(self, tx_hash: str) -> bool:
        try:
            await self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return False
        return True

    async def submit(self, fn, description: str) -> TxHandle:
        """
        Build, sign and broadcast a contract call or constructor.

        Raises:
            TransactionRevertedError: If the node refuses the call while estimating gas
            ChainClientError: For any other node failure
        """
        try:
            chain_id = await self.get_chain_id()
            nonce = await self.w3.eth.get_transaction_count(self.signer_address, "pending")
            tx = await fn.build_transaction({"from": self.signer_address, "nonce": nonce, "chainId": chain_id})
            signed = self.account.sign_transaction(tx)
            tx_hash = AsyncWeb3.to_hex(await self.w3.eth.send_raw_transaction(signed.raw_transaction))
        except ContractLogicError as e:
            logger.warning("Transaction rejected during simulation", description=description, reason=str(e))
            raise TransactionRevertedError(f"{description} rejected by the node: {e}", reason=str(e)) from e
        except TokenSaleException:
            raise
        except Exception as e:
            logger.error("Failed to submit transaction", description=description, error=str(e))
            raise ChainClientError(f"Failed to submit {description}: {e}", cause=e) from e

        logger.info("Transaction submitted", description=description, tx_hash=tx_hash, nonce=nonce)
        return TxHandle(tx_hash=tx_hash, description=description, nonce=nonce)

    def sale_contract(self) -> TokenSaleContract:
        if self._sale_contract is None:
            if not self.config.contract_address:
                raise ValueError("Sale contract address is required")
            self._sale_contract = Web3TokenSaleContract(self, self.config.contract_address)
        return self._sale_contract

    def erc20(self, address: str) -> ERC20Token:
        return Web3ERC20Token(self, address)

    async def deploy_contract(self, abi: Sequence[dict], bytecode: str, *args: Any) -> TxHandle:
        factory = self.w3.eth.contract(abi=list(abi), bytecode=bytecode)
        return await self.submit(factory.constructor(*args), "deploy")

    async def close(self):
        await self.w3.provider.disconnect()
        logger.info("Chain client closed")
