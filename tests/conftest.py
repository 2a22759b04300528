import pytest

from tokensale.config import Settings
from tokensale.models import Sale, TxHandle, TxReceipt, ZERO_ADDRESS
from tokensale.services.chain_client import ChainClient, ERC20Token, TokenSaleContract
from tokensale.services.confirmation import ConfirmationWaiter
from tokensale.services.sale_orchestrator import SaleLifecycleOrchestrator
from tokensale.utils.exceptions import TransactionRevertedError

# Digit-only addresses are already in checksum form
OPERATOR = "0x1111111111111111111111111111111111111111"
SALE_ADDRESS = "0x2222222222222222222222222222222222222222"
TOKEN_ADDRESS = "0x3333333333333333333333333333333333333333"
RECEIVER = "0x4444444444444444444444444444444444444444"
DEPLOYED_ADDRESS = "0x5555555555555555555555555555555555555555"


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    import logging
    import structlog

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
    )

    root_logger = logging.getLogger()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


class FakeChain(ChainClient):
    """
    In-memory chain: one sale contract, any number of ERC20 tokens.

    Transactions are mined the first time their receipt is polled unless an
    outcome is configured for their description:
      "revert" - mined with status 0 and no effect
      "stall"  - stays in the pending pool forever
      "drop"   - vanishes from the node without being mined
    Every get_block_number call advances the head by one block.
    """

    def __init__(self):
        self.signer_address = OPERATOR
        self.block_number = 100
        self.timestamp = 1_700_000_000
        self.sales = {}
        self.tokens = {}
        self.outcomes = {}
        self.submissions = []
        self.pending = {}
        self.receipts = {}
        self.dropped = set()
        self.closed = False
        self._counter = 0
        self._sale_contract = FakeSaleContract(self)

    # --- chain state helpers ---
    def add_token(self, address=TOKEN_ADDRESS, total_supply=1000 * 10**18, decimals=18):
        self.tokens[address] = {
            "total_supply": total_supply,
            "decimals": decimals,
            "balances": {OPERATOR: total_supply},
            "allowances": {},
        }
        return self.tokens[address]

    def sale_record(self, token_id):
        return self.sales.get(
            token_id,
            {
                "token": ZERO_ADDRESS,
                "token_price": 0,
                "total_tokens": 0,
                "tokens_sold": 0,
                "sale_end_date": 0,
                "sale_active": False,
            },
        )

    def sell(self, token_id, amount):
        self.sales[token_id]["tokens_sold"] += amount

    def descriptions(self):
        return [description for description, _ in self.submissions]

    def submit(self, description, effect, contract_address=None):
        self._counter += 1
        tx_hash = f"0x{self._counter:064x}"
        self.submissions.append((description, tx_hash))
        self.pending[tx_hash] = (description, effect, contract_address)
        return TxHandle(tx_hash=tx_hash, description=description, nonce=self._counter - 1)

    # --- ChainClient ---
    async def get_block_number(self):
        head = self.block_number
        self.block_number += 1
        return head

    async def get_transaction_receipt(self, tx_hash):
        if tx_hash in self.receipts:
            return self.receipts[tx_hash]
        if tx_hash not in self.pending:
            return None

        description, effect, contract_address = self.pending[tx_hash]
        outcome = self.outcomes.get(description, "ok")
        if outcome == "stall":
            return None
        if outcome == "drop":
            del self.pending[tx_hash]
            self.dropped.add(tx_hash)
            return None

        del self.pending[tx_hash]
        self.block_number += 1
        status = 0 if outcome == "revert" else 1
        if status:
            effect()
        receipt = TxReceipt(
            tx_hash=tx_hash,
            block_number=self.block_number,
            block_hash=f"0x{self.block_number:064x}",
            status=status,
            gas_used=21000,
            contract_address=contract_address,
        )
        self.receipts[tx_hash] = receipt
        return receipt

    async def is_transaction_known(self, tx_hash):
        return tx_hash in self.pending or tx_hash in self.receipts

    def sale_contract(self):
        return self._sale_contract

    def erc20(self, address):
        return FakeERC20(self, address)

    async def deploy_contract(self, abi, bytecode, *args):
        self.deploy_args = (abi, bytecode, args)
        return self.submit("deploy", lambda: None, contract_address=DEPLOYED_ADDRESS)

    async def close(self):
        self.closed = True


class FakeERC20(ERC20Token):

    def __init__(self, chain, address):
        self.chain = chain
        self.address = address
        self.state = chain.tokens[address]

    async def total_supply(self):
        return self.state["total_supply"]

    async def decimals(self):
        return self.state["decimals"]

    async def balance_of(self, account):
        return self.state["balances"].get(account, 0)

    async def allowance(self, owner, spender):
        return self.state["allowances"].get((owner, spender), 0)

    async def approve(self, spender, amount):
        def effect():
            self.state["allowances"][(self.chain.signer_address, spender)] = amount

        return self.chain.submit("approve", effect)


class FakeSaleContract(TokenSaleContract):
    """Simulates the TokenSale contract rules, rejecting calls the way gas estimation would"""

    def __init__(self, chain):
        self.chain = chain
        self.address = SALE_ADDRESS

    async def get_sale(self, token_id):
        record = self.chain.sale_record(token_id)
        return Sale(token_id=token_id, **record)

    async def add_token_sale(self, token_id, token, token_price, duration_seconds):
        if self.chain.sale_record(token_id)["sale_active"]:
            raise TransactionRevertedError("execution reverted: sale already active", reason="sale already active")

        def effect():
            self.chain.sales[token_id] = {
                "token": token,
                "token_price": token_price,
                "total_tokens": 0,
                "tokens_sold": 0,
                "sale_end_date": self.chain.timestamp + duration_seconds,
                "sale_active": True,
            }

        return self.chain.submit("add_token_sale", effect)

    async def deposit_tokens(self, token_id, amount):
        record = self.chain.sales[token_id]
        token = self.chain.tokens[record["token"]]
        if token["allowances"].get((OPERATOR, SALE_ADDRESS), 0) < amount:
            raise TransactionRevertedError("execution reverted: insufficient allowance", reason="insufficient allowance")

        def effect():
            token["balances"][OPERATOR] -= amount
            token["balances"][SALE_ADDRESS] = token["balances"].get(SALE_ADDRESS, 0) + amount
            token["allowances"][(OPERATOR, SALE_ADDRESS)] -= amount
            record["total_tokens"] += amount

        return self.chain.submit("deposit", effect)

    async def pause_sale(self, token_id):
        def effect():
            self.chain.sales[token_id]["sale_active"] = False

        return self.chain.submit("pause", effect)

    async def withdraw_remaining_tokens(self, token_id):
        record = self.chain.sales[token_id]
        if record["sale_active"]:
            raise TransactionRevertedError("execution reverted: sale still active", reason="sale still active")

        def effect():
            token = self.chain.tokens[record["token"]]
            remaining = record["total_tokens"] - record["tokens_sold"]
            token["balances"][SALE_ADDRESS] = token["balances"].get(SALE_ADDRESS, 0) - remaining
            token["balances"][OPERATOR] = token["balances"].get(OPERATOR, 0) + remaining
            record["total_tokens"] = record["tokens_sold"]

        return self.chain.submit("withdraw", effect)


@pytest.fixture
def chain():
    fake = FakeChain()
    fake.add_token()
    return fake


@pytest.fixture
def test_settings():
    return Settings(
        CREATE_CONFIRMATIONS=1,
        FUND_CONFIRMATIONS=1,
        WITHDRAW_CONFIRMATIONS=1,
        DEPLOY_CONFIRMATIONS=3,
    )


@pytest.fixture
def waiter(chain):
    return ConfirmationWaiter(chain, timeout=0.05, poll_interval=0.001, dropped_after=0.0)


@pytest.fixture
def orchestrator(chain, waiter, test_settings):
    return SaleLifecycleOrchestrator(chain, waiter, test_settings)


@pytest.fixture
def active_sale(chain):
    """Sale slot 1 created and active but not funded"""
    chain.sales[1] = {
        "token": TOKEN_ADDRESS,
        "token_price": 10**16,
        "total_tokens": 0,
        "tokens_sold": 0,
        "sale_end_date": chain.timestamp + 1800,
        "sale_active": True,
    }
    return chain.sales[1]
