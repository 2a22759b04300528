"""
Main entry point for token sale operations.
"""

import asyncio

import structlog

from .config import settings
from .services.chain_client import ChainClientConfig, Web3ChainClient
from .services.confirmation import ConfirmationWaiter
from .services.sale_orchestrator import SaleLifecycleOrchestrator
from .utils.amounts import parse_units
from .utils.exceptions import InvalidInputError, TokenSaleException
from .utils.logging import setup_logging


def build_orchestrator() -> SaleLifecycleOrchestrator:
    """Wire settings, chain client and waiter into an orchestrator"""
    client = Web3ChainClient(ChainClientConfig.from_settings(settings))
    waiter = ConfirmationWaiter(client, settings=settings)
    return SaleLifecycleOrchestrator(client, waiter, settings)


async def run_command(command: str, **params):
    orchestrator = build_orchestrator()
    try:
        if command == "deploy":
            receiver = params.get("receiver") or settings.SALE_RECEIVER
            if not receiver:
                raise InvalidInputError("Sale receiver address is required for deployment")
            return await orchestrator.deploy_sale_contract(receiver, params["artifact"])
        if command == "create":
            price = parse_units(params["price"], settings.PAYMENT_DECIMALS)
            return await orchestrator.create_sale(
                params["token_id"], params["token"], price, params["duration_minutes"]
            )
        if command == "fund":
            return await orchestrator.fund_sale(params["token_id"])
        if command == "withdraw":
            return await orchestrator.pause_and_withdraw(params["token_id"])
        if command == "status":
            return await orchestrator.get_sale(params["token_id"])
        raise InvalidInputError(f"Unknown command: {command}")
    finally:
        await orchestrator.client.close()


def main(command: str, debug: bool = False, **params):
    """Run one lifecycle command and return its result"""
    setup_logging("DEBUG" if debug else settings.LOG_LEVEL)

    logger = structlog.get_logger()
    logger.info("Starting token sale operation", command=command, config=settings.safe_dict())

    try:
        result = asyncio.run(run_command(command, **params))
    except TokenSaleException as e:
        logger.error("Token sale operation failed", command=command, error=e.message, **e.context())
        raise
    except Exception as e:
        logger.error("Unhandled exception", command=command, error=str(e))
        raise

    logger.info("Token sale operation completed", command=command, result=result.to_dict())
    return result
