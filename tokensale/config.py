from pydantic import validator
from pydantic_settings import BaseSettings
from typing import Optional, Dict, Any


class Settings(BaseSettings):
    # Network
    ALCHEMY_API_URL: str = "http://localhost:8545"
    PRIVATE_KEY: Optional[str] = None
    CONTRACT_ADDRESS: Optional[str] = None

    @validator("PRIVATE_KEY", pre=True)
    def normalize_private_key(cls, v: Optional[str]) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if v and not v.startswith("0x"):
                return f"0x{v}"
        return v

    # Deployment
    SALE_RECEIVER: Optional[str] = None

    # Confirmation waiting (seconds)
    CONFIRMATION_TIMEOUT: float = 120.0
    POLL_INTERVAL: float = 2.0
    DROPPED_AFTER: float = 60.0

    # Confirmation depth per operation
    CREATE_CONFIRMATIONS: int = 1
    FUND_CONFIRMATIONS: int = 1
    WITHDRAW_CONFIRMATIONS: int = 1
    DEPLOY_CONFIRMATIONS: int = 3

    # Payment asset precision used to parse human prices (ETH = 18)
    PAYMENT_DECIMALS: int = 18

    # Error handling for read-only RPC calls
    MAX_RETRIES: int = 3
    RETRY_DELAY: float = 1.0

    # Monitoring
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    def safe_dict(self) -> Dict[str, Any]:
        """Settings without secrets, for log output"""
        data = self.dict()
        if data.get("PRIVATE_KEY"):
            data["PRIVATE_KEY"] = "***"
        return data


settings = Settings()
