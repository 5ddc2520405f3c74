import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    database_url: str = "sqlite:///database.db"
    chain_file: str = "chain.json"
    chain_size: int = 100  # em produção seriam milhões
    public_anchor: Optional[str] = None
    default_balance: Decimal = Decimal("1000.00")
    default_username: str = "player1"
    history_limit: int = 15
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env=None) -> "Settings":
        env = os.environ if env is None else env
        s = cls(
            database_url=env.get("DATABASE_URL", cls.database_url),
            chain_file=env.get("CHAIN_FILE", cls.chain_file),
            chain_size=int(env.get("CHAIN_SIZE", cls.chain_size)),
            public_anchor=env.get("PUBLIC_ANCHOR") or None,
            default_balance=Decimal(env.get("DEFAULT_BALANCE", str(cls.default_balance))),
            default_username=env.get("DEFAULT_USERNAME", cls.default_username),
            history_limit=int(env.get("HISTORY_LIMIT", cls.history_limit)),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )
        if s.chain_size < 1:
            raise ValueError(f"CHAIN_SIZE must be >= 1, got {s.chain_size}")
        if s.history_limit < 1:
            raise ValueError(f"HISTORY_LIMIT must be >= 1, got {s.history_limit}")
        return s


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
