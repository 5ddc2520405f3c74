import enum
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional

from provably_fair import (ProvablyFairError, check_client_seed, load_chain,
                           roll_from_seed, validate_chain)

logger = logging.getLogger("hashdice.dealer")


class DealerNotReady(ProvablyFairError):
    pass


class DealerState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass(frozen=True)
class SeedReveal:
    sequence_number: int
    server_seed: str
    client_seed: str
    roll: Decimal
    previous_anchor: str  # âncora mostrada antes da aposta

    @property
    def next_anchor(self) -> str:
        # sha256(chain[n+1]) == chain[n], então a semente revelada é o novo compromisso
        return self.server_seed


@dataclass(frozen=True)
class ChainExhausted:
    game_index: int
    chain_length: int

    @property
    def message(self) -> str:
        return "Casino is out of seeds! New chain needed."


@dataclass(frozen=True)
class DealerSnapshot:
    anchor: str
    game_index: int
    remaining: int


class Dealer:
    def __init__(self):
        self.state = DealerState.UNINITIALIZED
        self._chain: Optional[List[str]] = None
        self._lock = threading.Lock()
        self.game_index = 0
        self.previous_revealed_seed: Optional[str] = None

    @classmethod
    def from_file(cls, path: str, game_index: int = 1) -> "Dealer":
        dealer = cls()
        dealer.load(load_chain(path), game_index=game_index)
        return dealer

    def load(self, chain: List[str], game_index: int = 1) -> "Dealer":
        seeds = tuple(validate_chain(list(chain)))
        if isinstance(game_index, bool) or not isinstance(game_index, int) or game_index < 1:
            raise ValueError(f"game_index must be an integer >= 1, got {game_index!r}")
        if game_index > len(seeds):
            raise ValueError(f"game_index {game_index} is past the end of a chain of {len(seeds)} entries")
        with self._lock:
            if self.state is DealerState.READY:
                raise RuntimeError("dealer already holds a chain; create a new Dealer to switch chains")
            self._chain = seeds
            self.game_index = game_index
            self.previous_revealed_seed = seeds[game_index - 1]
            self.state = DealerState.READY
        logger.info("dealer ready: anchor %s, game_index %d, %d seeds remaining",
                    self.previous_revealed_seed, game_index, self.remaining)
        return self

    def _require_ready(self):
        if self.state is not DealerState.READY:
            raise DealerNotReady("dealer has no chain loaded")

    @property
    def anchor(self) -> str:
        self._require_ready()
        return self._chain[0]

    @property
    def chain_length(self) -> int:
        self._require_ready()
        return len(self._chain)

    @property
    def remaining(self) -> int:
        self._require_ready()
        return len(self._chain) - self.game_index

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0

    def current_anchor(self) -> str:
        self._require_ready()
        return self.previous_revealed_seed

    def snapshot(self) -> DealerSnapshot:
        self._require_ready()
        with self._lock:
            return DealerSnapshot(self.previous_revealed_seed, self.game_index,
                                  len(self._chain) - self.game_index)

    def consume_next(self, client_seed: str, settle: Optional[Callable] = None):
        self._require_ready()
        client_seed = check_client_seed(client_seed)
        with self._lock:
            n = self.game_index
            if n >= len(self._chain):
                logger.warning("chain exhausted at game_index %d", n)
                return ChainExhausted(n, len(self._chain))
            seed = self._chain[n]
            # calcula (e liquida) antes de avançar: se falhar o cursor não se move
            roll = roll_from_seed(seed, client_seed, n)
            reveal = SeedReveal(n, seed, client_seed, roll, self.previous_revealed_seed)
            result = settle(reveal) if settle is not None else reveal
            self.previous_revealed_seed = seed
            self.game_index = n + 1
        logger.debug("revealed seed %d: %s", n, seed)
        return result
