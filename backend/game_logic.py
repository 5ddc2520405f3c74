from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from provably_fair import ProvablyFairError, TWO_PLACES

CONDITIONS = ("over", "under")
HOUSE_NUMERATOR = Decimal(99)  # 1% de vantagem da casa


class InvalidBetParameters(ProvablyFairError, ValueError):
    pass


@dataclass(frozen=True)
class BetRequest:
    bet_amount: Decimal
    target: Decimal
    condition: str
    client_seed: str

    @classmethod
    def from_json(cls, data: dict) -> "BetRequest":
        # 'nonce' vindo do cliente é ignorado de propósito
        try:
            amount = _to_decimal(data.get("betAmount"))
            target = _to_decimal(data.get("target"))
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidBetParameters("betAmount and target must be numbers") from None
        return cls(amount, target, data.get("condition"), data.get("clientSeed"))


@dataclass(frozen=True)
class BetOutcome:
    sequence_number: int
    server_seed: str
    client_seed: str
    roll: Decimal
    is_win: bool
    multiplier: Decimal
    profit: Decimal
    bet_amount: Decimal
    target: Decimal
    condition: str
    previous_anchor: str

    @property
    def next_anchor(self) -> str:
        return self.server_seed

    @property
    def payout(self) -> Decimal:
        return self.bet_amount + self.profit


def _to_decimal(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise TypeError("missing number")
    d = Decimal(str(value))
    if not d.is_finite():
        raise ValueError("not finite")
    return d


def in_cents(value: Decimal) -> bool:
    # no máximo 2 casas, como as colunas Numeric(_, 2)
    try:
        return value == value.quantize(TWO_PLACES)
    except InvalidOperation:
        return False


def validate_bet(bet: BetRequest, balance) -> BetRequest:
    if bet.bet_amount <= 0:
        raise InvalidBetParameters("Bet amount must be positive")
    if not in_cents(bet.bet_amount):
        raise InvalidBetParameters("Bet amount must have at most 2 decimal places")
    if bet.bet_amount > Decimal(str(balance)):
        raise InvalidBetParameters("Insufficient funds")
    if bet.condition not in CONDITIONS:
        raise InvalidBetParameters("condition must be 'over' or 'under'")
    if not (0 < bet.target < 100):
        raise InvalidBetParameters("target must be between 0 and 100")
    if not in_cents(bet.target):
        raise InvalidBetParameters("target must have at most 2 decimal places")
    if not isinstance(bet.client_seed, str) or not bet.client_seed:
        raise InvalidBetParameters("clientSeed is required")
    return bet


def payout_multiplier(target: Decimal, condition: str) -> Decimal:
    if condition == "over":
        return HOUSE_NUMERATOR / (100 - target)
    if condition == "under":
        return HOUSE_NUMERATOR / target
    raise InvalidBetParameters("condition must be 'over' or 'under'")


def is_winning_roll(roll: Decimal, target: Decimal, condition: str) -> bool:
    if condition == "over":
        return roll > target
    return roll < target


def settle(bet: BetRequest, reveal) -> BetOutcome:
    win = is_winning_roll(reveal.roll, bet.target, bet.condition)
    multiplier = payout_multiplier(bet.target, bet.condition)
    if win:
        profit = bet.bet_amount * multiplier - bet.bet_amount
    else:
        profit = -bet.bet_amount
    return BetOutcome(
        sequence_number=reveal.sequence_number,
        server_seed=reveal.server_seed,
        client_seed=reveal.client_seed,
        roll=reveal.roll,
        is_win=win,
        multiplier=multiplier.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
        profit=profit.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        bet_amount=bet.bet_amount,
        target=bet.target,
        condition=bet.condition,
        previous_anchor=reveal.previous_anchor,
    )
