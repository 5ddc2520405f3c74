import hmac, hashlib, json, logging, os, secrets, string
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List

logger = logging.getLogger("hashdice.provably_fair")

DIGEST_HEX_LEN = 64
ROLL_MODULUS = 10001
TWO_PLACES = Decimal("0.01")


class ProvablyFairError(Exception):
    pass


class InvalidChainSize(ProvablyFairError, ValueError):
    pass


class ChainIntegrityError(ProvablyFairError):
    pass


class MalformedInput(ProvablyFairError, ValueError):
    pass


@dataclass(frozen=True)
class VerificationResult:
    math_valid: bool
    chain_valid: bool
    calculated_roll: Decimal
    chain_hash: str

    @property
    def fair(self) -> bool:
        return self.math_valid and self.chain_valid


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def check_digest(value, name: str = "seed") -> str:
    # só aceita 64 chars hex; a caixa é normalizada para minúsculas
    if not isinstance(value, str):
        raise MalformedInput(f"{name} must be a hex string")
    if len(value) != DIGEST_HEX_LEN:
        raise MalformedInput(f"{name} must be {DIGEST_HEX_LEN} hex characters, got {len(value)}")
    if any(c not in string.hexdigits for c in value):
        raise MalformedInput(f"{name} is not hexadecimal")
    return value.lower()


def check_sequence_number(value) -> int:
    # bool é subclasse de int, rejeita explicitamente
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedInput("sequence number must be a non-negative integer")
    return value


def check_client_seed(value) -> str:
    if not isinstance(value, str):
        raise MalformedInput("client seed must be a string")
    return value


def check_roll(value) -> Decimal:
    if isinstance(value, bool):
        raise MalformedInput("roll must be numeric")
    try:
        roll = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise MalformedInput("roll must be numeric") from None
    if not roll.is_finite():
        raise MalformedInput("roll must be numeric")
    try:
        return roll.quantize(TWO_PLACES)
    except InvalidOperation:
        raise MalformedInput("roll is out of range") from None


# Gera a corrente: segredo terminal -> hash N vezes -> inverte (índice 0 = âncora pública)
def chain_from_secret(secret: str, size: int) -> List[str]:
    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        raise InvalidChainSize(f"chain size must be an integer >= 1, got {size!r}")
    current = check_digest(secret, "terminal secret")
    chain = [current]
    for _ in range(size):
        current = sha256_hex(current)
        chain.append(current)
    chain.reverse()
    return chain


def generate_chain(size: int) -> List[str]:
    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        raise InvalidChainSize(f"chain size must be an integer >= 1, got {size!r}")
    chain = chain_from_secret(secrets.token_hex(32), size)
    logger.info("generated chain of %d seeds, anchor %s", size, chain[0])
    return chain


def validate_chain(chain) -> List[str]:
    if not isinstance(chain, list) or len(chain) < 2:
        raise ChainIntegrityError("chain must be a list with an anchor and at least one seed")
    try:
        seeds = [check_digest(s, f"chain[{i}]") for i, s in enumerate(chain)]
    except MalformedInput as e:
        raise ChainIntegrityError(str(e)) from e
    for i in range(1, len(seeds)):
        if sha256_hex(seeds[i]) != seeds[i - 1]:
            raise ChainIntegrityError(f"sha256(chain[{i}]) != chain[{i - 1}]")
    return seeds


def save_chain(chain: List[str], path: str, force: bool = False) -> None:
    validate_chain(chain)
    if os.path.exists(path) and not force:
        # regerar uma corrente já publicada invalida o compromisso público
        raise FileExistsError(f"{path} already exists; refusing to overwrite a published chain")
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(chain, fh, indent=2)
    logger.info("saved chain of %d seeds to %s", len(chain) - 1, path)


def load_chain(path: str) -> List[str]:
    with open(path, encoding="utf-8") as fh:
        try:
            chain = json.load(fh)
        except json.JSONDecodeError as e:
            raise ChainIntegrityError(f"{path} is not a JSON list: {e}") from e
    seeds = validate_chain(chain)
    logger.info("loaded %d seeds from %s", len(seeds), path)
    return seeds


def roll_from_seed(server_seed: str, client_seed: str, sequence_number: int) -> Decimal:
    # HMAC(server_seed, f"{client_seed}:{nonce}") -> 4 primeiros bytes BE -> mod 10001 / 100
    server_seed = check_digest(server_seed, "server seed")
    client_seed = check_client_seed(client_seed)
    sequence_number = check_sequence_number(sequence_number)
    msg = f"{client_seed}:{sequence_number}".encode("utf-8")
    digest = hmac.new(server_seed.encode("utf-8"), msg, hashlib.sha256).digest()
    val = int.from_bytes(digest[:4], "big")
    return (Decimal(val % ROLL_MODULUS) / 100).quantize(TWO_PLACES)


def verify(claimed_anchor: str, revealed_seed: str, client_seed: str,
           sequence_number: int, claimed_roll) -> VerificationResult:
    claimed_anchor = check_digest(claimed_anchor, "anchor")
    revealed_seed = check_digest(revealed_seed, "revealed seed")
    claimed = check_roll(claimed_roll)
    calculated = roll_from_seed(revealed_seed, client_seed, sequence_number)
    chain_hash = sha256_hex(revealed_seed)
    return VerificationResult(
        math_valid=calculated == claimed,
        chain_valid=hmac.compare_digest(chain_hash, claimed_anchor),
        calculated_roll=calculated,
        chain_hash=chain_hash,
    )
