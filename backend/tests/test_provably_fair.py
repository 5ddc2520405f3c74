import hashlib
import json
import random
from decimal import Decimal

import pytest

from conftest import SECRET, reference_roll
from provably_fair import (ChainIntegrityError, InvalidChainSize, MalformedInput,
                           chain_from_secret, generate_chain, load_chain,
                           roll_from_seed, save_chain, sha256_hex,
                           validate_chain, verify)


def flip_char(s, i=0):
    c = "0" if s[i] != "0" else "1"
    return s[:i] + c + s[i + 1:]


@pytest.mark.parametrize("size", [1, 2, 5, 64])
def test_generated_chain_links(size):
    chain = generate_chain(size)
    assert len(chain) == size + 1
    for i in range(1, len(chain)):
        assert hashlib.sha256(chain[i].encode()).hexdigest() == chain[i - 1]


def test_generated_chains_differ():
    assert generate_chain(3)[0] != generate_chain(3)[0]


@pytest.mark.parametrize("size", [0, -1, True, 2.5])
def test_invalid_chain_size(size):
    with pytest.raises(InvalidChainSize):
        generate_chain(size)


def test_chain_from_secret_layout():
    chain = chain_from_secret(SECRET, 5)
    assert chain[5] == SECRET
    assert chain[4] == sha256_hex(SECRET)
    assert chain[3] == sha256_hex(chain[4])
    assert chain[0] == sha256_hex(chain[1])


def test_validate_chain_reports_broken_link(chain):
    broken = list(chain)
    broken[3] = flip_char(broken[3])
    with pytest.raises(ChainIntegrityError, match=r"chain\[3\]"):
        validate_chain(broken)


@pytest.mark.parametrize("bad", [[], ["ab" * 32], "not a list", [SECRET, "xyz"]])
def test_validate_chain_rejects_garbage(bad):
    with pytest.raises(ChainIntegrityError):
        validate_chain(bad)


def test_save_and_load_chain(tmp_path, chain):
    path = tmp_path / "chain.json"
    save_chain(chain, str(path))
    assert json.loads(path.read_text()) == chain
    assert load_chain(str(path)) == chain


def test_save_chain_refuses_overwrite(tmp_path, chain):
    path = tmp_path / "chain.json"
    save_chain(chain, str(path))
    other = chain_from_secret("ab" * 32, 5)
    with pytest.raises(FileExistsError):
        save_chain(other, str(path))
    save_chain(other, str(path), force=True)
    assert load_chain(str(path)) == other


def test_load_chain_rejects_tampered_file(tmp_path, chain):
    path = tmp_path / "chain.json"
    tampered = list(chain)
    tampered[2] = flip_char(tampered[2], 10)
    path.write_text(json.dumps(tampered))
    with pytest.raises(ChainIntegrityError):
        load_chain(str(path))
    path.write_text("{not json")
    with pytest.raises(ChainIntegrityError):
        load_chain(str(path))


def test_roll_matches_independent_implementation(chain):
    roll = roll_from_seed(chain[1], "abc", 1)
    assert float(roll) == reference_roll(chain[1], "abc", 1)
    assert roll == roll_from_seed(chain[1], "abc", 1)


def test_roll_changes_with_each_input(chain):
    base = roll_from_seed(chain[1], "abc", 1)
    variants = [
        roll_from_seed(chain[2], "abc", 1),
        roll_from_seed(chain[1], "abd", 1),
        roll_from_seed(chain[1], "abc", 2),
    ]
    # uma colisão isolada é possível (1 em 10001), as três juntas não
    assert any(v != base for v in variants)


def test_roll_range_and_precision():
    rng = random.Random(1234)
    for _ in range(100_000):
        seed = "%064x" % rng.getrandbits(256)
        roll = roll_from_seed(seed, str(rng.getrandbits(32)), rng.randrange(1, 10**6))
        assert Decimal("0.00") <= roll <= Decimal("100.00")
        assert roll.as_tuple().exponent == -2


def test_verify_round_trip(chain):
    roll = roll_from_seed(chain[1], "abc", 1)
    result = verify(chain[0], chain[1], "abc", 1, float(roll))
    assert result.math_valid and result.chain_valid and result.fair
    assert result.chain_hash == chain[0]


def test_verify_accepts_two_decimal_representation(chain):
    roll = roll_from_seed(chain[2], "seed", 2)
    assert verify(chain[1], chain[2], "seed", 2, f"{roll:.2f}").math_valid
    assert verify(chain[1], chain[2], "seed", 2, str(roll)).math_valid


@pytest.mark.parametrize("pos", [0, 17, 63])
def test_verify_detects_tampered_seed(chain, pos):
    roll = roll_from_seed(chain[1], "abc", 1)
    result = verify(chain[0], flip_char(chain[1], pos), "abc", 1, roll)
    assert result.chain_valid is False
    assert result.fair is False


def test_verify_detects_tampered_roll(chain):
    roll = roll_from_seed(chain[1], "abc", 1)
    result = verify(chain[0], chain[1], "abc", 1, roll + Decimal("0.01"))
    assert result.math_valid is False
    assert result.chain_valid is True


def test_verify_wrong_anchor_keeps_math(chain):
    roll = roll_from_seed(chain[2], "abc", 2)
    result = verify(chain[0], chain[2], "abc", 2, roll)
    assert result.math_valid is True
    assert result.chain_valid is False


MALFORMED = [
    {"claimed_anchor": "zz" * 32},
    {"claimed_anchor": "ab" * 31},
    {"claimed_anchor": None},
    {"revealed_seed": "g" * 64},
    {"revealed_seed": 12345},
    {"client_seed": 123},
    {"sequence_number": "1"},
    {"sequence_number": -1},
    {"sequence_number": 1.5},
    {"sequence_number": True},
    {"claimed_roll": "twelve"},
    {"claimed_roll": None},
    {"claimed_roll": float("nan")},
    {"claimed_roll": "1e30"},
    {"claimed_roll": 1e30},
]


@pytest.mark.parametrize("override", MALFORMED)
def test_verify_rejects_malformed_input(chain, override):
    kw = dict(claimed_anchor=chain[0], revealed_seed=chain[1], client_seed="abc",
              sequence_number=1, claimed_roll="1.00")
    kw.update(override)
    with pytest.raises(MalformedInput):
        verify(**kw)


def test_uppercase_hex_is_accepted(chain):
    roll = roll_from_seed(chain[1], "abc", 1)
    assert verify(chain[0].upper(), chain[1].upper(), "abc", 1, roll).fair
