from decimal import Decimal

import pytest

from unwrap_api.services.gift_cards.codes import (
    CODE_ALPHABET,
    generate_redemption_code,
    is_valid_redemption_code,
    normalize_redemption_code,
)
from unwrap_api.services.ledger.errors import InvalidAmountError
from unwrap_api.services.ledger.units import format_wei, hash_redemption_code, normalize_hash, to_wei


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        ("1", 10**18),
        ("100.5", 100_500_000_000_000_000_000),
        ("0.000000000000000001", 1),
        (Decimal("2.25"), 2_250_000_000_000_000_000),
        (3, 3 * 10**18),
    ],
)
def test_to_wei_is_exact(amount, expected) -> None:
    assert to_wei(amount) == expected


@pytest.mark.parametrize("amount", ["abc", "", "-1", "NaN", "1e400000", "0.0000000000000000001", True])
def test_to_wei_rejects_invalid_amounts(amount) -> None:
    with pytest.raises(InvalidAmountError):
        to_wei(amount)


def test_format_wei_renders_shortest_decimal() -> None:
    assert format_wei(to_wei("100.50")) == "100.5"
    assert format_wei(to_wei("10")) == "10"
    assert format_wei(0) == "0"
    assert format_wei(1) == "0.000000000000000001"


def test_hash_redemption_code_is_keccak_of_utf8() -> None:
    # keccak256("") is a well known constant.
    assert hash_redemption_code("") == "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
    digest = hash_redemption_code("ABCD-EFGH-JKLM-NPQR")
    assert digest.startswith("0x")
    assert len(digest) == 66
    assert digest != hash_redemption_code("abcd-efgh-jklm-npqr")


def test_normalize_hash_accepts_bytes_and_unprefixed_hex() -> None:
    raw = bytes(range(32))
    assert normalize_hash(raw) == "0x" + raw.hex()
    assert normalize_hash(raw.hex().upper()) == "0x" + raw.hex()


def test_generated_codes_use_grouped_format() -> None:
    codes = {generate_redemption_code() for _ in range(200)}

    assert len(codes) == 200
    for code in codes:
        assert is_valid_redemption_code(code)
        assert set(code.replace("-", "")) <= set(CODE_ALPHABET)


def test_normalize_redemption_code_trims_and_uppercases() -> None:
    assert normalize_redemption_code("  abcd-efgh-jklm-npqr \n") == "ABCD-EFGH-JKLM-NPQR"
    assert not is_valid_redemption_code("ABCD-EFGH-JKLM")
