import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

import clicker.constants as C
from clicker import derive
from clicker.errors import DerivationExhausted

PROGRAM = Pubkey.from_string(C.PROGRAM_ID)


def test_find_program_address_is_deterministic():
    key = bytes(Keypair().pubkey())
    first = derive.find_program_address([b"user", key], PROGRAM)
    for _ in range(5):
        assert derive.find_program_address([b"user", key], PROGRAM) == first


@pytest.mark.parametrize("seeds", [
    [b"configuration"],
    [b"user", bytes(32)],
    [b"clicker", bytes(range(32))],
])
def test_matches_solders_derivation(seeds):
    assert derive.find_program_address(seeds, PROGRAM) == Pubkey.find_program_address(seeds, PROGRAM)


def test_derived_address_is_off_curve():
    address, bump = derive.configuration_address(PROGRAM)
    assert not address.is_on_curve()
    assert 1 <= bump <= 255


def test_seed_kind_changes_address():
    key = Keypair().pubkey()
    user, _ = derive.user_info_address(key, PROGRAM)
    clicker, _ = derive.clicker_info_address(key, PROGRAM)
    assert user != clicker


def test_program_id_changes_address():
    other = Keypair().pubkey()
    assert derive.configuration_address(PROGRAM) != derive.configuration_address(other)


def test_default_program_id():
    assert derive.configuration_address() == derive.configuration_address(PROGRAM)


def test_exhausted_when_every_bump_is_on_curve(monkeypatch):
    calls = []

    def on_curve(seeds, program_id):
        calls.append(seeds[-1])
        return None

    monkeypatch.setattr(derive, "create_program_address", on_curve)
    with pytest.raises(DerivationExhausted):
        derive.find_program_address([b"configuration"], PROGRAM)
    assert calls[0] == bytes([255])
    assert calls[-1] == bytes([1])
    assert len(calls) == 255


def test_rejects_oversized_seed():
    with pytest.raises(ValueError, match="Seed longer"):
        derive.find_program_address([bytes(33)], PROGRAM)


def test_rejects_too_many_seeds():
    with pytest.raises(ValueError, match="Too many seeds"):
        derive.find_program_address([b"x"] * 16, PROGRAM)


def _seeds_with_skipped_bump():
    for i in range(256):
        seeds = [b"clicker", bytes([i])]
        _, bump = Pubkey.find_program_address(seeds, PROGRAM)
        if bump < 255:
            return seeds, bump
    raise AssertionError("every seed found a bump at 255")


def test_create_program_address_on_curve_is_none():
    seeds, bump = _seeds_with_skipped_bump()
    assert derive.create_program_address([*seeds, bytes([bump + 1])], PROGRAM) is None


def test_create_program_address_off_curve():
    seeds, bump = _seeds_with_skipped_bump()
    expected, _ = Pubkey.find_program_address(seeds, PROGRAM)
    assert derive.create_program_address([*seeds, bytes([bump])], PROGRAM) == expected
    assert derive.find_program_address(seeds, PROGRAM) == (expected, bump)
