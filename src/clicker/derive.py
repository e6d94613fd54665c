"""Program-derived addresses for the click program's accounts.

The address for a seed set is the first candidate, trying bump 255 down to 1,
that lands off the ed25519 curve, so no private key can exist for it. Same
inputs always give the same (address, bump); the program relies on that to
find the account.
"""
from collections.abc import Sequence

from solders.pubkey import Pubkey

import clicker.constants as C
from clicker.errors import DerivationExhausted

MAX_SEED_LEN = 32
MAX_SEEDS = 16


def _check_seeds(seeds: Sequence[bytes]) -> None:
    # The bump takes one of the 16 seed slots
    if len(seeds) >= MAX_SEEDS:
        raise ValueError(f"Too many seeds: {len(seeds)} (max {MAX_SEEDS - 1})")
    for s in seeds:
        if len(s) > MAX_SEED_LEN:
            raise ValueError(f"Seed longer than {MAX_SEED_LEN} bytes: {len(s)}")


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey | None:
    """Candidate address for seeds (bump included), or None if it is on the curve."""
    try:
        return Pubkey.create_program_address(seeds, program_id)
    except Exception:
        # solders raises PubkeyError (not exported) for on-curve results; seed
        # limits are checked before we get here, so that is the only failure left
        return None


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> tuple[Pubkey, int]:
    _check_seeds(seeds)
    for bump in range(255, 0, -1):
        address = create_program_address([*seeds, bytes([bump])], program_id)
        if address is not None:
            return address, bump
    raise DerivationExhausted(f"No valid bump for seeds {[bytes(s) for s in seeds]!r} under {program_id}")


def program_id() -> Pubkey:
    return Pubkey.from_string(C.PROGRAM_ID)


def _program(program: Pubkey | None) -> Pubkey:
    return program if program is not None else program_id()


def user_info_address(owner: Pubkey, program: Pubkey | None = None) -> tuple[Pubkey, int]:
    return find_program_address([C.USER_SEED, bytes(owner)], _program(program))


def clicker_info_address(signer: Pubkey, program: Pubkey | None = None) -> tuple[Pubkey, int]:
    return find_program_address([C.CLICKER_SEED, bytes(signer)], _program(program))


def configuration_address(program: Pubkey | None = None) -> tuple[Pubkey, int]:
    return find_program_address([C.CONFIGURATION_SEED], _program(program))
