import asyncio
import logging
import time

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from clicker.config import Identity, IdentityConfig
from clicker.errors import TransportError


def counter_bytes(value: int, size: int = 24) -> bytes:
    """Fake user-info account data: 8-byte discriminator, then the counter."""
    data = bytes(8) + value.to_bytes(8, "little")
    return data + bytes(max(0, size - len(data)))


class FakeLedger:
    """In-memory stand-in for LedgerClient."""

    def __init__(self, *, clock=time.monotonic, send_error=None, blockhash_error=None,
                 account_data=None, account_error=None):
        self.clock = clock
        self.send_error = send_error
        self.blockhash_error = blockhash_error
        self.account_data = account_data
        self.account_error = account_error
        self.sent = []  # (clock(), tx)
        self.send_attempts = 0
        self.blockhashes = []
        self.gate: asyncio.Event | None = None
        self.in_flight = asyncio.Event()

    async def get_latest_blockhash(self) -> Hash:
        await asyncio.sleep(0)
        if self.blockhash_error is not None:
            raise self.blockhash_error
        h = Hash((len(self.blockhashes) + 1).to_bytes(32, "little"))
        self.blockhashes.append(h)
        return h

    async def send_transaction(self, tx) -> str:
        self.send_attempts += 1
        self.in_flight.set()
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((self.clock(), tx))
        return f"sig{len(self.sent)}"

    async def get_account_data(self, address, *, timeout=None):
        await asyncio.sleep(0)
        if self.account_error is not None:
            raise self.account_error
        return self.account_data

    def sent_by(self, signer):
        return [t for t, tx in self.sent if tx.message.account_keys[0] == signer]


async def wait_until(cond, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not cond():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def make_identity() -> Identity:
    return Identity(keypair=Keypair(), owner=Keypair().pubkey())


@pytest.fixture(autouse=True)
def _propagate_clicker_logs():
    # setup_logging() stops "clicker" propagating to root, where caplog listens
    log = logging.getLogger("clicker")
    old = log.propagate
    log.propagate = True
    yield
    log.propagate = old


@pytest.fixture
def identity() -> Identity:
    return make_identity()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def insufficient_funds() -> TransportError:
    return TransportError(
        'sendTransaction error -32002: Transaction simulation failed: '
        'Transaction results in an account (0) with insufficient funds for rent '
        '{"err": {"InsufficientFundsForRent": {"account_index": 0}}, "logs": []}'
    )


def identity_cfg(identity: Identity, min_ms: int = 0, max_ms: int = 0) -> IdentityConfig:
    return IdentityConfig(identity=identity, min_delay_ms=min_ms, max_delay_ms=max_ms)
