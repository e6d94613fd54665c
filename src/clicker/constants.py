from typing import Final
from enum import StrEnum

PROGRAM_ID: Final = "turboe9kMc3mSR8BosPkVzoHUfn5RVNzZhkrT2hdGxN"
DEFAULT_RPC_URL: Final = "https://eclipse.lgns.net/"

# Seeds the program uses to locate its accounts
USER_SEED: Final = b"user"
CLICKER_SEED: Final = b"clicker"
CONFIGURATION_SEED: Final = b"configuration"

# Instruction discriminator for "click"; a random nonce byte is appended per request
CLICK_DISCRIMINATOR: Final = (11, 147, 179, 178, 145, 118, 45, 186)

# Substring the ledger puts in preflight errors when the signer can't pay rent
INSUFFICIENT_FUNDS_MARKER: Final = "InsufficientFundsForRent"

# Counter ("grass") lives at bytes 8..16 of the user-info account, after the discriminator
COUNTER_OFFSET: Final = 8
COUNTER_SIZE: Final = 8

RPC_TIMEOUT = 10.0
SUBMIT_TIMEOUT = 20.0
COUNTER_TIMEOUT = 20.0
COUNTER_REFRESH = 60.0  # seconds between counter reads while clicking
TRANSIENT_BACKOFF = 5.0  # seconds

ACTIVE_WINDOW_MINUTES = (60.0, 120.0)
COOLDOWN_WINDOW_MINUTES = (10.0, 30.0)


class SchedulerPhase(StrEnum):
    IDLE      = "IDLE"
    RUNNING   = "RUNNING"
    COOLING   = "COOLING"
    EXHAUSTED = "EXHAUSTED"
    STOPPED   = "STOPPED"


class Outcome(StrEnum):
    SUCCESS               = "SUCCESS"
    INSUFFICIENT_RESOURCE = "INSUFFICIENT_RESOURCE"
    TRANSIENT_FAILURE     = "TRANSIENT_FAILURE"


__all__ = [
    "ACTIVE_WINDOW_MINUTES",
    "CLICKER_SEED",
    "CLICK_DISCRIMINATOR",
    "CONFIGURATION_SEED",
    "COOLDOWN_WINDOW_MINUTES",
    "COUNTER_OFFSET",
    "COUNTER_REFRESH",
    "COUNTER_SIZE",
    "COUNTER_TIMEOUT",
    "DEFAULT_RPC_URL",
    "INSUFFICIENT_FUNDS_MARKER",
    "PROGRAM_ID",
    "RPC_TIMEOUT",
    "SUBMIT_TIMEOUT",
    "TRANSIENT_BACKOFF",
    "USER_SEED",

    ######
    "Outcome",
    "SchedulerPhase",
]
