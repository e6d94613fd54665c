import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from solders.keypair import Keypair
from solders.pubkey import Pubkey

import clicker.constants as C
from clicker.errors import ConfigParseError

log = logging.getLogger("clicker.config")

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"


@dataclass(frozen=True, slots=True)
class Identity:
    keypair: Keypair
    owner: Pubkey

    @property
    def signer(self) -> Pubkey:
        return self.keypair.pubkey()


@dataclass(frozen=True, slots=True)
class IdentityConfig:
    identity: Identity
    min_delay_ms: int = 0
    max_delay_ms: int = 0


def parse_private_key(key_str: str) -> bytes:
    """Parse "[1, 2, 3, ...]" into raw bytes."""
    raw = key_str.strip().strip("[]")
    if not raw.strip():
        raise ConfigParseError("private key is empty")
    out = bytearray()
    for part in raw.split(","):
        try:
            n = int(part.strip())
        except ValueError as e:
            raise ConfigParseError(f"private key element {part.strip()!r} is not an integer") from e
        if not 0 <= n <= 255:
            raise ConfigParseError(f"private key element {n} is out of byte range")
        out.append(n)
    return bytes(out)


def parse_identity(rec: dict[str, Any]) -> IdentityConfig:
    try:
        owner_str = rec["owner"]
        key_str = rec["private_key"]
    except KeyError as e:
        raise ConfigParseError(f"identity is missing {e.args[0]!r}") from e

    key_bytes = parse_private_key(key_str)
    if len(key_bytes) != 64:
        raise ConfigParseError(f"private key must be 64 bytes, got {len(key_bytes)}")
    try:
        keypair = Keypair.from_bytes(key_bytes)
    except Exception as e:
        raise ConfigParseError(f"invalid keypair bytes: {e}") from e
    try:
        owner = Pubkey.from_string(owner_str)
    except Exception as e:
        raise ConfigParseError(f"invalid owner public key {owner_str!r}") from e

    try:
        min_delay = int(rec.get("min_delay_ms", 0))
        max_delay = int(rec.get("max_delay_ms", 0))
    except (TypeError, ValueError) as e:
        raise ConfigParseError(f"delay bounds must be integers: {e}") from e

    return IdentityConfig(identity=Identity(keypair=keypair, owner=owner),
                          min_delay_ms=min_delay,
                          max_delay_ms=max_delay)


def load_identities(records: list[dict[str, Any]]) -> list[tuple[str, IdentityConfig]]:
    """Parse identity records into (task_id, config) pairs.

    A bad record only knocks out itself; its task id is still consumed so the
    numbering matches the order in the file.
    """
    out = []
    for i, rec in enumerate(records, start=1):
        task_id = f"task{i}"
        try:
            out.append((task_id, parse_identity(rec)))
        except ConfigParseError as e:
            log.error("%s: skipping identity: %s", task_id, e)
    return out


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    path = Path(path or os.getenv("CLICKER_CONFIG", config_file))
    cfg = tomllib.loads(path.read_text())

    rpc = cfg.setdefault("rpc", {})
    rpc["url"] = os.getenv("RPC_URL", rpc.get("url", C.DEFAULT_RPC_URL))
    rpc.setdefault("timeout", C.RPC_TIMEOUT)
    rpc.setdefault("submit_timeout", C.SUBMIT_TIMEOUT)
    rpc.setdefault("commitment", "confirmed")

    cfg.setdefault("program", {}).setdefault("id", C.PROGRAM_ID)

    sched = cfg.setdefault("schedule", {})
    sched["active_minutes"] = tuple(sched.get("active_minutes", C.ACTIVE_WINDOW_MINUTES))
    sched["cooldown_minutes"] = tuple(sched.get("cooldown_minutes", C.COOLDOWN_WINDOW_MINUTES))
    sched.setdefault("transient_backoff", C.TRANSIENT_BACKOFF)
    sched.setdefault("counter_refresh", C.COUNTER_REFRESH)

    cfg.setdefault("identities", [])
    return cfg
