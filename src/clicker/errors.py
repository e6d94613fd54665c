"""Error types raised by the click pipeline.

Everything derives from ClickerError so callers at a task boundary can log
and carry on without swallowing unrelated bugs.
"""


class ClickerError(Exception):
    pass


class ConfigParseError(ClickerError):
    """Malformed identity record (bad key material, missing field)."""


class DerivationExhausted(ClickerError):
    """No bump in 255..1 produced an off-curve program address."""


class EncodingOverflow(ClickerError):
    """An opcode did not fit in a single byte. Indicates a bug, not a network problem."""


class RequestAssemblyFailed(ClickerError):
    pass


class TransportError(ClickerError):
    """RPC call failed: connection problem, timeout, or JSON-RPC error object."""


class FreshnessFetchFailed(TransportError):
    pass
