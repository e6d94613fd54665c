"""Instruction data encoding.

Each opcode is written as one unsigned byte, in order, with no padding. The
click instruction is the fixed discriminator plus a random trailing byte so
that otherwise identical requests still differ in content.
"""
import random
from collections.abc import Iterable

import clicker.constants as C
from clicker import randoms
from clicker.errors import EncodingOverflow


def encode(opcodes: Iterable[int]) -> bytes:
    out = bytearray()
    for i, op in enumerate(opcodes):
        if isinstance(op, bool) or not isinstance(op, int):
            raise EncodingOverflow(f"opcode[{i}]={op!r} is not an integer")
        if not 0 <= op <= 0xFF:
            raise EncodingOverflow(f"opcode[{i}]={op} does not fit in one byte")
        out.append(op)
    return bytes(out)


def click_data(rng: random.Random | None = None) -> bytes:
    nonce = (rng or randoms.rng()).randrange(256)
    return encode([*C.CLICK_DISCRIMINATOR, nonce])
