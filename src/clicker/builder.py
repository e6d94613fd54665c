"""Build, sign and submit the click transaction.

The instruction names five accounts in a fixed order with fixed flags. The
program checks both, so the order below is part of the wire contract:

    0. clicker info    read-only
    1. user info       writable
    2. configuration   read-only
    3. signer          writable, signer
    4. sysvar instructions  read-only
"""
import logging
import random
from dataclasses import dataclass

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.sysvar import INSTRUCTIONS
from solders.transaction import Transaction

import clicker.constants as C
from clicker import derive
from clicker.config import Identity
from clicker.errors import FreshnessFetchFailed, RequestAssemblyFailed, TransportError
from clicker.payload import click_data
from clicker.rpc import LedgerClient

log = logging.getLogger("clicker.builder")


@dataclass(slots=True)
class SignedRequest:
    tx: Transaction
    blockhash: Hash

    @property
    def signature(self) -> str:
        return str(self.tx.signatures[0])


@dataclass(slots=True)
class SubmissionResult:
    outcome: C.Outcome
    detail: str | None = None
    signature: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == C.Outcome.SUCCESS


def classify_error(message: str) -> SubmissionResult:
    if C.INSUFFICIENT_FUNDS_MARKER in message:
        return SubmissionResult(C.Outcome.INSUFFICIENT_RESOURCE, detail=message)
    return SubmissionResult(C.Outcome.TRANSIENT_FAILURE, detail=message)


def click_instruction(identity: Identity, data: bytes, program: Pubkey) -> Instruction:
    clicker_info, _ = derive.clicker_info_address(identity.signer, program)
    user_info, _ = derive.user_info_address(identity.owner, program)
    configuration, _ = derive.configuration_address(program)
    accounts = [
        AccountMeta(clicker_info, is_signer=False, is_writable=False),
        AccountMeta(user_info, is_signer=False, is_writable=True),
        AccountMeta(configuration, is_signer=False, is_writable=False),
        AccountMeta(identity.signer, is_signer=True, is_writable=True),
        AccountMeta(INSTRUCTIONS, is_signer=False, is_writable=False),
    ]
    return Instruction(program, data, accounts)


class RequestBuilder:
    def __init__(self, client: LedgerClient, *, program: Pubkey | None = None, rng: random.Random | None = None):
        self.client = client
        self.program = program if program is not None else derive.program_id()
        self.rng = rng

    def build(self, identity: Identity, blockhash: Hash) -> SignedRequest:
        ix = click_instruction(identity, click_data(self.rng), self.program)
        try:
            msg = Message.new_with_blockhash([ix], identity.signer, blockhash)
            tx = Transaction([identity.keypair], msg, blockhash)
        except Exception as e:
            raise RequestAssemblyFailed(f"could not assemble click for {identity.signer}: {e}") from e
        return SignedRequest(tx=tx, blockhash=blockhash)

    async def fresh_blockhash(self) -> Hash:
        # Never cached: the node rejects requests that reference an expired blockhash
        try:
            return await self.client.get_latest_blockhash()
        except FreshnessFetchFailed:
            raise
        except TransportError as e:
            raise FreshnessFetchFailed(f"blockhash fetch failed: {e}") from e

    async def click(self, identity: Identity) -> SubmissionResult:
        """Fetch a blockhash, build, sign and submit one click.

        Submission errors are classified into the result. Blockhash and
        assembly errors are raised for the caller to handle.
        """
        blockhash = await self.fresh_blockhash()
        req = self.build(identity, blockhash)
        try:
            signature = await self.client.send_transaction(req.tx)
        except TransportError as e:
            return classify_error(str(e))
        return SubmissionResult(C.Outcome.SUCCESS, signature=signature or req.signature)
