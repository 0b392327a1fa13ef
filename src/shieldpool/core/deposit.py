"""
Deposit protocol: bind a fresh note into the pool.

    build()    -> note + public inputs (commitment, token, denomination bucket)
    validate() -> recompute the commitment locally (fails fast, no proving)
    prove()    -> deposit-v1 proof whose public signals echo the inputs
    submit()   -> hand the proof record to the ledger, which appends the
                  commitment

The prover shows knowledge of (amount, salt, pubkey) opening the public
commitment, without revealing them.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shieldpool.core.circuits import DEPOSIT_CIRCUIT
from shieldpool.core.commitment import CommitmentScheme
from shieldpool.core.lifecycle import PRE_SUBMISSION, ProtocolState, require_state
from shieldpool.core.note import Note
from shieldpool.exceptions import CommitmentMismatchError, InputMalformedError
from shieldpool.models.schemas import ProofRecord
from shieldpool.proving.gateway import ProofGateway
from shieldpool.utils.encoding import short_hex
from shieldpool.utils.field import require_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepositPublicInputs:
    """Public side of a deposit, in circuit signal order."""

    commitment: int
    token: int
    denomination_bucket: int

    def as_signals(self) -> List[int]:
        return [self.commitment, self.token, self.denomination_bucket]


@dataclass
class DepositDraft:
    """A deposit moving through BUILT -> VALIDATED -> PROVED -> SUBMITTED."""

    note: Note
    public_inputs: DepositPublicInputs
    state: ProtocolState = ProtocolState.BUILT
    proof: Optional[ProofRecord] = None
    leaf_index: Optional[int] = None

    @property
    def commitment(self) -> int:
        return self.public_inputs.commitment


class DepositProtocol:
    """Builds, validates, proves and submits deposits."""

    def __init__(self, scheme: CommitmentScheme, gateway: ProofGateway):
        self.scheme = scheme
        self.gateway = gateway

    def build(
        self, amount: int, token: int, denomination_bucket: int, owner_secret: int
    ) -> DepositDraft:
        """
        Create a note owned by owner_secret and its public inputs.

        Args:
            amount: Value in the token's base unit
            token: Field encoding of the token identifier
            denomination_bucket: Public anonymity-set partition
            owner_secret: Owner's secret (supplied by the key provider)

        Returns:
            DepositDraft: note + public inputs, in state BUILT

        Raises:
            InputMalformedError: If any value is not a field element
        """
        require_field(denomination_bucket, "denomination_bucket")
        owner_public_key = self.scheme.derive_public_key(owner_secret)
        note = self.scheme.create_note(amount, token, owner_public_key)
        public_inputs = DepositPublicInputs(
            commitment=self.scheme.commit(note),
            token=token,
            denomination_bucket=denomination_bucket,
        )
        logger.debug(f"Built deposit {short_hex(public_inputs.commitment)}")
        return DepositDraft(note=note, public_inputs=public_inputs)

    def validate(self, draft: DepositDraft) -> None:
        """
        Recompute the commitment from the private fields.

        Raises:
            InputMalformedError: Missing or out-of-range field, zero amount
            CommitmentMismatchError: Declared commitment or token does not
                match the note
            InvalidProtocolStateError: Draft already submitted or cancelled
        """
        require_state(draft.state, PRE_SUBMISSION, "validate deposit")

        public = draft.public_inputs
        require_field(public.commitment, "commitment")
        require_field(public.token, "token")
        require_field(public.denomination_bucket, "denomination_bucket")
        if draft.note.amount < 1:
            raise InputMalformedError("Deposit amount must be at least 1")

        if draft.note.token != public.token:
            raise CommitmentMismatchError("Declared token does not match the note")
        if self.scheme.commit(draft.note) != public.commitment:
            raise CommitmentMismatchError("Declared commitment does not match the note")

        if draft.state is ProtocolState.BUILT:
            draft.state = ProtocolState.VALIDATED

    def _witness(self, draft: DepositDraft):
        public = draft.public_inputs
        private_witness: Dict[str, int] = {
            "amount": draft.note.amount,
            "salt": draft.note.salt,
            "pubkey": draft.note.owner_public_key,
        }
        public_witness: Dict[str, int] = {
            "commitment": public.commitment,
            "token": public.token,
            "denominationId": public.denomination_bucket,
        }
        return private_witness, public_witness

    def prove(self, draft: DepositDraft) -> ProofRecord:
        """
        Validate, then prove through the gateway.

        Returns:
            ProofRecord: signals (commitment, token, denomination bucket)
        """
        self.validate(draft)
        private_witness, public_witness = self._witness(draft)
        record = self.gateway.prove(
            DEPOSIT_CIRCUIT, private_witness, public_witness, draft.public_inputs.as_signals()
        )
        draft.proof = record
        draft.state = ProtocolState.PROVED
        return record

    async def aprove(self, draft: DepositDraft) -> ProofRecord:
        """Awaitable prove(); cancellation leaves the draft unproved."""
        self.validate(draft)
        private_witness, public_witness = self._witness(draft)
        record = await self.gateway.aprove(
            DEPOSIT_CIRCUIT, private_witness, public_witness, draft.public_inputs.as_signals()
        )
        draft.proof = record
        draft.state = ProtocolState.PROVED
        return record

    def submit(self, draft: DepositDraft, pool):
        """
        Hand a proved deposit to the ledger.

        Returns:
            DepositReceipt from the ledger
        """
        require_state(draft.state, (ProtocolState.PROVED,), "submit deposit")
        receipt = pool.submit_deposit(draft.proof)
        draft.leaf_index = receipt.leaf_index
        draft.state = ProtocolState.SUBMITTED
        return receipt

    def cancel(self, draft: DepositDraft) -> None:
        """Abandon a draft that has not been submitted."""
        require_state(draft.state, PRE_SUBMISSION, "cancel deposit")
        draft.state = ProtocolState.CANCELLED
