"""
Spend protocol: consume one note, produce exactly one new note.

The proof shows, without revealing which leaf:
    - the input commitment is in the accumulator under `root`
    - the prover knows the owner secret of the input note
    - `nullifier` = H(owner_secret, salt) of that note
    - output amount == input amount (1-in-1-out, no fee, no change)
    - `newCommitment` commits to the output note with the same token

Double-spend protection lives in the ledger: a proof is only ever accepted
once because its nullifier is. This module keeps no spend history.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shieldpool.core.circuits import spend_circuit
from shieldpool.core.commitment import CommitmentScheme
from shieldpool.core.lifecycle import PRE_SUBMISSION, ProtocolState, require_state
from shieldpool.core.merkle_tree import MerkleAccumulator, MerkleWitness
from shieldpool.core.note import Note
from shieldpool.exceptions import (
    CommitmentMismatchError,
    ConservationViolatedError,
    InputMalformedError,
    MerkleWitnessInvalidError,
    NullifierMismatchError,
)
from shieldpool.models.schemas import ProofRecord
from shieldpool.proving.gateway import ProofGateway
from shieldpool.utils.encoding import short_hex
from shieldpool.utils.field import require_field, require_fields

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpendPublicInputs:
    """Public side of a spend, in circuit signal order."""

    root: int
    nullifier: int
    token: int
    denomination_bucket: int
    new_commitment: int

    def as_signals(self) -> List[int]:
        return [
            self.root,
            self.nullifier,
            self.token,
            self.denomination_bucket,
            self.new_commitment,
        ]


@dataclass
class SpendDraft:
    """
    Witness bundle for one spend.

    owner_secret is kept out of repr().
    """

    input_note: Note
    owner_secret: int = field(repr=False)
    witness: MerkleWitness
    output_note: Note
    nullifier: int
    new_commitment: int
    denomination_bucket: int
    state: ProtocolState = ProtocolState.BUILT
    proof: Optional[ProofRecord] = None
    leaf_index: Optional[int] = None

    @property
    def root(self) -> int:
        return self.witness.root

    @property
    def public_inputs(self) -> SpendPublicInputs:
        return SpendPublicInputs(
            root=self.witness.root,
            nullifier=self.nullifier,
            token=self.input_note.token,
            denomination_bucket=self.denomination_bucket,
            new_commitment=self.new_commitment,
        )


class SpendProtocol:
    """Builds, validates, proves and submits spends against one accumulator."""

    def __init__(
        self,
        scheme: CommitmentScheme,
        gateway: ProofGateway,
        accumulator: MerkleAccumulator,
    ):
        self.scheme = scheme
        self.gateway = gateway
        self.accumulator = accumulator
        self.circuit = spend_circuit(accumulator.depth)

    def build(
        self,
        input_note: Note,
        owner_secret: int,
        output_amount: int,
        output_owner_public_key: int,
        denomination_bucket: int = 0,
    ) -> SpendDraft:
        """
        Assemble the witness bundle for spending input_note.

        Args:
            input_note: Note being consumed (must be in the accumulator)
            owner_secret: Secret of the input note's owner
            output_amount: Value of the output note
            output_owner_public_key: Recipient's public identifier
            denomination_bucket: Public anonymity-set partition

        Returns:
            SpendDraft in state BUILT

        Raises:
            LeafNotFoundError: If the input commitment is not in the accumulator
            InputMalformedError: If any value is not a field element
        """
        require_field(owner_secret, "owner_secret")
        require_field(denomination_bucket, "denomination_bucket")

        nullifier = self.scheme.nullify(owner_secret, input_note.salt)
        witness = self.accumulator.witness_for_commitment(self.scheme.commit(input_note))
        output_note = self.scheme.create_note(
            amount=output_amount,
            token=input_note.token,
            owner_public_key=output_owner_public_key,
        )
        new_commitment = self.scheme.commit(output_note)

        logger.debug(
            f"Built spend of leaf {witness.leaf_index} -> {short_hex(new_commitment)}"
        )
        return SpendDraft(
            input_note=input_note,
            owner_secret=owner_secret,
            witness=witness,
            output_note=output_note,
            nullifier=nullifier,
            new_commitment=new_commitment,
            denomination_bucket=denomination_bucket,
        )

    def validate(self, draft: SpendDraft) -> None:
        """
        Re-derive and check every public value before proving.

        Checks run in this order, each with its own error:
            (a) NullifierMismatchError: the secret does not own the input
                note, or the nullifier is not H(secret, salt)
            (b) CommitmentMismatchError: new commitment does not open to the
                output note under the input token
            (c) MerkleWitnessInvalidError: witness does not fold to its root,
                or the root is not a recent accumulator root
            (d) ConservationViolatedError: output amount != input amount

        Raises:
            InputMalformedError: Structural problems, before any of the above
            InvalidProtocolStateError: Draft already submitted or cancelled
        """
        require_state(draft.state, PRE_SUBMISSION, "validate spend")

        require_field(draft.owner_secret, "owner_secret")
        require_field(draft.nullifier, "nullifier")
        require_field(draft.new_commitment, "new_commitment")
        require_field(draft.denomination_bucket, "denomination_bucket")
        require_field(draft.witness.root, "root")
        witness = draft.witness
        if len(witness.path_elements) != self.accumulator.depth:
            raise InputMalformedError(
                f"Merkle witness must have {self.accumulator.depth} path elements"
            )
        if len(witness.path_directions) != self.accumulator.depth:
            raise InputMalformedError(
                f"Merkle witness must have {self.accumulator.depth} path directions"
            )
        require_fields(witness.path_elements, "path_elements")

        # (a)
        try:
            owner_public_key = self.scheme.derive_public_key(draft.owner_secret)
        except InputMalformedError:
            raise NullifierMismatchError("Owner secret is not valid for the input note") from None
        if owner_public_key != draft.input_note.owner_public_key:
            raise NullifierMismatchError("Owner secret does not own the input note")
        if self.scheme.nullify(draft.owner_secret, draft.input_note.salt) != draft.nullifier:
            raise NullifierMismatchError("Nullifier is not derived from the owner secret and salt")

        # (b)
        expected_output = Note(
            amount=draft.output_note.amount,
            token=draft.input_note.token,
            owner_public_key=draft.output_note.owner_public_key,
            salt=draft.output_note.salt,
        )
        if self.scheme.commit(expected_output) != draft.new_commitment:
            raise CommitmentMismatchError("New commitment does not match the output note")

        # (c)
        input_commitment = self.scheme.commit(draft.input_note)
        if not self.accumulator.verify(input_commitment, witness, witness.root):
            raise MerkleWitnessInvalidError("Merkle path does not lead to the claimed root")
        if not self.accumulator.is_known_root(witness.root):
            raise MerkleWitnessInvalidError("Claimed root is not a recent accumulator root")

        # (d)
        if draft.output_note.amount != draft.input_note.amount:
            raise ConservationViolatedError("Output amount must equal input amount")

        if draft.state is ProtocolState.BUILT:
            draft.state = ProtocolState.VALIDATED

    def _witness(self, draft: SpendDraft):
        witness = draft.witness
        private_witness: Dict[str, object] = {
            "amount": draft.input_note.amount,
            "salt": draft.input_note.salt,
            "privkey": draft.owner_secret,
            "pathElements": list(witness.path_elements),
            "pathIndices": list(witness.path_directions),
            "newAmount": draft.output_note.amount,
            "newSalt": draft.output_note.salt,
            "newPubkey": draft.output_note.owner_public_key,
        }
        public = draft.public_inputs
        public_witness: Dict[str, int] = {
            "root": public.root,
            "nullifier": public.nullifier,
            "token": public.token,
            "denominationId": public.denomination_bucket,
            "newCommitment": public.new_commitment,
        }
        return private_witness, public_witness

    def prove(self, draft: SpendDraft) -> ProofRecord:
        """
        Validate, then prove through the gateway.

        Returns:
            ProofRecord: signals (root, nullifier, token, bucket, newCommitment)
        """
        self.validate(draft)
        private_witness, public_witness = self._witness(draft)
        record = self.gateway.prove(
            self.circuit, private_witness, public_witness, draft.public_inputs.as_signals()
        )
        draft.proof = record
        draft.state = ProtocolState.PROVED
        return record

    async def aprove(self, draft: SpendDraft) -> ProofRecord:
        """Awaitable prove(); cancellation leaves the draft unproved."""
        self.validate(draft)
        private_witness, public_witness = self._witness(draft)
        record = await self.gateway.aprove(
            self.circuit, private_witness, public_witness, draft.public_inputs.as_signals()
        )
        draft.proof = record
        draft.state = ProtocolState.PROVED
        return record

    def submit(self, draft: SpendDraft, pool):
        """
        Hand a proved spend to the ledger.

        Returns:
            SpendReceipt from the ledger

        Raises:
            DoubleSpendError: If the ledger has seen this nullifier
        """
        require_state(draft.state, (ProtocolState.PROVED,), "submit spend")
        receipt = pool.submit_spend(draft.proof)
        draft.leaf_index = receipt.leaf_index
        draft.state = ProtocolState.SUBMITTED
        return receipt

    def cancel(self, draft: SpendDraft) -> None:
        """Abandon a draft that has not been submitted."""
        require_state(draft.state, PRE_SUBMISSION, "cancel spend")
        draft.state = ProtocolState.CANCELLED
