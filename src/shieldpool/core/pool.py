"""Shielded pool ledger: the verifier side of deposits and spends.

The pool owns the accumulator and the nullifier set and accepts canonical
proof records from any prover:

    DEPOSIT:
        1. Record is a deposit-v1 proof with 3 public signals
        2. Token is accepted by this pool
        3. Commitment is not already a leaf
        4. Proof verifies against the backend's verification key
        5. Record persisted, then commitment appended

    SPEND:
        1. Record is this pool's spend circuit with 5 public signals
        2. Nullifier has never been seen (double-spend check, before the
           costly verification)
        3. Root is the current root or a recent one
        4. Proof verifies
        5. Record persisted, then nullifier registered and new commitment
           appended

Every submission runs under one lock, so a nullifier is accepted at most
once even with concurrent submitters. Storage is written before memory
changes, so a failed write leaves the pool exactly as it was.

Key Invariants:
    - Nullifier Uniqueness: No nullifier is accepted twice
    - Root Validity: Spends prove membership against a root this pool issued
    - Proof Validity: Nothing is appended without a verifying proof
"""

import logging
import threading
from datetime import datetime, UTC
from typing import List, Optional

from shieldpool.core.circuits import DEPOSIT_CIRCUIT, spend_circuit
from shieldpool.core.merkle_tree import MerkleAccumulator
from shieldpool.crypto.nullifier import NullifierSet
from shieldpool.crypto.poseidon import Hasher
from shieldpool.exceptions import (
    DoubleSpendError,
    DuplicateCommitmentError,
    InvalidProofError,
    StorageError,
    UnknownRootError,
)
from shieldpool.models.schemas import ProofRecord
from shieldpool.proving.backend import ProvingBackend
from shieldpool.storage.database import DatabaseManager, RecordKind
from shieldpool.utils.encoding import field_to_hex, hex_to_field, short_hex

logger = logging.getLogger(__name__)


class DepositReceipt:
    """Receipt for an accepted deposit."""

    def __init__(
        self,
        commitment: int,
        leaf_index: int,
        merkle_root: int,
        timestamp: datetime,
        record_id: Optional[int] = None,
    ):
        self.commitment = commitment
        self.leaf_index = leaf_index
        self.merkle_root = merkle_root
        self.timestamp = timestamp
        self.record_id = record_id

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "commitment": field_to_hex(self.commitment),
            "leaf_index": self.leaf_index,
            "merkle_root": field_to_hex(self.merkle_root),
            "timestamp": self.timestamp.isoformat(),
            "record_id": self.record_id,
        }


class SpendReceipt:
    """Receipt for an accepted spend."""

    def __init__(
        self,
        nullifier: int,
        new_commitment: int,
        leaf_index: int,
        merkle_root: int,
        timestamp: datetime,
        record_id: Optional[int] = None,
    ):
        self.nullifier = nullifier
        self.new_commitment = new_commitment
        self.leaf_index = leaf_index
        self.merkle_root = merkle_root
        self.timestamp = timestamp
        self.record_id = record_id

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "nullifier": field_to_hex(self.nullifier),
            "new_commitment": field_to_hex(self.new_commitment),
            "leaf_index": self.leaf_index,
            "merkle_root": field_to_hex(self.merkle_root),
            "timestamp": self.timestamp.isoformat(),
            "record_id": self.record_id,
        }


class PoolState:
    """State of the pool."""

    def __init__(self, merkle_root: int, tree_depth: int, num_commitments: int, num_nullifiers: int):
        self.merkle_root = merkle_root
        self.tree_depth = tree_depth
        self.num_commitments = num_commitments
        self.num_nullifiers = num_nullifiers

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "merkle_root": field_to_hex(self.merkle_root),
            "tree_depth": self.tree_depth,
            "num_commitments": self.num_commitments,
            "num_nullifiers": self.num_nullifiers,
        }


class ShieldedPool:
    """
    Ledger accepting deposit and spend proofs.

    The pool verifies with a ProvingBackend; it never sees notes or secrets.
    """

    def __init__(
        self,
        verifier: ProvingBackend,
        depth: int = MerkleAccumulator.DEFAULT_DEPTH,
        hasher: Optional[Hasher] = None,
        root_history_size: int = MerkleAccumulator.DEFAULT_ROOT_HISTORY,
        token: Optional[int] = None,
        db: Optional[DatabaseManager] = None,
    ):
        """
        Initialize empty pool.

        Args:
            verifier: Backend whose verify() checks incoming proofs
            depth: Accumulator depth (selects the spend circuit)
            hasher: Node hash of the accumulator (default Poseidon)
            root_history_size: Recent roots a spend may prove against
            token: If set, only this token is accepted
            db: Optional persistence
        """
        self.verifier = verifier
        self.accumulator = MerkleAccumulator(
            depth=depth, hasher=hasher, root_history_size=root_history_size
        )
        self.nullifiers = NullifierSet()
        self.token = token
        self.db = db
        self.spend_circuit_id = spend_circuit(depth).circuit_id

        self.records: List[ProofRecord] = []
        self._lock = threading.Lock()

    @property
    def depth(self) -> int:
        return self.accumulator.depth

    def _check_token(self, token: int) -> None:
        if self.token is not None and token != self.token:
            raise InvalidProofError("Token is not accepted by this pool")

    def _verify(self, record: ProofRecord) -> None:
        if not self.verifier.verify(record.circuit_id, record.proof_bytes, list(record.public_signals)):
            logger.warning(f"Rejected {record.circuit_id} proof: verification failed")
            raise InvalidProofError(f"Proof does not verify for {record.circuit_id}")

    def submit_deposit(self, record: ProofRecord) -> DepositReceipt:
        """
        Accept a deposit proof and append its commitment.

        Args:
            record: Canonical deposit-v1 proof record

        Returns:
            DepositReceipt: Commitment, leaf index and new root

        Raises:
            InvalidProofError: Wrong circuit, token or signals, or proof
                does not verify
            DuplicateCommitmentError: Commitment already in the pool
            CapacityExceededError: Accumulator is full
            StorageError: Persistence failed; nothing is appended
        """
        if record.circuit_id != DEPOSIT_CIRCUIT.circuit_id:
            raise InvalidProofError(f"Expected a {DEPOSIT_CIRCUIT.circuit_id} proof")
        try:
            signals = record.deposit_signals()
        except ValueError:
            raise InvalidProofError("Deposit proof must carry 3 public signals") from None
        self._check_token(signals.token)

        with self._lock:
            if signals.commitment in self.accumulator:
                raise DuplicateCommitmentError("Commitment already present in pool")
            self._verify(record)

            with self.accumulator.lock:
                leaf_index, root = self.accumulator.prepare_append(signals.commitment)
                record_id = None
                if self.db is not None:
                    record_id = self._persist_deposit(record, signals.commitment, leaf_index, root)

                self.accumulator.append(signals.commitment)
            self.records.append(record)

        logger.info(
            f"Accepted deposit {short_hex(signals.commitment)} at leaf {leaf_index}, "
            f"root={short_hex(root)}"
        )
        return DepositReceipt(
            commitment=signals.commitment,
            leaf_index=leaf_index,
            merkle_root=root,
            timestamp=datetime.now(UTC),
            record_id=record_id,
        )

    def submit_spend(self, record: ProofRecord) -> SpendReceipt:
        """
        Accept a spend proof, burn its nullifier and append the new note.

        Args:
            record: Canonical spend proof record for this pool's depth

        Returns:
            SpendReceipt: Nullifier, new commitment, its leaf index and root

        Raises:
            InvalidProofError: Wrong circuit, token or signals, or proof
                does not verify
            DoubleSpendError: Nullifier already accepted
            UnknownRootError: Root is not current or recent
            DuplicateCommitmentError: New commitment already in the pool
            StorageError: Persistence failed; the nullifier stays unspent
        """
        if record.circuit_id != self.spend_circuit_id:
            raise InvalidProofError(f"Expected a {self.spend_circuit_id} proof")
        try:
            signals = record.spend_signals()
        except ValueError:
            raise InvalidProofError("Spend proof must carry 5 public signals") from None
        self._check_token(signals.token)

        with self._lock:
            if self.nullifiers.is_spent(signals.nullifier):
                logger.warning(f"Double-spend attempt with nullifier {short_hex(signals.nullifier)}")
                raise DoubleSpendError("Nullifier has already been spent")
            if not self.accumulator.is_known_root(signals.root):
                raise UnknownRootError("Spend proves membership against an unknown root")
            if signals.new_commitment in self.accumulator:
                raise DuplicateCommitmentError("New commitment already present in pool")
            self._verify(record)

            with self.accumulator.lock:
                leaf_index, root = self.accumulator.prepare_append(signals.new_commitment)
                record_id = None
                if self.db is not None:
                    record_id = self._persist_spend(record, signals, leaf_index, root)

                self.nullifiers.register(
                    signals.nullifier,
                    signals.new_commitment,
                    merkle_root=signals.root,
                    record_id=record_id,
                )
                self.accumulator.append(signals.new_commitment)
            self.records.append(record)

        logger.info(
            f"Accepted spend {short_hex(signals.nullifier)} -> "
            f"{short_hex(signals.new_commitment)} at leaf {leaf_index}"
        )
        return SpendReceipt(
            nullifier=signals.nullifier,
            new_commitment=signals.new_commitment,
            leaf_index=leaf_index,
            merkle_root=root,
            timestamp=datetime.now(UTC),
            record_id=record_id,
        )

    def _persist_deposit(self, record: ProofRecord, commitment: int, leaf_index: int, root: int) -> int:
        try:
            with self.db.session_scope() as session:
                row = self.db.add_proof_record(session, record, RecordKind.DEPOSIT)
                self.db.add_commitment(session, commitment, leaf_index, root, row.id)
                self.db.add_merkle_root(session, root, self.depth, leaf_index + 1)
                return row.id
        except StorageError:
            logger.error(f"Could not persist deposit at leaf {leaf_index}", exc_info=True)
            raise

    def _persist_spend(self, record: ProofRecord, signals, leaf_index: int, root: int) -> int:
        try:
            with self.db.session_scope() as session:
                row = self.db.add_proof_record(session, record, RecordKind.SPEND)
                self.db.add_nullifier(
                    session, signals.nullifier, signals.new_commitment, signals.root, row.id
                )
                self.db.add_commitment(session, signals.new_commitment, leaf_index, root, row.id)
                self.db.add_merkle_root(session, root, self.depth, leaf_index + 1)
                return row.id
        except StorageError:
            logger.error(f"Could not persist spend at leaf {leaf_index}", exc_info=True)
            raise

    def is_spent(self, nullifier: int) -> bool:
        """Check whether a nullifier has been accepted."""
        return self.nullifiers.is_spent(nullifier)

    def verify_record(self, record: ProofRecord) -> bool:
        """Verify a proof record without submitting it."""
        return self.verifier.verify(record.circuit_id, record.proof_bytes, list(record.public_signals))

    def get_state(self) -> PoolState:
        """
        Return current pool state.

        Returns:
            PoolState: Root, depth, commitment and nullifier counts
        """
        with self._lock:
            return PoolState(
                merkle_root=self.accumulator.root,
                tree_depth=self.depth,
                num_commitments=len(self.accumulator),
                num_nullifiers=len(self.nullifiers),
            )

    @classmethod
    def restore(
        cls,
        db: DatabaseManager,
        verifier: ProvingBackend,
        depth: int = MerkleAccumulator.DEFAULT_DEPTH,
        hasher: Optional[Hasher] = None,
        root_history_size: int = MerkleAccumulator.DEFAULT_ROOT_HISTORY,
        token: Optional[int] = None,
    ) -> "ShieldedPool":
        """
        Rebuild a pool from storage.

        Commitments are replayed in leaf order, which reproduces the
        accumulator and its recent-root window exactly.

        Raises:
            StorageError: If stored data is inconsistent with the replay
        """
        pool = cls(
            verifier, depth=depth, hasher=hasher, root_history_size=root_history_size,
            token=token, db=db,
        )

        with db.session_scope() as session:
            commitments = db.get_commitments(session)
            nullifiers = db.get_nullifiers(session)
            records = [row.to_record() for row in db.get_proof_records(session)]
            latest = db.get_current_root(session)

        for commitment in commitments:
            pool.accumulator.append(commitment)
        for row in nullifiers:
            pool.nullifiers.register(
                hex_to_field(row.nullifier),
                hex_to_field(row.new_commitment),
                merkle_root=hex_to_field(row.merkle_root),
                record_id=row.proof_record_id,
                spent_at=row.spent_at.isoformat() if row.spent_at else None,
            )
        pool.records.extend(records)

        if latest is not None and hex_to_field(latest.root_hash) != pool.accumulator.root:
            raise StorageError("Stored root does not match replayed accumulator")

        logger.info(
            f"Restored pool: {len(commitments)} commitments, {len(nullifiers)} nullifiers, "
            f"root={short_hex(pool.accumulator.root)}"
        )
        return pool

    def __repr__(self) -> str:
        return (
            f"ShieldedPool(depth={self.depth}, commitments={len(self.accumulator)}, "
            f"nullifiers={len(self.nullifiers)})"
        )
