"""Custom exceptions for the shielded pool.

Every class carries a stable ``kind`` string so collaborators (UIs, RPC
layers) can map failures to user-facing messages without matching on
class names. Messages never contain owner secrets, salts or amounts.
"""


class ShieldPoolException(Exception):
    """Base exception for all shielded pool errors."""

    kind = "shieldpool_error"


# Input Errors
class InputMalformedError(ShieldPoolException):
    """Raised when a field is missing, has the wrong type or is out of range."""

    kind = "input_malformed"


class FieldRangeError(InputMalformedError):
    """Raised when a value is not a canonical field element."""

    kind = "field_range"


# Consistency Errors (caught by validate() before proving)
class ConsistencyError(ShieldPoolException):
    """Base exception for local pre-proving consistency failures."""

    kind = "consistency_error"


class CommitmentMismatchError(ConsistencyError):
    """Raised when a declared commitment differs from the recomputed one."""

    kind = "commitment_mismatch"


class NullifierMismatchError(ConsistencyError):
    """Raised when a nullifier is not derived from the note owner's secret."""

    kind = "nullifier_mismatch"


class MerkleWitnessInvalidError(ConsistencyError):
    """Raised when a Merkle witness does not fold to the claimed root."""

    kind = "merkle_witness_invalid"


class ConservationViolatedError(ConsistencyError):
    """Raised when spend output value differs from input value."""

    kind = "conservation_violated"


# Proving Errors
class ProvingError(ShieldPoolException):
    """Base exception for proving backend errors."""

    kind = "proving_error"


class ProvingUnavailableError(ProvingError):
    """Raised when the backend is missing or misconfigured. Retry later."""

    kind = "proving_unavailable"


class ProvingTimeoutError(ProvingUnavailableError):
    """Raised when proving did not finish within the configured timeout."""

    kind = "proving_timeout"


class ProvingFailedError(ProvingError):
    """Raised when the backend ran but produced no valid proof for the witness."""

    kind = "proving_failed"


class PublicSignalMismatchError(ProvingFailedError):
    """Raised when backend public signals do not echo the declared inputs."""

    kind = "public_signal_mismatch"


# Merkle Tree Errors
class MerkleTreeError(ShieldPoolException):
    """Base exception for Merkle accumulator errors."""

    kind = "merkle_tree_error"


class CapacityExceededError(MerkleTreeError):
    """Raised when the accumulator already holds 2^depth leaves."""

    kind = "capacity_exceeded"


class LeafNotFoundError(MerkleTreeError):
    """Raised when a witness is requested for a leaf that was never inserted."""

    kind = "leaf_not_found"


class DuplicateCommitmentError(MerkleTreeError):
    """Raised when a commitment is published a second time."""

    kind = "duplicate_commitment"


# Protocol Errors
class InvalidProtocolStateError(ShieldPoolException):
    """Raised when a protocol step is called out of order."""

    kind = "invalid_protocol_state"


# Ledger Errors
class LedgerError(ShieldPoolException):
    """Base exception for ledger submission errors."""

    kind = "ledger_error"


class DoubleSpendError(LedgerError):
    """Raised when a nullifier has already been accepted."""

    kind = "double_spend"


class UnknownRootError(LedgerError):
    """Raised when a spend references a root the ledger does not recognise."""

    kind = "unknown_root"


class InvalidProofError(LedgerError):
    """Raised when proof verification fails at submission."""

    kind = "invalid_proof"


# Storage Errors
class StorageError(ShieldPoolException):
    """Base exception for persistence errors."""

    kind = "storage_error"
