"""Pydantic models for data exchanged with ledger and verifier collaborators."""

from typing import Any, List, NamedTuple, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from shieldpool.exceptions import FieldRangeError
from shieldpool.utils.encoding import bytes_to_hex, hex_to_bytes
from shieldpool.utils.field import parse_field


class DepositSignals(NamedTuple):
    """Public signals of a deposit proof, in circuit order."""

    commitment: int
    token: int
    denomination_bucket: int


class SpendSignals(NamedTuple):
    """Public signals of a spend proof, in circuit order."""

    root: int
    nullifier: int
    token: int
    denomination_bucket: int
    new_commitment: int


class ProofRecord(BaseModel):
    """
    Canonical proof shape consumable by any verifier.

    JSON form uses camelCase keys, a 0x-hex proof and decimal-string signals
    (the snarkjs convention):

        {"circuitId": "deposit-v1", "proofBytes": "0x...", "publicSignals": ["1", ...]}
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    circuit_id: str = Field(..., min_length=1, alias="circuitId")
    proof_bytes: bytes = Field(..., alias="proofBytes")
    public_signals: Tuple[int, ...] = Field(..., alias="publicSignals")

    @field_validator("proof_bytes", mode="before")
    @classmethod
    def _decode_proof(cls, value: Any) -> Any:
        if isinstance(value, str):
            return hex_to_bytes(value)
        return value

    @field_validator("public_signals", mode="before")
    @classmethod
    def _parse_signals(cls, value: Any) -> Any:
        if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
            raise ValueError("publicSignals must be a list")
        try:
            return tuple(parse_field(v, f"publicSignals[{i}]") for i, v in enumerate(value))
        except FieldRangeError as e:
            raise ValueError(str(e)) from None

    @field_serializer("proof_bytes", when_used="json")
    def _encode_proof(self, value: bytes) -> str:
        return bytes_to_hex(value)

    @field_serializer("public_signals", when_used="json")
    def _encode_signals(self, value: Tuple[int, ...]) -> List[str]:
        return [str(v) for v in value]

    def deposit_signals(self) -> DepositSignals:
        """Decode as deposit signals."""
        if len(self.public_signals) != len(DepositSignals._fields):
            raise ValueError("Not a deposit proof record")
        return DepositSignals(*self.public_signals)

    def spend_signals(self) -> SpendSignals:
        """Decode as spend signals."""
        if len(self.public_signals) != len(SpendSignals._fields):
            raise ValueError("Not a spend proof record")
        return SpendSignals(*self.public_signals)

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dictionary."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: dict) -> "ProofRecord":
        """Deserialize from dictionary (either key style)."""
        return cls.model_validate(data)
