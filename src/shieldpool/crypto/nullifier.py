"""
Spent-nullifier registry.

A nullifier nf = H(owner_secret, salt) is revealed exactly once, when its
note is spent. The ledger keeps every accepted nullifier; a second reveal
of the same value is a double-spend attempt and is refused.

Key properties:
    - Nullifiers cannot be linked to the commitment they spend
    - The set is public and only ever grows
    - register() is atomic: check-and-insert happens under one lock
"""

import json
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, UTC
from typing import Dict, Optional

from shieldpool.utils.encoding import field_to_hex, hex_to_field


@dataclass
class NullifierRecord:
    """
    Record of a spent nullifier.

    Tracks when and under which root a nullifier was used.
    """

    nullifier: str  # 0x-hex field element
    new_commitment: str  # Output commitment appended by the same spend
    spent_at: str
    merkle_root_at_spending: Optional[str] = None
    record_id: Optional[int] = None  # Storage id of the accepted proof record

    def serialize(self) -> str:
        """Serialize to JSON."""
        return json.dumps(asdict(self))


class NullifierSet:
    """
    Maintains the set of spent nullifiers.

    Every nullifier must be unique. Lookups are by field element value.
    """

    def __init__(self):
        """Initialize empty nullifier set."""
        self.records: Dict[int, NullifierRecord] = {}
        self._lock = threading.Lock()

    def register(
        self,
        nullifier: int,
        new_commitment: int,
        merkle_root: Optional[int] = None,
        record_id: Optional[int] = None,
        spent_at: Optional[str] = None,
    ) -> bool:
        """
        Register a nullifier as spent.

        Args:
            nullifier: The nullifier field element
            new_commitment: Output commitment of the spend
            merkle_root: Root the spend proved membership against
            record_id: Optional storage id of the proof record
            spent_at: Optional ISO timestamp (defaults to now)

        Returns:
            True if registered, False if already spent (double-spend)
        """
        with self._lock:
            if nullifier in self.records:
                return False

            self.records[nullifier] = NullifierRecord(
                nullifier=field_to_hex(nullifier),
                new_commitment=field_to_hex(new_commitment),
                spent_at=spent_at or datetime.now(UTC).isoformat(),
                merkle_root_at_spending=(
                    field_to_hex(merkle_root) if merkle_root is not None else None
                ),
                record_id=record_id,
            )
            return True

    def is_spent(self, nullifier: int) -> bool:
        """Check if a nullifier has been spent."""
        return nullifier in self.records

    def get_record(self, nullifier: int) -> Optional[NullifierRecord]:
        """Get spending record for a nullifier."""
        return self.records.get(nullifier)

    @property
    def size(self) -> int:
        """Get number of spent nullifiers."""
        return len(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, nullifier: object) -> bool:
        return nullifier in self.records

    def serialize(self) -> str:
        """Serialize nullifier set to JSON."""
        return json.dumps(
            {
                "records": [asdict(record) for record in self.records.values()],
                "total_spent": self.size,
            }
        )

    @classmethod
    def deserialize(cls, json_str: str) -> "NullifierSet":
        """Deserialize nullifier set from JSON."""
        data = json.loads(json_str)
        nullifier_set = cls()

        for record_data in data["records"]:
            record = NullifierRecord(**record_data)
            nullifier_set.records[hex_to_field(record.nullifier)] = record

        return nullifier_set
