"""Note commitment and nullifier derivation."""

import threading
from typing import Optional

from shieldpool.core.note import Note
from shieldpool.crypto.keys import KeyDerivation, BabyJubjubKeyDerivation
from shieldpool.crypto.poseidon import Hasher, default_hasher
from shieldpool.exceptions import InputMalformedError
from shieldpool.utils.field import random_field_element


class SaltGenerator:
    """
    Source of single-use note salts.

    Salts are drawn uniformly below the field modulus, so they are always
    canonical and never need reduction. Issued salts are counted, never
    stored.
    """

    def __init__(self):
        self._issued = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return a fresh uniformly random salt."""
        salt = random_field_element()
        with self._lock:
            self._issued += 1
        return salt

    def __len__(self) -> int:
        return self._issued


class CommitmentScheme:
    """
    Commitment, nullifier and owner key derivation for notes.

    The argument order of commit() is a protocol constant:

        commitment = H(amount, token, salt, owner_public_key)
        nullifier  = H(owner_secret, salt)

    Changing it changes every commitment and invalidates every proof.
    """

    def __init__(
        self,
        hasher: Optional[Hasher] = None,
        key_derivation: Optional[KeyDerivation] = None,
        salts: Optional[SaltGenerator] = None,
    ):
        self.hasher = hasher or default_hasher()
        self.key_derivation = key_derivation or BabyJubjubKeyDerivation(self.hasher)
        self.salts = salts or SaltGenerator()

    def commit(self, note: Note) -> int:
        """
        Compute the public commitment of a note.

        Args:
            note: The note to commit to

        Returns:
            int: Commitment field element
        """
        return self.hasher.hash(note.amount, note.token, note.salt, note.owner_public_key)

    def nullify(self, owner_secret: int, salt: int) -> int:
        """
        Compute the nullifier revealed when spending a note.

        Deterministic per (owner_secret, salt), so the same note always
        produces the same nullifier. Only canonical secrets are accepted,
        so a note has exactly one nullifier.

        Raises:
            InputMalformedError: If owner_secret is not canonical for the
                configured key derivation
        """
        self.key_derivation.require_secret(owner_secret)
        return self.hasher.hash(owner_secret, salt)

    def derive_public_key(self, owner_secret: int) -> int:
        """Derive the owner's public identifier."""
        return self.key_derivation.public_key(owner_secret)

    def fresh_secret(self) -> int:
        """Draw a random owner secret valid for the configured key derivation."""
        return self.key_derivation.random_secret()

    def fresh_salt(self) -> int:
        """Draw a fresh canonical salt."""
        return self.salts.next()

    def create_note(self, amount: int, token: int, owner_public_key: int) -> Note:
        """Create a note with a fresh salt."""
        return Note(
            amount=amount,
            token=token,
            owner_public_key=owner_public_key,
            salt=self.fresh_salt(),
        )

    def verify_commitment(self, note: Note, expected_commitment: int) -> bool:
        """
        Verify that a commitment matches the given note.

        Returns:
            bool: True if commitment is valid, False otherwise
        """
        try:
            return self.commit(note) == expected_commitment
        except InputMalformedError:
            return False

    def verify_nullifier(self, owner_secret: int, salt: int, expected_nullifier: int) -> bool:
        """
        Verify that a nullifier matches the given secret and salt.

        Returns:
            bool: True if nullifier is valid, False otherwise
        """
        try:
            return self.nullify(owner_secret, salt) == expected_nullifier
        except InputMalformedError:
            return False

    def __repr__(self) -> str:
        return f"CommitmentScheme(hasher={self.hasher!r}, keys={self.key_derivation.name})"
