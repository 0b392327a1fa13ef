"""Tests for notes, commitments and nullifiers."""

import pytest

from shieldpool.core.commitment import CommitmentScheme, SaltGenerator
from shieldpool.core.note import Note
from shieldpool.crypto.keys import BABYJUB_SUBORDER, SquareKeyDerivation
from shieldpool.crypto.poseidon import poseidon
from shieldpool.exceptions import FieldRangeError, InputMalformedError
from shieldpool.utils.field import FIELD_MODULUS

SCENARIO_AMOUNT = 1000000000000000000
SCENARIO_TOKEN = 123456789
SCENARIO_SALT = 0x1D2C3B4A5F6E7D8C9BA0B1C2D3E4F5061728394A5B6C7D8E9FA0B1C2D3E4F50
SCENARIO_PUBKEY = 0x0ABCDEF0123456789ABCDEF0123456789ABCDEF0123456789ABCDEF01234567


@pytest.fixture
def scenario_note():
    return Note(
        amount=SCENARIO_AMOUNT,
        token=SCENARIO_TOKEN,
        owner_public_key=SCENARIO_PUBKEY,
        salt=SCENARIO_SALT,
    )


class TestNote:
    """Tests for the note value object."""

    def test_fields_validated(self):
        with pytest.raises(FieldRangeError):
            Note(amount=-1, token=1, owner_public_key=1, salt=1)
        with pytest.raises(FieldRangeError):
            Note(amount=1, token=1, owner_public_key=1, salt=FIELD_MODULUS)

    def test_repr_hides_private_fields(self, scenario_note):
        text = repr(scenario_note)
        assert str(SCENARIO_AMOUNT) not in text
        assert str(SCENARIO_SALT) not in text
        assert str(SCENARIO_TOKEN) in text

    def test_immutable(self, scenario_note):
        with pytest.raises(Exception):
            scenario_note.amount = 5

    def test_with_salt(self, scenario_note):
        other = scenario_note.with_salt(99)
        assert other.salt == 99
        assert other.amount == scenario_note.amount
        assert scenario_note.salt == SCENARIO_SALT

    def test_dict_round_trip(self, scenario_note):
        data = scenario_note.to_dict()
        assert data["amount"] == str(SCENARIO_AMOUNT)
        assert Note.from_dict(data) == scenario_note

    def test_from_dict_accepts_hex(self):
        note = Note.from_dict({"amount": "0x10", "token": "1", "owner_public_key": 2, "salt": "3"})
        assert note.amount == 16


class TestCommit:
    """Tests for commitment derivation."""

    def test_scenario_commitment_reproducible(self, scheme, scenario_note):
        """Fixed salt and key give a fixed commitment, re-derivable from the four inputs."""
        commitment = scheme.commit(scenario_note)
        assert 0 <= commitment < FIELD_MODULUS

        rebuilt = Note(
            amount=SCENARIO_AMOUNT,
            token=SCENARIO_TOKEN,
            owner_public_key=SCENARIO_PUBKEY,
            salt=SCENARIO_SALT,
        )
        assert scheme.commit(rebuilt) == commitment
        assert CommitmentScheme().commit(rebuilt) == commitment

    def test_argument_order(self, scheme, scenario_note):
        """Test commitment = H(amount, token, salt, owner_public_key)."""
        expected = poseidon(SCENARIO_AMOUNT, SCENARIO_TOKEN, SCENARIO_SALT, SCENARIO_PUBKEY)
        assert scheme.commit(scenario_note) == expected

    def test_each_field_binds(self, scheme, scenario_note):
        base = scheme.commit(scenario_note)
        variants = [
            Note(SCENARIO_AMOUNT + 1, SCENARIO_TOKEN, SCENARIO_PUBKEY, SCENARIO_SALT),
            Note(SCENARIO_AMOUNT, SCENARIO_TOKEN + 1, SCENARIO_PUBKEY, SCENARIO_SALT),
            Note(SCENARIO_AMOUNT, SCENARIO_TOKEN, SCENARIO_PUBKEY + 1, SCENARIO_SALT),
            Note(SCENARIO_AMOUNT, SCENARIO_TOKEN, SCENARIO_PUBKEY, SCENARIO_SALT + 1),
        ]
        assert all(scheme.commit(v) != base for v in variants)

    def test_verify_commitment(self, scheme, scenario_note):
        commitment = scheme.commit(scenario_note)
        assert scheme.verify_commitment(scenario_note, commitment)
        assert not scheme.verify_commitment(scenario_note, commitment + 1)


class TestNullify:
    """Tests for nullifier derivation."""

    def test_deterministic(self, scheme):
        assert scheme.nullify(11, 22) == scheme.nullify(11, 22)

    def test_argument_order(self, scheme):
        assert scheme.nullify(11, 22) == poseidon(11, 22)

    def test_differs_by_secret_and_salt(self, scheme):
        base = scheme.nullify(11, 22)
        assert scheme.nullify(12, 22) != base
        assert scheme.nullify(11, 23) != base

    def test_non_canonical_salt_rejected(self, scheme):
        with pytest.raises(FieldRangeError):
            scheme.nullify(11, FIELD_MODULUS + 22)

    def test_non_canonical_secret_rejected(self, scheme):
        """Test secrets that derive an existing key from another representative."""
        with pytest.raises(InputMalformedError):
            scheme.nullify(11 + BABYJUB_SUBORDER, 22)
        with pytest.raises(InputMalformedError):
            scheme.nullify(0, 22)
        assert not scheme.verify_nullifier(11 + BABYJUB_SUBORDER, 22, scheme.nullify(11, 22))

    def test_fresh_secret_is_usable(self, scheme):
        secret = scheme.fresh_secret()
        assert scheme.nullify(secret, 22) == poseidon(secret, 22)
        assert scheme.derive_public_key(secret)


    def test_verify_nullifier(self, scheme):
        nullifier = scheme.nullify(11, 22)
        assert scheme.verify_nullifier(11, 22, nullifier)
        assert not scheme.verify_nullifier(12, 22, nullifier)
        assert not scheme.verify_nullifier(11, -1, nullifier)


class TestNoteCreation:
    """Tests for fresh notes and salts."""

    def test_create_note_uses_fresh_salts(self, scheme):
        a = scheme.create_note(5, 1, 2)
        b = scheme.create_note(5, 1, 2)
        assert a.salt != b.salt
        assert scheme.commit(a) != scheme.commit(b)

    def test_salt_generator_counts_without_storing(self):
        salts = SaltGenerator()
        drawn = {salts.next() for _ in range(20)}
        assert len(drawn) == 20
        assert len(salts) == 20
        assert all(0 < s < FIELD_MODULUS for s in drawn)
        assert not any(isinstance(v, (set, list, dict)) for v in vars(salts).values())


    def test_derive_public_key_uses_configured_derivation(self):
        scheme = CommitmentScheme(key_derivation=SquareKeyDerivation())
        assert scheme.derive_public_key(9) == 81

    def test_repr(self, scheme):
        assert "babyjubjub" in repr(scheme)
