"""Property-based tests using Hypothesis for cryptographic invariants."""

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from shieldpool.core.commitment import CommitmentScheme
from shieldpool.core.merkle_tree import MerkleAccumulator, compute_root
from shieldpool.core.note import Note
from shieldpool.crypto.keys import SquareKeyDerivation
from shieldpool.crypto.poseidon import poseidon
from shieldpool.exceptions import InputMalformedError
from shieldpool.utils.encoding import field_to_hex, hex_to_field
from shieldpool.utils.field import FIELD_MODULUS

field_elements = st.integers(min_value=0, max_value=FIELD_MODULUS - 1)
nonzero_elements = st.integers(min_value=1, max_value=FIELD_MODULUS - 1)
# Canonical secrets for the square derivation
square_secrets = st.integers(min_value=1, max_value=(FIELD_MODULUS - 1) // 2)

# Square keys keep examples fast; commitment properties don't depend on the curve
SCHEME = CommitmentScheme(key_derivation=SquareKeyDerivation())


class TestCryptographicProperties:
    """Property-based tests for cryptographic system invariants."""

    @given(nonzero_elements, field_elements, field_elements, field_elements)
    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    def test_commitment_deterministic(self, amount, token, salt, pubkey):
        """Property: Same note fields produce same commitment."""
        note = Note(amount=amount, token=token, owner_public_key=pubkey, salt=salt)
        again = Note(amount=amount, token=token, owner_public_key=pubkey, salt=salt)
        assert SCHEME.commit(note) == SCHEME.commit(again)
        assert SCHEME.commit(note) == poseidon(amount, token, salt, pubkey)

    @given(nonzero_elements, field_elements, field_elements, field_elements)
    @settings(max_examples=30, suppress_health_check=[HealthCheck.too_slow])
    def test_commitment_binds_amount(self, amount, token, salt, pubkey):
        """Property: Changing the amount changes the commitment."""
        note = Note(amount=amount, token=token, owner_public_key=pubkey, salt=salt)
        other = Note(
            amount=amount % (FIELD_MODULUS - 1) + 1, token=token, owner_public_key=pubkey, salt=salt
        )
        if other.amount != note.amount:
            assert SCHEME.commit(note) != SCHEME.commit(other)

    @given(square_secrets, field_elements)
    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    def test_nullifier_deterministic_and_canonical(self, secret, salt):
        """Property: Nullifier depends only on (secret, salt) and is a field element."""
        nf = SCHEME.nullify(secret, salt)
        assert nf == SCHEME.nullify(secret, salt)
        assert 0 <= nf < FIELD_MODULUS

    @given(square_secrets, square_secrets)
    @settings(max_examples=30, suppress_health_check=[HealthCheck.too_slow])
    def test_nullifier_argument_order(self, secret, salt):
        """Property: Swapping secret and salt gives a different nullifier."""
        if secret != salt:
            assert SCHEME.nullify(secret, salt) != SCHEME.nullify(salt, secret)

    @given(square_secrets, field_elements)
    @settings(max_examples=30, suppress_health_check=[HealthCheck.too_slow])
    def test_one_nullifier_per_public_key(self, secret, salt):
        """Property: Of two secrets with the same key, only one may nullify."""
        negated = FIELD_MODULUS - secret
        assert SCHEME.derive_public_key(secret) == negated * negated % FIELD_MODULUS
        assert not SCHEME.verify_nullifier(negated, salt, SCHEME.nullify(secret, salt))
        with pytest.raises(InputMalformedError):
            SCHEME.nullify(negated, salt)


    @given(st.lists(nonzero_elements, min_size=1, max_size=12, unique=True))
    @settings(max_examples=15, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_merkle_witness_reproduces_root(self, leaves):
        """Property: Every leaf's witness folds to the current root."""
        tree = MerkleAccumulator(depth=4)
        for leaf in leaves:
            tree.append(leaf)

        for index, leaf in enumerate(leaves):
            witness = tree.witness_for(index)
            assert compute_root(leaf, witness.path_elements, witness.path_directions) == tree.root
            assert tree.verify(leaf, witness, tree.root)

    @given(st.lists(nonzero_elements, min_size=2, max_size=8, unique=True))
    @settings(max_examples=15, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_merkle_root_stable(self, leaves):
        """Property: Appending in the same order produces the same root."""
        tree1 = MerkleAccumulator(depth=4)
        tree2 = MerkleAccumulator(depth=4)
        for leaf in leaves:
            tree1.append(leaf)
            tree2.append(leaf)
        assert tree1.root == tree2.root

        swapped = MerkleAccumulator(depth=4)
        for leaf in [leaves[1], leaves[0]] + leaves[2:]:
            swapped.append(leaf)
        assert swapped.root != tree1.root

    @given(field_elements)
    @settings(max_examples=100)
    def test_hex_encoding_round_trip(self, value):
        """Property: Field hex encoding is 32 bytes and reversible."""
        text = field_to_hex(value)
        assert len(text) == 66
        assert hex_to_field(text) == value
