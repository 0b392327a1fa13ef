"""Cryptographic primitives module"""

from shieldpool.crypto.poseidon import Hasher, PoseidonHasher, default_hasher, poseidon

from shieldpool.crypto.keys import (
    KeyDerivation,
    SquareKeyDerivation,
    BabyJubjubKeyDerivation,
    get_key_derivation,
)

from shieldpool.crypto.nullifier import NullifierRecord, NullifierSet

__all__ = [
    'Hasher',
    'PoseidonHasher',
    'default_hasher',
    'poseidon',
    'KeyDerivation',
    'SquareKeyDerivation',
    'BabyJubjubKeyDerivation',
    'get_key_derivation',
    'NullifierRecord',
    'NullifierSet',
]
