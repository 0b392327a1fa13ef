#!/usr/bin/env python3
"""
Quick start guide for the shielded note pool.

Run this to see a deposit, a private transfer and a refused double spend.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shieldpool.config import Settings, build_components, configure_logging
from shieldpool.exceptions import DoubleSpendError
from shieldpool.utils.encoding import short_hex
from shieldpool.utils.field import random_field_element

# DAI token address as a field element
DAI = 0x6B175474E89094C44DA98B954EEDEAC495271D0F


def main():
    """Run a simple example of the shielded pool."""
    settings = Settings(tree_depth=8, log_level="WARNING")
    configure_logging(settings)

    print("=" * 70)
    print("SHIELDED NOTE POOL QUICK START EXAMPLE")
    print("=" * 70)
    print()

    # Step 1: Wire up the pool
    print("Step 1: Build the pool with the reference prover")
    print("-" * 70)
    components = build_components(settings)
    pool, deposits, spends = components.pool, components.deposits, components.spends
    print(f"✓ Pool created with {settings.tree_depth}-level accumulator "
          f"(supports {2 ** settings.tree_depth} notes)")
    print()

    alice_secret = components.scheme.fresh_secret()
    bob_secret = components.scheme.fresh_secret()
    bob_public_key = components.scheme.derive_public_key(bob_secret)

    # Step 2: Alice deposits
    print("Step 2: Alice deposits 1000 DAI into a private note")
    print("-" * 70)
    deposit = deposits.build(amount=1000, token=DAI, denomination_bucket=1, owner_secret=alice_secret)
    deposits.prove(deposit)
    receipt = deposits.submit(deposit, pool)
    print("✓ Deposit accepted")
    print(f"  Commitment: {short_hex(receipt.commitment, 32)}")
    print(f"  Leaf Index: {receipt.leaf_index}")
    print()

    # Step 3: Alice pays Bob
    print("Step 3: Alice spends her note to Bob")
    print("-" * 70)
    spend = spends.build(
        input_note=deposit.note,
        owner_secret=alice_secret,
        output_amount=deposit.note.amount,
        output_owner_public_key=bob_public_key,
        denomination_bucket=1,
    )
    spends.prove(spend)
    spend_receipt = spends.submit(spend, pool)
    print("✓ Spend accepted")
    print(f"  Nullifier:      {short_hex(spend_receipt.nullifier, 32)}")
    print(f"  New Commitment: {short_hex(spend_receipt.new_commitment, 32)}")
    print("  The ledger never learns which deposit was spent.")
    print()

    # Step 4: Alice tries again
    print("Step 4: Alice tries to spend the same note again")
    print("-" * 70)
    again = spends.build(deposit.note, alice_secret, deposit.note.amount, random_field_element())
    spends.prove(again)
    try:
        spends.submit(again, pool)
        print("✗ Double spend was accepted")
    except DoubleSpendError as e:
        print(f"✓ Refused: {e}")
    print()

    # Step 5: Bob spends what he received
    print("Step 5: Bob spends the note he received")
    print("-" * 70)
    onward = spends.build(spend.output_note, bob_secret, spend.output_note.amount, 12345)
    spends.prove(onward)
    spends.submit(onward, pool)
    print("✓ Bob's spend accepted")
    print()

    state = pool.get_state()
    print("=" * 70)
    print(f"Pool: {state.num_commitments} commitments, {state.num_nullifiers} nullifiers")
    print(f"Root: {short_hex(state.merkle_root, 32)}")
    print("=" * 70)

    components.gateway.close()


if __name__ == "__main__":
    main()
