"""Notes, commitments, accumulator and the deposit/spend protocols."""
