"""Field and encoding helpers."""
