"""Background tasks (ARQ)."""
