"""Business logic: normalization, matching, merging, storage and ingestion."""
