"""HTTP API for the submission pipeline."""
