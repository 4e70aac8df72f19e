"""Application and per-run configuration."""
