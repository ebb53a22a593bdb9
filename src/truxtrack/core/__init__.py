"""Core tracking engine - models, cancellation, sessions, providers, orchestration."""
