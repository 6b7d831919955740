"""GitHub-facing pieces: webhook signatures and runner registration tokens."""
