"""HTTP API for SQL analysis, response recovery and error classification."""
