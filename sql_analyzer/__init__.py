"""SQL Analyzer: LLM-backed SQL analysis with structured response recovery."""

__version__ = "0.1.0"
