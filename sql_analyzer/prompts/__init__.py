"""Prompt templates for the analysis tools."""

from sql_analyzer.prompts.loader import PromptLoader, PromptPair

__all__ = ["PromptLoader", "PromptPair"]
