"""
Sensitive Value Redaction

Used by the error classifier for user-facing messages and, through
SanitizingFilter, by log handlers.
"""

import logging
import re
from dataclasses import dataclass


@dataclass(frozen=True)
class RedactionRule:
    name: str
    pattern: re.Pattern
    replacement: str


# Order matters: URLs with credentials and headers before generic tokens.
DEFAULT_RULES: tuple[RedactionRule, ...] = (
    RedactionRule(
        "database_url",
        re.compile(r"\b([a-z][a-z0-9+.-]*://)([^:/\s@]+):([^@\s/]+)@", re.IGNORECASE),
        r"\1[REDACTED]:[REDACTED]@",
    ),
    RedactionRule(
        "authorization",
        re.compile(r"\b(authorization[\"']?\s*[:=]\s*[\"']?)(?:bearer\s+|basic\s+)?[^\s\"',;]+",
                   re.IGNORECASE),
        r"\1[REDACTED]",
    ),
    RedactionRule(
        "bearer_token",
        re.compile(r"\bbearer\s+[A-Za-z0-9._~+/=-]{8,}", re.IGNORECASE),
        "Bearer [REDACTED]",
    ),
    RedactionRule(
        "api_key",
        re.compile(r"\b(?:sk|pk|rk)-[A-Za-z0-9_-]{8,}"),
        "[REDACTED_API_KEY]",
    ),
    RedactionRule(
        "key_value_secret",
        re.compile(
            r"\b((?:api[_-]?key|access[_-]?key|secret(?:[_-]?key)?|password|passwd|pwd|token"
            r"|access[_-]?token|refresh[_-]?token|client[_-]?secret)[\"']?\s*[:=]\s*[\"']?)"
            r"[^\s\"',;&]+",
            re.IGNORECASE,
        ),
        r"\1[REDACTED]",
    ),
    RedactionRule(
        "email",
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        "[REDACTED_EMAIL]",
    ),
    RedactionRule(
        "credit_card",
        re.compile(r"\b(?:\d{4}[- ]?){3}\d{4}\b"),
        "[REDACTED_CARD]",
    ),
    RedactionRule(
        "phone",
        re.compile(r"(?<![\w.])(?:\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]\d{3}[-.\s]\d{4}(?![\w.])"),
        "[REDACTED_PHONE]",
    ),
    RedactionRule(
        "ipv4",
        re.compile(r"\b(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)\b"),
        "[REDACTED_IP]",
    ),
)


class LogSanitizer:
    """Apply redaction rules to free text."""

    def __init__(self, rules: tuple[RedactionRule, ...] = DEFAULT_RULES):
        self.rules = rules

    def sanitize(self, text: str) -> str:
        if not text:
            return text
        for rule in self.rules:
            text = rule.pattern.sub(rule.replacement, text)
        return text

    def find_sensitive(self, text: str) -> list[str]:
        """Names of the rules that match ``text``."""
        return [rule.name for rule in self.rules if rule.pattern.search(text or "")]


class SanitizingFilter(logging.Filter):
    """Logging filter that redacts the rendered message of every record."""

    def __init__(self, sanitizer: LogSanitizer | None = None):
        super().__init__()
        self.sanitizer = sanitizer or LogSanitizer()

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = self.sanitizer.sanitize(message)
        record.args = None
        return True
