"""
Text Cleaner

Turns noisy model output into best-effort JSON text. Each step is skipped
when its pattern is absent and never raises: a step that fails leaves its
input untouched and the decoder's later strategies take over.

Steps, in order:
    1. strip an outer fenced code block
    2. remove comments (//, #, --, /* */, <!-- -->) outside string literals
    3. collapse string concatenation idioms into {placeholder} strings
    4. keep the text between the first "{" and the last "}"
    5. drop trailing commas
    6. quote bare keys
    7. convert single-quoted strings to double-quoted (character scanner)
    8. map None/True/False/undefined/NaN to JSON literals
"""

import json
import logging
import re
from collections.abc import Callable

logger = logging.getLogger(__name__)

Segment = tuple[bool, str]  # (is_string_literal, text)

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*\n?")
_IDENT = r"\$?[A-Za-z_][\w$]*(?:\.[A-Za-z_$][\w$]*|\[[^\]\n]*\])*"
_CONCAT_ONLY_RE = re.compile(r"^\s*[+.]\s*$")
_CONCAT_IDENT_BETWEEN_RE = re.compile(rf"^\s*[+.]\s*({_IDENT})\s*[+.]\s*$")
_CONCAT_IDENT_AFTER_RE = re.compile(rf"^\s*[+.]\s*({_IDENT})(?=\s*(?:[,}}\]\n]|$))")
_CONCAT_IDENT_BEFORE_RE = re.compile(rf"([:\[,(]\s*)({_IDENT})\s*\+\s*$")
_FSTRING_PREFIX_RE = re.compile(r"(^|[^\w$])(?:[fF][rR]?|[rR][fF])$")
_RUBY_INTERP_RE = re.compile(r"#\{([^{}]*)\}")
_TEMPLATE_INTERP_RE = re.compile(r"\$\{([^{}]*)\}")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][\w$-]*)(\s*:)")
_LITERAL_RE = re.compile(r"\b(None|True|False|undefined|NaN)\b")
_LITERALS = {
    "None": "null",
    "True": "true",
    "False": "false",
    "undefined": "null",
    "NaN": "null",
}


def clean_text(text: str) -> str:
    """
    Run every cleaning step over ``text``.

    Deterministic and idempotent on its own output.
    """
    if not text:
        return ""
    for step in CLEANING_STEPS:
        text = _run_step(step, text)
    return text.strip()


def _run_step(step: Callable[[str], str], text: str) -> str:
    try:
        return step(text)
    except Exception as exc:  # a broken heuristic must not abort cleaning
        logger.debug(
            "Cleaning step skipped",
            extra={"step": step.__name__, "error": str(exc)},
        )
        return text


# ============================================================================
# String Literal Segmentation
# ============================================================================


def split_string_literals(text: str) -> list[Segment]:
    """
    Split text into alternating code and string-literal segments.

    Double-quoted and backtick strings may span lines. A single-quoted
    string that reaches the end of the line unclosed is treated as code
    (it is almost always an apostrophe).
    """
    segments: list[Segment] = []
    code_start = 0
    i = 0
    n = len(text)
    while i < n:
        quote = text[i]
        if quote not in "\"'`":
            i += 1
            continue
        end = _find_closing_quote(text, i)
        if end is None:
            if quote == "'":
                i += 1
                continue
            end = n  # unterminated (truncated output)
        if i > code_start:
            segments.append((False, text[code_start:i]))
        segments.append((True, text[i:end]))
        code_start = i = end
    if code_start < n:
        segments.append((False, text[code_start:]))
    return segments


def _find_closing_quote(text: str, start: int) -> int | None:
    """Index just past the closing quote of the literal opened at ``start``."""
    quote = text[start]
    escaped = False
    for j in range(start + 1, len(text)):
        ch = text[j]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == quote:
            return j + 1
        elif ch == "\n" and quote == "'":
            return None
    return None


def _join(segments: list[Segment]) -> str:
    return "".join(chunk for _, chunk in segments)


def map_code_segments(text: str, fn: Callable[[str], str]) -> str:
    """Apply ``fn`` to everything outside string literals."""
    return _join(
        [(is_string, chunk if is_string else fn(chunk)) for is_string, chunk in
         split_string_literals(text)]
    )


# ============================================================================
# Cleaning Steps
# ============================================================================


def strip_code_fence(text: str) -> str:
    first_brace = text.find("{")
    match = _FENCE_RE.search(text)
    if match and (first_brace == -1 or match.start() < first_brace):
        return match.group(1)
    opening = _OPEN_FENCE_RE.match(text)
    if opening:
        # truncated output: opening fence with no closing fence
        return text[opening.end():]
    return text


def remove_comments(text: str) -> str:
    out: list[str] = []
    for is_string, chunk in split_string_literals(text):
        out.append(chunk if is_string else _strip_comment_syntax(chunk))
    return "".join(out)


def _strip_comment_syntax(code: str) -> str:
    out: list[str] = []
    i = 0
    n = len(code)
    while i < n:
        if code.startswith("/*", i):
            end = code.find("*/", i + 2)
            i = n if end == -1 else end + 2
        elif code.startswith("<!--", i):
            end = code.find("-->", i + 4)
            i = n if end == -1 else end + 3
        elif (
            code.startswith("//", i)
            or code[i] == "#"
            or (code.startswith("--", i) and (i + 2 >= n or code[i + 2] in " \t\r\n"))
        ):
            end = code.find("\n", i)
            i = n if end == -1 else end  # keep the newline
        else:
            out.append(code[i])
            i += 1
    return "".join(out)


def collapse_concatenation(text: str) -> str:
    segments = split_string_literals(text)
    if not any(is_string for is_string, _ in segments):
        return text
    # Valid JSON has no concatenation, and "#{...}" in it is literal text.
    if _is_json_object(text):
        return text

    segments = [_normalize_literal(seg) for seg in _drop_fstring_prefixes(segments)]
    out: list[Segment] = []
    i = 0
    while i < len(segments):
        is_string, chunk = segments[i]
        next_is_string = i + 1 < len(segments) and segments[i + 1][0]

        if not is_string and out and out[-1][0]:
            fmt = _skip_format_call(segments, i)
            if fmt is not None:
                i, remainder = fmt
                if remainder:
                    out.append((False, remainder))
                continue
            between = _CONCAT_IDENT_BETWEEN_RE.match(chunk)
            if next_is_string and (between or _CONCAT_ONLY_RE.match(chunk)):
                middle = f"{{{between.group(1)}}}" if between else ""
                out[-1] = (True, _inline(out[-1][1], suffix=middle + _body(segments[i + 1][1])))
                i += 2
                continue
            after = _CONCAT_IDENT_AFTER_RE.match(chunk)
            if after:
                out[-1] = (True, _inline(out[-1][1], suffix=f"{{{after.group(1)}}}"))
                chunk = chunk[after.end():]
                if not chunk:
                    i += 1
                    continue

        if not is_string and next_is_string:
            lead = _CONCAT_IDENT_BEFORE_RE.search(chunk)
            if lead:
                out.append((False, chunk[: lead.start()] + lead.group(1)))
                out.append((True, _inline(segments[i + 1][1], prefix=f"{{{lead.group(2)}}}")))
                i += 2
                continue

        out.append((is_string, chunk))
        i += 1

    return _join(out)


def _is_json_object(text: str) -> bool:
    try:
        return isinstance(json.loads(extract_object(text)), dict)
    except ValueError:
        return False


def _skip_format_call(segments: list[Segment], index: int) -> tuple[int, str] | None:
    """Drop a ``.format(...)`` call that follows a string literal."""
    chunk = segments[index][1]
    stripped = chunk.lstrip()
    if not stripped.startswith(".format("):
        return None
    depth = 0
    j = index
    pos = len(chunk) - len(stripped) + len(".format")
    while j < len(segments):
        is_string, text = segments[j]
        if not is_string:
            for k in range(pos, len(text)):
                if text[k] == "(":
                    depth += 1
                elif text[k] == ")":
                    depth -= 1
                    if depth == 0:
                        return j + 1, text[k + 1:]
        j += 1
        pos = 0
    return None


def _drop_fstring_prefixes(segments: list[Segment]) -> list[Segment]:
    out: list[Segment] = []
    for index, (is_string, chunk) in enumerate(segments):
        next_is_string = index + 1 < len(segments) and segments[index + 1][0]
        if not is_string and next_is_string:
            chunk = _FSTRING_PREFIX_RE.sub(lambda m: m.group(1), chunk)
        out.append((is_string, chunk))
    return out


def _normalize_literal(segment: Segment) -> Segment:
    """Rewrite interpolations inside a literal; template literals become JSON strings."""
    is_string, chunk = segment
    if not is_string:
        return segment
    quote = chunk[0]
    if quote == "`":
        body = _body(chunk)
        body = _TEMPLATE_INTERP_RE.sub(r"{\1}", body)
        body = body.replace("\\`", "`").replace('"', '\\"').replace("\n", "\\n")
        return True, f'"{body}"'
    if quote == '"' and "#{" in chunk:
        return True, _RUBY_INTERP_RE.sub(r"{\1}", chunk)
    return segment


def _body(literal: str) -> str:
    """Contents of a quoted literal as double-quoted string body."""
    quote = literal[0]
    closed = len(literal) >= 2 and literal.endswith(quote)
    body = literal[1:-1] if closed else literal[1:]
    if quote == "'":
        body = body.replace("\\'", "'").replace('"', '\\"')
    return body


def _inline(literal: str, prefix: str = "", suffix: str = "") -> str:
    return f'"{prefix}{_body(literal)}{suffix}"'


def extract_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return text
    return text[start:end + 1]


def remove_trailing_commas(text: str) -> str:
    return map_code_segments(text, lambda code: _TRAILING_COMMA_RE.sub(r"\1", code))


def quote_bare_keys(text: str) -> str:
    return map_code_segments(text, lambda code: _BARE_KEY_RE.sub(r'\1"\2"\3', code))


def normalize_quotes(text: str) -> str:
    """
    Convert single-quoted literals to double-quoted ones.

    Left-to-right scanner with ``in_string`` and ``escaped`` flags. A single
    quote only opens a literal after a structural character (``{ [ , :``) and
    when it closes on the same line, so apostrophes in bare text survive.
    Single quotes inside double-quoted strings are never touched.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    quote = ""
    last_significant = ""
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if not in_string:
            if ch == '"' or (
                ch == "'"
                and last_significant in ("", "{", "[", ",", ":", "(")
                and _find_closing_quote(text, i) is not None
            ):
                in_string = True
                quote = ch
                out.append('"')
            else:
                out.append(ch)
            if not ch.isspace():
                last_significant = ch
            i += 1
            continue

        if escaped:
            escaped = False
            if quote == "'" and ch == "'":
                out.append("'")  # \' is not a valid JSON escape
            else:
                out.append("\\" + ch)
        elif ch == "\\":
            escaped = True
        elif ch == quote:
            in_string = False
            out.append('"')
            last_significant = '"'
        elif ch == '"':  # only reachable inside a single-quoted literal
            out.append('\\"')
        else:
            out.append(ch)
        i += 1

    if escaped:
        out.append("\\")
    return "".join(out)


def map_literals(text: str) -> str:
    return map_code_segments(
        text, lambda code: _LITERAL_RE.sub(lambda m: _LITERALS[m.group(1)], code)
    )


CLEANING_STEPS: tuple[Callable[[str], str], ...] = (
    strip_code_fence,
    remove_comments,
    collapse_concatenation,
    extract_object,
    remove_trailing_commas,
    quote_bare_keys,
    normalize_quotes,
    map_literals,
)
