"""
Slack search query parser.

Turns a raw Slack search string into structured components and builds Slack
compatible query strings back from them.

Supported syntax:
    - Bare terms: ``deploy failed``
    - Quoted phrases: ``"release notes"``
    - Operators: ``in:#general``, ``from:@alice``, ``has:link``,
      ``after:2024-01-01``, ``before:2024-12-31``, ``filetype:pdf``,
      ``is:starred``, ``during:january``
    - Boolean operators: ``AND``, ``OR``, ``NOT`` (case-insensitive)
    - Parenthesised groups: ``(bug OR issue)``

Parsing never raises for bad input; it returns a tagged
``QueryParseSuccess`` or ``QueryParseFailure`` carrying an error code.

Example:
    >>> from slackcache.search.query_parser import parse_search_query
    >>> result = parse_search_query('deploy in:#ops "rollback plan"')
    >>> result.success
    True
    >>> result.query.terms, result.query.phrases
    (['deploy'], ['rollback plan'])
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal, Union

import regex as regex_mod

from ..utils.logging_config import get_logger

logger = get_logger()


class QueryErrorCode:
    EMPTY_QUERY = "EMPTY_QUERY"
    QUERY_TOO_LONG = "QUERY_TOO_LONG"
    QUERY_TOO_COMPLEX = "QUERY_TOO_COMPLEX"
    INVALID_OPERATOR = "INVALID_OPERATOR"
    OPERATOR_NOT_ALLOWED = "OPERATOR_NOT_ALLOWED"
    UNMATCHED_QUOTES = "UNMATCHED_QUOTES"
    UNMATCHED_PARENTHESES = "UNMATCHED_PARENTHESES"
    PARSE_ERROR = "PARSE_ERROR"


OPERATOR_FIELD_MAP: dict[str, str] = {
    "in": "channel",
    "from": "user",
    "has": "content_type",
    "after": "date",
    "before": "date",
    "filetype": "file_type",
    "is": "status",
    "during": "date",
}

BOOLEAN_OPERATORS = ("AND", "OR", "NOT")

DEFAULT_MAX_QUERY_LENGTH = 1000
DEFAULT_MAX_TOKENS = 500

_PHRASE_RE = regex_mod.compile(r'"([^"]*)"')
# An operator starts a token (or follows an opening parenthesis).
_OPERATOR_RE = regex_mod.compile(r"(?<![^\s(])(\w+):([^\s()]+)")
_MALFORMED_OPERATOR_RE = regex_mod.compile(r"(?<![^\s(])(\w+):(?=[\s)]|$)")
_GROUP_RE = regex_mod.compile(r"\(([^()]*)\)")
_BOOLEAN_RE = regex_mod.compile(r"\b(AND|OR|NOT)\b", regex_mod.IGNORECASE)
_WHITESPACE_RE = regex_mod.compile(r"\s+")

_PHRASE_MARK = "\x00"
_OPERATOR_MARK = "\x01"
_PLACEHOLDERS = frozenset([_PHRASE_MARK, _OPERATOR_MARK])


@dataclass(frozen=True)
class ParsedOperator:
    type: str
    value: str
    field: str


@dataclass(frozen=True)
class ParsedBooleanOperator:
    type: str
    position: int


@dataclass
class QueryGroup:
    terms: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)
    operators: list[ParsedOperator] = field(default_factory=list)
    boolean_operator: str | None = None


@dataclass
class ParsedSearchQuery:
    """Structured components of a search query."""

    terms: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)
    operators: list[ParsedOperator] = field(default_factory=list)
    boolean_operators: list[ParsedBooleanOperator] = field(default_factory=list)
    groups: list[QueryGroup] = field(default_factory=list)
    raw: str = ""


@dataclass
class SearchQueryOptions:
    """Parsing and building options.

    ``allowed_operators`` of ``None`` allows every known operator.
    """

    default_channel: str | None = None
    allowed_operators: tuple[str, ...] | None = None
    max_query_length: int = DEFAULT_MAX_QUERY_LENGTH
    max_tokens: int = DEFAULT_MAX_TOKENS
    enable_grouping: bool = True
    enable_boolean_operators: bool = True
    channel_name_map: Mapping[str, str] | None = None


@dataclass(frozen=True)
class SearchQueryError:
    code: str
    message: str
    position: int | None = None
    suggestion: str | None = None


@dataclass(frozen=True)
class QueryParseSuccess:
    query: ParsedSearchQuery
    success: Literal[True] = True


@dataclass(frozen=True)
class QueryParseFailure:
    error: SearchQueryError
    success: Literal[False] = False


QueryParseResult = Union[QueryParseSuccess, QueryParseFailure]


@dataclass
class QueryValidationResult:
    is_valid: bool
    errors: list[SearchQueryError] = field(default_factory=list)
    warnings: list[SearchQueryError] = field(default_factory=list)


def _fail(code: str, message: str, **kwargs) -> QueryParseFailure:
    return QueryParseFailure(SearchQueryError(code=code, message=message, **kwargs))


def _operator_suggestion() -> str:
    return f"Valid operators are: {', '.join(OPERATOR_FIELD_MAP)}"


def _is_boolean_token(token: str) -> bool:
    return token.upper() in BOOLEAN_OPERATORS


def _check_structure(query: str, options: SearchQueryOptions) -> QueryParseFailure | None:
    """Length, complexity and bracket checks performed before extraction."""
    if len(_WHITESPACE_RE.split(query)) > options.max_tokens:
        return _fail(QueryErrorCode.QUERY_TOO_COMPLEX, "Query is too complex")

    if len(query) > options.max_query_length:
        return _fail(
            QueryErrorCode.QUERY_TOO_LONG,
            f"Query exceeds maximum length of {options.max_query_length} characters",
        )

    # An odd quote count is tolerated when the quote sits inside a word.
    if query.count('"') % 2 != 0 and regex_mod.search(r'"\s|\s"', query):
        return _fail(QueryErrorCode.UNMATCHED_QUOTES, "Unmatched quotes in query")

    depth = 0
    for char in query:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                break
    if depth != 0:
        return _fail(QueryErrorCode.UNMATCHED_PARENTHESES, "Unmatched parentheses in query")

    return None


def _extract_operators(
    text: str, options: SearchQueryOptions
) -> tuple[list[ParsedOperator], str] | QueryParseFailure:
    malformed = _MALFORMED_OPERATOR_RE.search(text)
    if malformed:
        name = malformed.group(1)
        return _fail(
            QueryErrorCode.INVALID_OPERATOR,
            f"Operator '{name}:' is missing value",
            position=malformed.start(),
            suggestion=f"Use format: {name}:value",
        )

    operators: list[ParsedOperator] = []
    for match in _OPERATOR_RE.finditer(text):
        name = match.group(1).lower()
        value = match.group(2)

        if name not in OPERATOR_FIELD_MAP:
            return _fail(
                QueryErrorCode.INVALID_OPERATOR,
                f"Invalid operator: {match.group(1)}",
                position=match.start(),
                suggestion=_operator_suggestion(),
            )

        if options.allowed_operators is not None and name not in options.allowed_operators:
            return _fail(
                QueryErrorCode.OPERATOR_NOT_ALLOWED,
                f"Operator '{name}' is not allowed",
                position=match.start(),
            )

        operators.append(ParsedOperator(type=name, value=value, field=OPERATOR_FIELD_MAP[name]))

    return operators, _OPERATOR_RE.sub(f" {_OPERATOR_MARK} ", text)


def _extract_groups(text: str, enable_booleans: bool) -> tuple[list[QueryGroup], str]:
    groups: list[QueryGroup] = []
    # Innermost groups first, so nested parentheses flatten into separate groups.
    while True:
        match = _GROUP_RE.search(text)
        if match is None:
            break
        content = match.group(1)
        tokens = [
            token
            for token in _WHITESPACE_RE.split(content.strip())
            if token and token not in _PLACEHOLDERS
        ]
        if enable_booleans:
            terms = [token for token in tokens if not _is_boolean_token(token)]
        else:
            terms = tokens

        boolean_operator = None
        upper_tokens = {token.upper() for token in tokens}
        if enable_booleans and "OR" in upper_tokens:
            boolean_operator = "OR"
        elif enable_booleans and "AND" in upper_tokens:
            boolean_operator = "AND"

        if terms:
            groups.append(QueryGroup(terms=terms, boolean_operator=boolean_operator))
        text = text[: match.start()] + " " + text[match.end() :]
    return groups, text


def _extract_boolean_operators(text: str) -> list[ParsedBooleanOperator]:
    found: list[ParsedBooleanOperator] = []
    for match in _BOOLEAN_RE.finditer(text):
        preceding = [
            token
            for token in _WHITESPACE_RE.split(text[: match.start()])
            if token.strip("()") and not _is_boolean_token(token.strip("()"))
        ]
        found.append(
            ParsedBooleanOperator(type=match.group(1).upper(), position=max(1, len(preceding)))
        )
    return found


def parse_search_query(query: str, options: SearchQueryOptions | None = None) -> QueryParseResult:
    """
    Parse a search query string into structured components.

    Args:
        query: Raw search query
        options: Parsing options

    Returns:
        ``QueryParseSuccess`` with the parsed query, or ``QueryParseFailure``
        with an error code from ``QueryErrorCode``.
    """
    options = options or SearchQueryOptions()

    if not isinstance(query, str) or not query.strip():
        return _fail(QueryErrorCode.EMPTY_QUERY, "Query cannot be empty")

    trimmed = query.strip()

    try:
        failure = _check_structure(trimmed, options)
        if failure is not None:
            return failure

        parsed = ParsedSearchQuery(raw=trimmed)

        parsed.phrases = _PHRASE_RE.findall(trimmed)
        # Phrases and operators leave placeholder tokens so boolean positions still count them.
        placeholder_text = _PHRASE_RE.sub(f" {_PHRASE_MARK} ", trimmed)

        operators = _extract_operators(placeholder_text, options)
        if isinstance(operators, QueryParseFailure):
            return operators
        parsed.operators, working = operators

        if options.enable_boolean_operators:
            parsed.boolean_operators = _extract_boolean_operators(working)

        if options.enable_grouping:
            parsed.groups, working = _extract_groups(working, options.enable_boolean_operators)

        terms: list[str] = []
        for token in _WHITESPACE_RE.split(working):
            token = token.strip("()")
            if not token or token in _PLACEHOLDERS:
                continue
            if options.enable_boolean_operators and _is_boolean_token(token):
                continue
            terms.append(token)
        parsed.terms = terms

        return QueryParseSuccess(parsed)
    except Exception as e:  # pragma: no cover
        logger.error(f"Unexpected error parsing search query: {e}")
        return _fail(QueryErrorCode.PARSE_ERROR, str(e) or "Unknown parsing error")


def escape_slack_search_text(text: str) -> str:
    """Escape backslashes and quotes and collapse whitespace."""
    if not text or not isinstance(text, str):
        return ""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    escaped = regex_mod.sub(r"[\r\n\t]", " ", escaped)
    return _WHITESPACE_RE.sub(" ", escaped).strip()


def resolve_channel_name(channel_id: str, channel_map: Mapping[str, str] | None = None) -> str:
    """Map a channel id to its name, stripping a leading ``#``."""
    if not channel_id:
        return ""
    if channel_map and channel_id in channel_map:
        return channel_map[channel_id] or channel_id
    if channel_id.startswith("#"):
        return channel_id[1:]
    return channel_id


def is_operator_allowed(operator: str, options: SearchQueryOptions | None = None) -> bool:
    if options is None or options.allowed_operators is None:
        return operator in OPERATOR_FIELD_MAP
    return operator in options.allowed_operators


def build_slack_search_query(
    parsed: ParsedSearchQuery, options: SearchQueryOptions | None = None
) -> str:
    """
    Build a Slack API compatible query string from parsed components.

    Phrases come first, then terms with boolean operators interleaved, then
    operators. A default channel from ``options`` is appended when the query
    has no ``in:`` operator.
    """
    parts = [f'"{escape_slack_search_text(phrase)}"' for phrase in parsed.phrases]
    parts.extend(escape_slack_search_text(term) for term in parsed.terms)

    if parsed.boolean_operators:
        combined: list[str] = []
        index = 0
        for boolean in parsed.boolean_operators:
            if index < len(parts):
                combined.append(parts[index])
                index += 1
            combined.append(boolean.type)
            if index < len(parts):
                combined.append(parts[index])
                index += 1
        combined.extend(parts[index:])
        parts = [part for part in combined if part]

    parts.extend(f"{operator.type}:{operator.value}" for operator in parsed.operators)

    if options and options.default_channel and not any(op.type == "in" for op in parsed.operators):
        channel_name = resolve_channel_name(options.default_channel, options.channel_name_map)
        parts.append(f"in:#{channel_name}")

    return " ".join(parts).strip()


def validate_search_query(
    query: str, options: SearchQueryOptions | None = None
) -> QueryValidationResult:
    """Parse the query and report every problem found as an error list."""
    errors: list[SearchQueryError] = []
    warnings: list[SearchQueryError] = []

    result = parse_search_query(query, options)
    if isinstance(result, QueryParseFailure):
        errors.append(result.error)
    else:
        if len(result.query.boolean_operators) > len(result.query.terms) + len(result.query.phrases):
            warnings.append(
                SearchQueryError(
                    code=QueryErrorCode.PARSE_ERROR,
                    message="Query has more boolean operators than terms",
                )
            )
        if not (result.query.terms or result.query.phrases or result.query.groups):
            warnings.append(
                SearchQueryError(
                    code=QueryErrorCode.EMPTY_QUERY,
                    message="Query contains only operators",
                )
            )

    return QueryValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
