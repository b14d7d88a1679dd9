"""Tests for slackcache.search.query_parser module."""

from __future__ import annotations

import pytest

from slackcache.search.query_parser import (
    ParsedBooleanOperator,
    ParsedOperator,
    ParsedSearchQuery,
    QueryErrorCode,
    QueryParseFailure,
    QueryParseSuccess,
    SearchQueryOptions,
    build_slack_search_query,
    escape_slack_search_text,
    is_operator_allowed,
    parse_search_query,
    resolve_channel_name,
    validate_search_query,
)


def _parse(query: str, **options) -> ParsedSearchQuery:
    result = parse_search_query(query, SearchQueryOptions(**options) if options else None)
    assert isinstance(result, QueryParseSuccess), result
    return result.query


def _error_code(query: str, **options) -> str:
    result = parse_search_query(query, SearchQueryOptions(**options) if options else None)
    assert isinstance(result, QueryParseFailure)
    return result.error.code


class TestParseComponents:
    """Tests for successful parsing."""

    def test_terms(self):
        parsed = _parse("deploy failed")
        assert parsed.terms == ["deploy", "failed"]
        assert parsed.raw == "deploy failed"

    def test_phrases(self):
        parsed = _parse('deploy "rollback plan"')
        assert parsed.phrases == ["rollback plan"]
        assert parsed.terms == ["deploy"]

    def test_operators(self):
        parsed = _parse("deploy in:#ops from:@alice has:link")
        assert [(op.type, op.value, op.field) for op in parsed.operators] == [
            ("in", "#ops", "channel"),
            ("from", "@alice", "user"),
            ("has", "link", "content_type"),
        ]
        assert parsed.terms == ["deploy"]

    def test_operator_name_case_insensitive(self):
        parsed = _parse("IN:#ops")
        assert parsed.operators[0].type == "in"

    def test_boolean_operators(self):
        parsed = _parse("deploy AND rollback or revert")
        assert parsed.boolean_operators == [
            ParsedBooleanOperator(type="AND", position=1),
            ParsedBooleanOperator(type="OR", position=2),
        ]
        assert parsed.terms == ["deploy", "rollback", "revert"]

    def test_boolean_word_in_operator_value_ignored(self):
        parsed = _parse("status in:or")
        assert parsed.boolean_operators == []
        assert parsed.operators[0].value == "or"

    def test_groups(self):
        parsed = _parse("(bug OR issue) deploy")
        assert len(parsed.groups) == 1
        assert parsed.groups[0].terms == ["bug", "issue"]
        assert parsed.groups[0].boolean_operator == "OR"
        assert parsed.terms == ["deploy"]

    def test_nested_groups_flatten(self):
        parsed = _parse("((a OR b) AND c)")
        assert [group.terms for group in parsed.groups] == [["a", "b"], ["c"]]
        assert parsed.groups[1].boolean_operator == "AND"

    def test_grouping_disabled(self):
        parsed = _parse("(bug OR issue)", enable_grouping=False)
        assert parsed.groups == []
        assert parsed.terms == ["bug", "issue"]

    def test_booleans_disabled(self):
        parsed = _parse("bug OR issue", enable_boolean_operators=False)
        assert parsed.boolean_operators == []
        assert parsed.terms == ["bug", "OR", "issue"]

    def test_quote_inside_word_tolerated(self):
        parsed = _parse('it"s fine')
        assert parsed.terms == ['it"s', "fine"]


class TestParseErrors:
    """Tests for parse failures and their codes."""

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_empty(self, query):
        assert _error_code(query) == QueryErrorCode.EMPTY_QUERY

    def test_too_long(self):
        assert _error_code("a" * 20, max_query_length=10) == QueryErrorCode.QUERY_TOO_LONG

    def test_too_complex(self):
        assert _error_code("a b c d", max_tokens=3) == QueryErrorCode.QUERY_TOO_COMPLEX

    def test_unmatched_quotes(self):
        assert _error_code('say "hello world') == QueryErrorCode.UNMATCHED_QUOTES

    @pytest.mark.parametrize("query", ["(a OR b", "a OR b)", ")a("])
    def test_unmatched_parentheses(self, query):
        assert _error_code(query) == QueryErrorCode.UNMATCHED_PARENTHESES

    def test_unknown_operator(self):
        result = parse_search_query("bogus:value")
        assert result.error.code == QueryErrorCode.INVALID_OPERATOR
        assert "Valid operators are" in result.error.suggestion

    def test_operator_missing_value(self):
        result = parse_search_query("deploy in: now")
        assert result.error.code == QueryErrorCode.INVALID_OPERATOR
        assert result.error.suggestion == "Use format: in:value"

    def test_operator_not_allowed(self):
        code = _error_code("in:#ops", allowed_operators=("from",))
        assert code == QueryErrorCode.OPERATOR_NOT_ALLOWED


class TestHelpers:
    """Tests for escaping, channel resolution and query building."""

    def test_escape(self):
        assert escape_slack_search_text('say "hi"\n\tnow') == 'say \\"hi\\" now'
        assert escape_slack_search_text("") == ""

    def test_resolve_channel_name(self):
        assert resolve_channel_name("C1", {"C1": "general"}) == "general"
        assert resolve_channel_name("#random") == "random"
        assert resolve_channel_name("C2") == "C2"
        assert resolve_channel_name("") == ""

    def test_is_operator_allowed(self):
        assert is_operator_allowed("in") is True
        assert is_operator_allowed("bogus") is False
        assert is_operator_allowed("in", SearchQueryOptions(allowed_operators=("from",))) is False

    def test_build_round_trip_order(self):
        parsed = _parse('deploy "rollback plan" in:#ops')
        assert build_slack_search_query(parsed) == '"rollback plan" deploy in:#ops'

    def test_build_interleaves_booleans(self):
        parsed = ParsedSearchQuery(
            terms=["bug", "issue"],
            boolean_operators=[ParsedBooleanOperator(type="OR", position=1)],
        )
        assert build_slack_search_query(parsed) == "bug OR issue"

    def test_build_default_channel(self):
        parsed = ParsedSearchQuery(terms=["deploy"])
        options = SearchQueryOptions(default_channel="C1", channel_name_map={"C1": "ops"})
        assert build_slack_search_query(parsed, options) == "deploy in:#ops"

    def test_build_default_channel_not_added_with_in(self):
        parsed = ParsedSearchQuery(
            terms=["deploy"],
            operators=[ParsedOperator(type="in", value="#eng", field="channel")],
        )
        options = SearchQueryOptions(default_channel="C1")
        assert build_slack_search_query(parsed, options) == "deploy in:#eng"


class TestValidateSearchQuery:
    """Tests for validation reports."""

    def test_valid(self):
        report = validate_search_query("deploy failed")
        assert report.is_valid is True
        assert report.errors == []
        assert report.warnings == []

    def test_invalid(self):
        report = validate_search_query("(deploy")
        assert report.is_valid is False
        assert report.errors[0].code == QueryErrorCode.UNMATCHED_PARENTHESES

    def test_operators_only_warning(self):
        report = validate_search_query("in:#ops from:@alice")
        assert report.is_valid is True
        assert [w.code for w in report.warnings] == [QueryErrorCode.EMPTY_QUERY]

    def test_more_booleans_than_terms_warning(self):
        report = validate_search_query("deploy AND OR")
        assert any("more boolean operators" in w.message for w in report.warnings)
