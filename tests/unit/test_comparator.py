"""
Unit tests for ResponseComparator.

Covers status, header policy handling, JSON structural diffs and the byte
fallback for everything else.
"""

import json

import pytest
from semver import Version

from backcompat.comparison.comparator import ResponseComparator, is_json_media_type
from backcompat.comparison.result import Verdict
from backcompat.domain.fixture import FixtureKey
from backcompat.domain.http_message import Headers, HTTPResponse
from backcompat.policy.matcher import PathPolicy, PolicyMatcher

KEY = FixtureKey(Version(1, 0, 0), "-users")


def json_response(body, status=200, content_type="application/json", headers=()):
    if not isinstance(body, (bytes, str)):
        body = json.dumps(body)
    if isinstance(body, str):
        body = body.encode("utf-8")
    return HTTPResponse(
        status=status,
        reason="OK",
        headers=Headers([("Content-Type", content_type)] + list(headers)),
        body=body,
    )


@pytest.fixture
def comparator():
    return ResponseComparator()


@pytest.fixture
def policy():
    return PolicyMatcher().resolve("/users")


def fields(result):
    return [divergence.field for divergence in result.divergences]


class TestMediaType:
    """Tests for JSON media type detection."""

    @pytest.mark.parametrize(
        "content_type",
        [
            "application/json",
            "application/json; charset=utf-8",
            "TEXT/JSON",
            "application/problem+json",
            "application/vnd.api+json;v=2",
        ],
    )
    def test_json_types(self, content_type):
        assert is_json_media_type(content_type)

    @pytest.mark.parametrize("content_type", ["", None, "text/plain", "application/jsonp"])
    def test_other_types(self, content_type):
        assert not is_json_media_type(content_type)


class TestStatus:
    """Scenario: status codes always matter."""

    def test_status_mismatch_always_fails(self, comparator):
        policy = PolicyMatcher([PathPolicy("**", ignore=("*",))]).resolve("/users")

        result = comparator.compare(KEY, json_response({}), json_response({}, status=404), policy)

        assert result.verdict is Verdict.FAIL
        assert result.divergences[0].field == "status"
        assert result.divergences[0].reason == "status 200 != 404"

    def test_identical_responses_pass(self, comparator, policy):
        result = comparator.compare(KEY, json_response({"a": 1}), json_response({"a": 1}), policy)

        assert result.verdict is Verdict.PASS
        assert result.divergences == []


class TestHeaders:
    """Tests for header comparison under a policy."""

    def test_presence_only_header_values_may_differ(self, comparator, policy):
        base = json_response({}, headers=[("Date", "Mon, 01 Jan 2024 00:00:00 GMT")])
        target = json_response({}, headers=[("Date", "Tue, 02 Jan 2024 00:00:00 GMT")])

        assert comparator.compare(KEY, base, target, policy).passed

    def test_presence_only_header_missing_fails(self, comparator, policy):
        base = json_response({}, headers=[("Date", "Mon")])
        target = json_response({})

        result = comparator.compare(KEY, base, target, policy)

        assert result.verdict is Verdict.FAIL
        assert fields(result) == ["header:Date"]
        assert result.divergences[0].reason == "missing in target"
        assert result.divergences[0].base_value == ["Mon"]
        assert result.divergences[0].target_value is None

    def test_presence_only_header_unexpected_fails(self, comparator, policy):
        result = comparator.compare(
            KEY, json_response({}), json_response({}, headers=[("X-Trace", "1")]), policy
        )

        assert result.divergences[0].reason == "unexpected in target"

    def test_ignored_headers_never_diverge(self, comparator, policy):
        base = json_response({}, headers=[("Connection", "close")])
        target = json_response({}, headers=[("Connection", "keep-alive"), ("connection", "x")])

        assert comparator.compare(KEY, base, target, policy).passed
        assert comparator.compare(KEY, base, json_response({}), policy).passed

    def test_value_multiset_is_order_insensitive(self, comparator, policy):
        base = json_response({}, headers=[("Vary", "Accept"), ("Vary", "Origin")])
        target = json_response({}, headers=[("vary", "Origin"), ("VARY", "Accept")])

        assert comparator.compare(KEY, base, target, policy).passed

    def test_value_difference_reports_missing_and_extra(self, comparator, policy):
        base = json_response({}, headers=[("Vary", "Accept"), ("Vary", "Origin")])
        target = json_response({}, headers=[("Vary", "Accept"), ("Vary", "Cookie")])

        result = comparator.compare(KEY, base, target, policy)

        assert len(result.divergences) == 1
        assert result.divergences[0].reason == "values differ: missing ['Origin'], extra ['Cookie']"

    def test_content_type_difference(self, comparator, policy):
        base = json_response(b"{}")
        target = json_response(b"{}", content_type="text/html")

        result = comparator.compare(KEY, base, target, policy)

        assert fields(result) == ["header:Content-Type"]

    def test_headers_reported_in_sorted_order(self, comparator, policy):
        base = json_response({}, headers=[("B-Header", "1"), ("A-Header", "1")])
        target = json_response({})

        result = comparator.compare(KEY, base, target, policy)

        assert fields(result) == ["header:A-Header", "header:B-Header"]


class TestJsonBodies:
    """Tests for structural JSON comparison."""

    def test_key_order_is_irrelevant(self, comparator, policy):
        base = json_response('{"a":1,"b":[1,2]}')
        target = json_response('{"b":[1,2],"a":1}')

        assert comparator.compare(KEY, base, target, policy).passed

    def test_array_order_matters(self, comparator, policy):
        base = json_response('{"a":1,"b":[1,2]}')
        target = json_response('{"b":[2,1],"a":1}')

        result = comparator.compare(KEY, base, target, policy)

        assert result.verdict is Verdict.FAIL
        assert fields(result) == ["body$.b[0]", "body$.b[1]"]
        assert result.divergences[0].base_value == 1
        assert result.divergences[0].target_value == 2

    def test_number_formatting_is_irrelevant(self, comparator, policy):
        base = json_response('{"n": 1, "m": 2.50}')
        target = json_response('{"n": 1e0, "m": 2.5}')

        assert comparator.compare(KEY, base, target, policy).passed

    def test_number_difference(self, comparator, policy):
        result = comparator.compare(
            KEY, json_response('{"n": 1}'), json_response('{"n": 1.5}'), policy
        )

        assert result.divergences[0].reason == "number differs"
        assert result.divergences[0].target_value == 1.5

    def test_boolean_is_not_a_number(self, comparator, policy):
        result = comparator.compare(
            KEY, json_response('{"flag": 1}'), json_response('{"flag": true}'), policy
        )

        assert result.divergences[0].reason == "type number != boolean"

    def test_null_differs_from_absent(self, comparator, policy):
        result = comparator.compare(
            KEY, json_response('{"a": null}'), json_response("{}"), policy
        )

        assert fields(result) == ["body$.a"]
        assert result.divergences[0].reason == "key missing in target"

    def test_unexpected_key(self, comparator, policy):
        result = comparator.compare(
            KEY, json_response("{}"), json_response('{"new field": "x"}'), policy
        )

        assert fields(result) == ['body$["new field"]']
        assert result.divergences[0].reason == "unexpected key in target"

    def test_every_leaf_is_reported(self, comparator, policy):
        base = {"items": [{"id": 1, "name": "a"}, {"id": 2}], "total": 2}
        target = {"items": [{"id": 1, "name": "b"}], "total": 3}

        result = comparator.compare(KEY, json_response(base), json_response(target), policy)

        assert fields(result) == ["body$.items[0].name", "body$.items", "body$.total"]
        assert result.divergences[1].reason == "array length 2 != 1"

    def test_both_sides_must_be_json(self, comparator, policy):
        base = json_response('{"a":1}')
        target = json_response('{ "a": 1 }', content_type="text/plain")

        result = comparator.compare(KEY, base, target, policy)

        assert "body" in fields(result)

    def test_unparsable_json_falls_back_to_bytes(self, comparator, policy):
        base = json_response(b'{"a":1}')
        target = json_response(b'{"a":1')

        result = comparator.compare(KEY, base, target, policy)

        assert fields(result) == ["body"]
        assert result.divergences[0].reason == "body differs (7 bytes vs 6 bytes)"


class TestByteBodies:
    """Tests for non-JSON bodies."""

    def test_exact_bytes(self, comparator, policy):
        base = json_response(b"hello", content_type="text/plain")
        target = json_response(b"hello!", content_type="text/plain")

        result = comparator.compare(KEY, base, target, policy)

        assert fields(result) == ["body"]
        assert result.divergences[0].base_value == "hello"

    def test_empty_and_absent_are_equivalent(self, comparator, policy):
        base = HTTPResponse(status=204, headers=Headers(), body=b"")
        target = HTTPResponse(status=204, headers=Headers())

        assert comparator.compare(KEY, base, target, policy).passed

    def test_all_divergences_collected(self, comparator, policy):
        base = json_response(b"a", content_type="text/plain", headers=[("ETag", "1")])
        target = json_response(b"b", status=500, content_type="text/plain")

        result = comparator.compare(KEY, base, target, policy)

        assert fields(result) == ["status", "header:ETag", "body"]
        assert result.summary_line() == "status: status 200 != 500 (+2 more)"
