"""Tests for raw search payload normalization."""
import json

from app.models.chat import SearchResult
from app.tools.search_normalizer import is_no_results, normalize_search_response


class TestNormalizeShapes:
    def test_results_envelope_preserves_fields(self):
        payload = {"results": [{"title": "A", "url": "http://a", "content": "x", "engine": "e"}]}

        results = normalize_search_response(payload, 5)

        assert results == [SearchResult(title="A", url="http://a", content="x", engine="e")]

    def test_results_envelope_as_json_text(self):
        payload = json.dumps({"results": [{"title": "A", "url": "http://a", "content": "x", "engine": "e"}]})

        results = normalize_search_response(payload, 5)

        assert results == [SearchResult(title="A", url="http://a", content="x", engine="e")]

    def test_comma_joined_tool_objects(self):
        raw = ",".join(
            json.dumps(hit)
            for hit in (
                {"title": "One", "link": "https://one.test", "snippet": "first", "engine": "bing"},
                {"title": "Two", "link": "https://two.test", "snippet": "second", "engine": "ddg"},
            )
        )

        results = normalize_search_response(raw, 5)

        assert [r.title for r in results] == ["One", "Two"]
        assert results[0].url == "https://one.test"
        assert results[0].content == "first"
        assert results[1].engine == "ddg"

    def test_json_array_text(self):
        raw = json.dumps([{"title": "One", "url": "https://one.test", "content": "c"}])

        results = normalize_search_response(raw, 5)

        assert results[0].url == "https://one.test"
        assert results[0].engine == "searxng"

    def test_single_object(self):
        results = normalize_search_response({"title": "Solo", "link": "https://solo.test"}, 5)

        assert len(results) == 1
        assert results[0].title == "Solo"
        assert results[0].content == ""

    def test_list_of_dicts(self):
        payload = [
            {"title": "A", "url": "https://a.test"},
            "not a result",
            {"title": "B", "url": "https://b.test"},
        ]

        results = normalize_search_response(payload, 5)

        assert [r.title for r in results] == ["A", "B"]

    def test_missing_title_and_engine_use_defaults(self):
        results = normalize_search_response(
            [{"url": "https://a.test", "content": "c"}],
            5,
            default_engine="tool",
        )

        assert results[0].title == "Untitled"
        assert results[0].engine == "tool"

    def test_limit_truncates(self):
        payload = {"results": [{"title": str(i), "url": f"https://{i}.test"} for i in range(10)]}

        results = normalize_search_response(payload, 3)

        assert [r.title for r in results] == ["0", "1", "2"]

    def test_bytes_payload(self):
        raw = json.dumps([{"title": "A", "url": "https://a.test"}]).encode()

        assert normalize_search_response(raw, 5)[0].title == "A"


class TestNormalizeTolerance:
    def test_malformed_text_returns_empty(self):
        assert normalize_search_response("{not json", 5) == []
        assert normalize_search_response("<html>oops</html>", 5) == []

    def test_empty_inputs_return_empty(self):
        assert normalize_search_response("", 5) == []
        assert normalize_search_response("   ", 5) == []
        assert normalize_search_response(None, 5) == []
        assert normalize_search_response([], 5) == []
        assert normalize_search_response({}, 5) == []

    def test_unexpected_types_return_empty(self):
        assert normalize_search_response(42, 5) == []
        assert normalize_search_response(json.dumps(42), 5) == []
        assert normalize_search_response({"results": "nope"}, 5) == []

    def test_no_results_sentinels(self):
        for text in ("No good results found.", "No good Search Result was found", "no results found"):
            assert is_no_results(text)
            assert normalize_search_response(text, 5) == []

    def test_regular_text_is_not_sentinel(self):
        assert not is_no_results('{"title": "No results found in 2020 census"}')

    def test_zero_limit(self):
        assert normalize_search_response({"results": [{"title": "A", "url": "u"}]}, 0) == []
