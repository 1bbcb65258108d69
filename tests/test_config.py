"""Unit tests for the RequestSpec builder and YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from volley.config import build_spec, load_config, merge_config, read_config_file
from volley.exceptions import ConfigError


def test_build_spec_defaults() -> None:
    spec = build_spec({"url": "http://example.test/ok"})
    assert spec.method == "GET"
    assert spec.threads == 1
    assert spec.iterations == 1
    assert dict(spec.headers) == {}
    assert dict(spec.params) == {}
    assert dict(spec.rules) == {}
    assert spec.total_requests == 1


@pytest.mark.parametrize("value", [0, -1, -100, None])
def test_build_spec_counts_floor_to_one(value) -> None:
    spec = build_spec({"url": "http://example.test/", "threads": value, "iterations": value})
    assert spec.threads == 1
    assert spec.iterations == 1


def test_build_spec_counts_no_upper_bound() -> None:
    spec = build_spec({"url": "http://example.test/", "threads": 5000, "iterations": "7"})
    assert spec.threads == 5000
    assert spec.iterations == 7


def test_build_spec_count_wrong_type() -> None:
    with pytest.raises(ConfigError, match="threads must be an integer"):
        build_spec({"url": "http://example.test/", "threads": "many"})


def test_build_spec_method_normalized() -> None:
    assert build_spec({"url": "http://example.test/", "method": " post "}).method == "POST"
    assert build_spec({"url": "http://example.test/", "method": ""}).method == "GET"


@pytest.mark.parametrize("url", [None, "", "   "])
def test_build_spec_empty_url(url) -> None:
    with pytest.raises(ConfigError):
        build_spec({"url": url})


@pytest.mark.parametrize(
    "url",
    ["not-a-url", "ftp://example.test/file", "http://", "example.test/path", "http://host:notaport/"],
)
def test_build_spec_invalid_url(url: str) -> None:
    with pytest.raises(ConfigError, match="Invalid url"):
        build_spec({"url": url})


def test_build_spec_headers_preserve_case() -> None:
    spec = build_spec({"url": "https://example.test/", "headers": {"X-Trace-ID": 42}})
    assert dict(spec.headers) == {"X-Trace-ID": "42"}


def test_load_config_null_header_value_is_empty(tmp_path: Path) -> None:
    p = tmp_path / "run.yaml"
    p.write_text("url: http://example.test/\nheaders:\n  X-Empty:\n  X-Set: yes-please\n", encoding="utf-8")
    spec = load_config(p)
    assert dict(spec.headers) == {"X-Empty": "", "X-Set": "yes-please"}


def test_build_spec_headers_must_be_mapping() -> None:
    with pytest.raises(ConfigError, match="headers must be a mapping"):
        build_spec({"url": "https://example.test/", "headers": ["a"]})


def test_build_spec_parses_rules() -> None:
    spec = build_spec({"url": "http://example.test/", "random_param": {"id": "1-1000", "tag": "foo"}})
    assert spec.rules["id"].is_range
    assert (spec.rules["id"].low, spec.rules["id"].high) == (1, 1000)
    assert not spec.rules["tag"].is_range
    assert spec.rules["tag"].source == "foo"


def test_spec_is_immutable() -> None:
    spec = build_spec({"url": "http://example.test/", "params": {"a": 1}})
    with pytest.raises(TypeError):
        spec.params["a"] = 2  # type: ignore[index]
    with pytest.raises(AttributeError):
        spec.threads = 10  # type: ignore[misc]


def test_load_config_file_not_found() -> None:
    with pytest.raises(ConfigError, match="Config file not found"):
        load_config("/nonexistent/run.yaml")


def test_load_config_valid(tmp_config_file: Path) -> None:
    spec = load_config(tmp_config_file)
    assert spec.url == "http://example.test/orders"
    assert spec.method == "POST"
    assert spec.headers["X-Api-Key"] == "secret"
    assert spec.params["source"] == "load"
    assert spec.threads == 3
    assert spec.iterations == 2
    assert spec.rules["id"].is_range


def test_load_config_invalid_yaml(tmp_path: Path) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("not: valid: yaml: [")
    with pytest.raises(ConfigError, match="Invalid YAML syntax"):
        load_config(bad)


def test_load_config_not_a_mapping(tmp_path: Path) -> None:
    bad = tmp_path / "list.yaml"
    bad.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="YAML object"):
        load_config(bad)


def test_read_config_file_empty(tmp_path: Path) -> None:
    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert read_config_file(empty) == {}


def test_merge_config_overrides_and_merges_mappings() -> None:
    base = {"url": "http://a.test/", "threads": 2, "headers": {"A": "1"}}
    merged = merge_config(base, {"url": None, "threads": 5, "headers": {"B": "2"}})
    assert merged["url"] == "http://a.test/"
    assert merged["threads"] == 5
    assert merged["headers"] == {"A": "1", "B": "2"}
