import pytest

from apicover.config.settings import (
    DEFAULT_PORT,
    DEFAULT_TEST_COVERAGE,
    LINE_SEPARATOR,
    load_config,
    parse_flag,
    parse_groupings,
    parse_mapping,
    parse_openapi_source,
    split_fields,
    translate_test_coverage,
)
from apicover.domain.models import Grouping
from apicover.errors import ConfigurationError


SINGLE = {
    "APICOVER_OPENAPI_SOURCE": "docs/swagger.json",
    "APICOVER_APP_BASE_URL": "http://localhost:8080",
}


@pytest.mark.parametrize("value", [None, "", "0", "false", "nope", "  false "])
def test_false_flags(value):
    assert parse_flag(value) is False


@pytest.mark.parametrize("value", ["1", "true", "yes", "False", "anything"])
def test_true_flags(value):
    assert parse_flag(value) is True


@pytest.mark.parametrize(
    "text, expected",
    [("0.86", 0.86), ("86", 0.86), ("86%", 0.86), (" 50 % ", 0.5), ("1", 1.0), ("", DEFAULT_TEST_COVERAGE)],
)
def test_translate_test_coverage(text, expected):
    assert translate_test_coverage(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["abc", "1000", "-0.5", "250%", "12x%"])
def test_translate_test_coverage_rejects(text):
    with pytest.raises(ValueError):
        translate_test_coverage(text)


def test_single_runtime_defaults():
    config = load_config(SINGLE)

    assert len(config.runtimes) == 1
    runtime = config.runtimes[0]
    assert runtime.openapi_source.location == "docs/swagger.json"
    assert not runtime.openapi_source.is_url
    assert runtime.app_base_url == "http://localhost:8080/"
    assert runtime.port == DEFAULT_PORT

    assert config.test_coverage == DEFAULT_TEST_COVERAGE
    assert not config.debug
    assert not config.is_merge
    assert config.groupings == frozenset()
    assert config.all_openapi_sources_are_paths()


def test_flags_and_coverage_from_environment():
    config = load_config(
        {
            **SINGLE,
            "APICOVER_PORT": "9000",
            "APICOVER_DEBUG": "1",
            "APICOVER_ACCOUNT_FOR_FORBIDDEN": "true",
            "APICOVER_ACCOUNT_FOR_UNAUTHORIZED": "0",
            "APICOVER_TEST_COVERAGE": "80%",
            "APICOVER_IS_MERGE": "1",
            "APICOVER_ONLY_ACCOUNT_MERGE": "1",
            "UNRELATED": "x",
        }
    )
    assert config.runtimes[0].port == 9000
    assert config.debug
    assert config.account_for_forbidden
    assert not config.account_for_unauthorized
    assert config.test_coverage == pytest.approx(0.8)
    assert config.is_merge
    assert config.only_account_for_merge


def test_missing_configuration():
    with pytest.raises(ConfigurationError):
        load_config({})
    with pytest.raises(ConfigurationError):
        load_config({"APICOVER_OPENAPI_SOURCE": "docs/swagger.json"})


def test_mapping_and_single_runtime_conflict():
    env = {**SINGLE, "APICOVER_MAPPING": "http://localhost:8080; docs/a.json; 8000;"}
    with pytest.raises(ConfigurationError) as excinfo:
        load_config(env)
    assert "both" in excinfo.value.message


@pytest.mark.parametrize("port", ["abc", "70000", "-1"])
def test_invalid_port(port):
    with pytest.raises(ConfigurationError) as excinfo:
        load_config({**SINGLE, "APICOVER_PORT": port})
    assert "APICOVER_PORT" in excinfo.value.message


def test_invalid_test_coverage():
    with pytest.raises(ConfigurationError) as excinfo:
        load_config({**SINGLE, "APICOVER_TEST_COVERAGE": "1000"})
    assert "APICOVER_TEST_COVERAGE" in excinfo.value.message


def test_invalid_app_base_url():
    with pytest.raises(ConfigurationError):
        load_config({**SINGLE, "APICOVER_APP_BASE_URL": "not a url"})


def test_openapi_source_kinds():
    url = parse_openapi_source("https://example.com/openapi.json")
    assert url.is_url

    path = parse_openapi_source(" docs/openapi.yaml ")
    assert path.location == "docs/openapi.yaml"
    assert not path.is_url

    with pytest.raises(ConfigurationError):
        parse_openapi_source("/etc/openapi.json")


def test_mapping_with_separator_token_and_newlines():
    text = (
        f"http://localhost:8080; docs/a.json; 8000;{LINE_SEPARATOR}"
        "http://localhost:8081; docs/b.yaml; 8001;\n"
        "\n"
        "https://example.com/api; https://example.com/openapi.json; 8002;"
    )
    runtimes = parse_mapping(text)

    assert [r.port for r in runtimes] == [8000, 8001, 8002]
    assert runtimes[1].openapi_source.location == "docs/b.yaml"
    assert runtimes[2].openapi_source.is_url
    assert runtimes[2].app_base_url == "https://example.com/api"


def test_mapping_from_environment():
    config = load_config({"APICOVER_MAPPING": "http://localhost:8080; docs/a.json; 8000;"})
    assert config.runtimes[0].port == 8000


def test_mapping_errors():
    with pytest.raises(ConfigurationError):
        parse_mapping(LINE_SEPARATOR)
    with pytest.raises(ConfigurationError):
        parse_mapping("http://localhost:8080; docs/a.json; 8000")
    with pytest.raises(ConfigurationError):
        parse_mapping("http://localhost:8080; docs/a.json; port;")
    with pytest.raises(ConfigurationError) as excinfo:
        parse_mapping(
            "http://localhost:8080; docs/a.json; 8000;\n"
            "http://localhost:8081; docs/b.json; 8000;"
        )
    assert "duplicate" in excinfo.value.message


def test_split_fields_escapes_semicolon():
    assert split_fields(r"/foo\;bar; GET; 200; 0;", 4) == ["/foo;bar", "GET", "200", "0"]
    assert split_fields("a;b;c;trailing", 3) == ["a", "b", "c"]
    with pytest.raises(ConfigurationError):
        split_fields("a;b", 3)


def test_parse_groupings():
    groupings = parse_groupings(
        "/users/{id}; GET,post; 200,404; 1;\n"
        f"/health; GET; 200; 0;{LINE_SEPARATOR}"
    )
    assert groupings == frozenset(
        {
            Grouping.create(["GET", "POST"], [200, 404], "/users/{id}", is_ignore_group=True),
            Grouping.create(["GET"], [200], "/health", is_ignore_group=False),
        }
    )
    assert parse_groupings("") == frozenset()


@pytest.mark.parametrize(
    "text",
    [
        "/a; FETCH; 200; 0;",
        "/a; GET; 700; 0;",
        "/a; GET; ok; 0;",
        "/a; GET; 200;",
    ],
)
def test_parse_groupings_rejects(text):
    with pytest.raises(ConfigurationError):
        parse_groupings(text)
