from apicover.domain.models import Endpoint, Grouping, OpenapiSource, Runtime, parse_method


RUNTIME = Runtime(OpenapiSource("docs/openapi.json"), "http://localhost:8080/", 13750)


def ep(method: str, path: str, status: int) -> Endpoint:
    return Endpoint.create(method, path, status, RUNTIME)


def test_parse_method_is_case_insensitive():
    assert parse_method("get") == "GET"
    assert parse_method(" Patch ") == "PATCH"
    assert parse_method("FETCH") is None
    assert parse_method("") is None


def test_grouping_requires_method_status_and_path():
    g = Grouping.create(["GET", "POST"], [200, 404], "/users/{id}")

    assert g.encompasses_endpoint(ep("GET", "/users/{id}", 200))
    assert g.encompasses_endpoint(ep("POST", "/users/{userId}", 404))
    assert not g.encompasses_endpoint(ep("DELETE", "/users/{id}", 200))
    assert not g.encompasses_endpoint(ep("GET", "/users/{id}", 500))
    assert not g.encompasses_endpoint(ep("GET", "/users", 200))
    assert not g.encompasses_endpoint(ep("GET", "/users/{id}/posts", 200))


def test_grouping_path_with_variable_covers_literal_paths():
    g = Grouping.create(["GET"], [200], "/v1/{resource}")
    assert g.encompasses_endpoint(ep("GET", "/v1/users", 200))
    assert g.encompasses_endpoint(ep("GET", "/v1/orders", 200))
    assert not g.encompasses_endpoint(ep("GET", "/v2/users", 200))


def test_grouping_is_hashable_value():
    a = Grouping.create(["GET", "POST"], [200], "/a", is_ignore_group=True)
    b = Grouping.create(["POST", "GET"], [200], "/a", is_ignore_group=True)
    assert a == b
    assert len({a, b}) == 1


def test_endpoint_equality_ignores_generated_flag():
    plain = ep("GET", "/a", 401)
    generated = Endpoint.create("GET", "/a", 401, RUNTIME, is_generated=True)
    assert plain == generated
    assert hash(plain) == hash(generated)


def test_endpoint_encompasses_needs_same_runtime():
    other = Runtime(OpenapiSource("docs/other.json"), "http://localhost:9090/", 13751)
    declared = ep("GET", "/users/{id}", 200)

    assert declared.encompasses(ep("GET", "/users/7", 200))
    assert not declared.encompasses(Endpoint.create("GET", "/users/7", 200, other))
    assert not declared.encompasses(ep("GET", "/users/7", 404))
    assert str(declared) == "GET /users/{id} 200"
