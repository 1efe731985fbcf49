"""
Unit tests for the router and the semantic route table.
"""

import pytest

from semanticd.http.router import Router
from semanticd.http.request import HTTPRequest
from semanticd.http.response import HTTPResponse, ok
from semanticd.http.status_codes import HTTPStatus
from semanticd.server import build_router
from semanticd.handlers import completion, definition, file, ping


def make_request(method: str, path: str) -> HTTPRequest:
    """Helper to create a request for testing."""
    return HTTPRequest(method=method, path=path)


def dummy_handler(request: HTTPRequest) -> HTTPResponse:
    """Dummy handler for testing."""
    return ok({"path": request.path})


class TestRouter:
    """Tests for Router class."""

    def test_add_route(self):
        """Test adding routes."""
        router = Router()
        route = router.add_route("/ping", dummy_handler, method="get")

        assert len(router.routes()) == 1
        assert route.path == "/ping"
        assert route.method == "GET"

    def test_duplicate_route_rejected(self):
        router = Router()
        router.add_route("/ping", dummy_handler)

        with pytest.raises(ValueError):
            router.add_route("/ping", dummy_handler)

    def test_match_with_method(self):
        """Same path, different methods are separate routes."""
        router = Router()
        router.add_route("/x", dummy_handler, method="GET")
        router.add_route("/x", dummy_handler, method="POST")

        assert router.match("GET", "/x").method == "GET"
        assert router.match("POST", "/x").method == "POST"

    def test_match_is_exact(self):
        """No prefixes, no trailing-slash folding."""
        router = Router()
        router.add_route("/parse_file", dummy_handler, method="POST")

        assert router.match("POST", "/parse_file/") is None
        assert router.match("POST", "/parse") is None
        assert router.match("POST", "/parse_file/extra") is None

    def test_handle_success(self):
        router = Router()
        router.add_route("/ping", dummy_handler)

        response = router.handle(make_request("GET", "/ping"))

        assert response.status == HTTPStatus.OK
        assert response.json == {"path": "/ping"}

    def test_handle_not_found(self):
        router = Router()

        response = router.handle(make_request("GET", "/nope"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert "error" in response.json

    def test_wrong_method_is_404(self):
        """A known path with the wrong method is still a plain 404."""
        router = Router()
        router.add_route("/find_definition", dummy_handler, method="POST")

        response = router.handle(make_request("GET", "/find_definition"))

        assert response.status == HTTPStatus.NOT_FOUND

    def test_decorators(self):
        router = Router()

        @router.post("/echo")
        def echo(request):
            return ok("echo")

        assert router.match("POST", "/echo").handler is echo


class TestRouteTable:
    """The fixed table built by the server."""

    def test_routes(self):
        router = build_router()
        table = {(r.method, r.path): r.handler for r in router.routes()}

        assert table == {
            ("POST", "/parse_file"): file.parse,
            ("POST", "/find_definition"): definition.find,
            ("POST", "/list_completions"): completion.list_completions,
            ("GET", "/ping"): ping.pong,
        }

    @pytest.mark.parametrize("method, path", [
        ("GET", "/"),
        ("GET", "/parse_file"),
        ("POST", "/ping"),
        ("DELETE", "/find_definition"),
    ])
    def test_unknown_combinations_404(self, method: str, path: str):
        response = build_router().handle(make_request(method, path))

        assert response.status == HTTPStatus.NOT_FOUND
