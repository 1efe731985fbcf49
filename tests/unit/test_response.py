"""
Unit tests for HTTP response building.
"""

import pytest
import json

from semanticd.http.response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    no_content,
    bad_request,
    not_found,
    payload_too_large,
    unprocessable,
    internal_error,
    format_http_date,
)
from semanticd.http.status_codes import HTTPStatus, to_status


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        assert HTTPResponse(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert HTTPResponse(status=HTTPStatus.NO_CONTENT).status_line == "HTTP/1.1 204 No Content"
        assert (HTTPResponse(status=HTTPStatus.UNPROCESSABLE_ENTITY).status_line
                == "HTTP/1.1 422 Unprocessable Entity")

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert result.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: semanticd/0.1\r\n" in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_to_bytes_server_name(self):
        result = HTTPResponse().to_bytes("custom/9")

        assert b"Server: custom/9\r\n" in result

    def test_to_bytes_does_not_mutate_headers(self):
        response = HTTPResponse(body=b"hello world")
        response.to_bytes()

        assert "Content-Length" not in response.headers
        assert "Date" not in response.headers

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.headers["X-Two"] == "2"


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        response = ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()
        assert response.status == HTTPStatus.NO_CONTENT

    def test_json_body(self):
        """JSON is compact and UTF-8."""
        data = {"text": "def café():", "line": 3}
        response = ResponseBuilder().json(data).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == data
        assert b": " not in response.body
        assert "café".encode("utf-8") in response.body

    def test_text_body(self):
        response = ResponseBuilder().text("Hello").build()

        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.body == b"Hello"

    def test_close_connection(self):
        response = ResponseBuilder().close_connection().build()

        assert response.headers["Connection"] == "close"


class TestHelpers:
    """Tests for the convenience response functions."""

    def test_ok_json(self):
        response = ok({"pong": True})

        assert response.status == HTTPStatus.OK
        assert response.json == {"pong": True}

    def test_ok_list(self):
        assert ok([1, 2]).json == [1, 2]

    def test_no_content_has_empty_body(self):
        response = no_content()

        assert response.status == HTTPStatus.NO_CONTENT
        assert response.body == b""

    @pytest.mark.parametrize("func, status", [
        (bad_request, HTTPStatus.BAD_REQUEST),
        (not_found, HTTPStatus.NOT_FOUND),
        (internal_error, HTTPStatus.INTERNAL_SERVER_ERROR),
    ])
    def test_error_helpers_use_error_body(self, func, status):
        response = func("boom")

        assert response.status == status
        assert response.json == {"error": "boom"}

    def test_unprocessable(self):
        response = unprocessable("Cannot read a.py")

        assert response.status == 422
        assert response.json == {"error": "Cannot read a.py"}

    def test_payload_too_large_closes(self):
        response = payload_too_large(1024)

        assert response.status == HTTPStatus.PAYLOAD_TOO_LARGE
        assert response.headers["Connection"] == "close"
        assert "1024" in response.json["error"]


class TestStatus:
    """Tests for HTTPStatus and to_status."""

    def test_phrase(self):
        assert HTTPStatus.PAYLOAD_TOO_LARGE.phrase == "Payload Too Large"

    def test_classes(self):
        assert HTTPStatus.NO_CONTENT.is_success
        assert HTTPStatus.BAD_REQUEST.is_client_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_server_error

    def test_to_status_known(self):
        assert to_status(431) is HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE

    def test_to_status_unknown_collapses_by_class(self):
        assert to_status(418) is HTTPStatus.BAD_REQUEST
        assert to_status(599) is HTTPStatus.INTERNAL_SERVER_ERROR


def test_format_http_date():
    from datetime import datetime, timezone

    dt = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
    assert format_http_date(dt) == "Mon, 15 Jan 2024 12:00:00 GMT"
