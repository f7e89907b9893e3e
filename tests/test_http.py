"""
HTTP parser and response composer tests
"""
import json

import pytest

from aiproxy.core.exceptions import RequestDecodeError
from aiproxy.server.http import build_response, error_body, parse_request, reason_phrase


@pytest.mark.unit
class TestParseRequest:
    """Request parsing from one received chunk"""

    def test_method_path_and_body(self):
        data = (
            b"POST /v1/chat/completions HTTP/1.1\r\n"
            b"Host: 127.0.0.1\r\n"
            b"Content-Type: application/json\r\n"
            b"\r\n"
            b'{"model":"x"}'
        )
        request = parse_request(data)

        assert request.method == "POST"
        assert request.path == "/v1/chat/completions"
        assert request.body == b'{"model":"x"}'

    def test_query_string_is_stripped(self):
        request = parse_request(b"GET /v1/models?limit=5&x=1 HTTP/1.1\r\n\r\n")
        assert request.path == "/v1/models"

    def test_body_after_first_blank_line_keeps_crlf(self):
        request = parse_request(b"POST /x HTTP/1.1\r\n\r\nline1\r\n\r\nline2")
        assert request.body == b"line1\r\n\r\nline2"

    def test_no_blank_line_means_no_body(self):
        request = parse_request(b"GET /health HTTP/1.1\r\nHost: x")
        assert request.body is None

    def test_empty_body(self):
        request = parse_request(b"GET /health HTTP/1.1\r\nHost: x\r\n\r\n")
        assert request.body == b""

    def test_invalid_utf8_is_rejected(self):
        with pytest.raises(RequestDecodeError):
            parse_request(b"GET /health HTTP/1.1\r\n\r\n\xff\xfe")

    @pytest.mark.parametrize("data", [b"", b"GET\r\n\r\n", b"\r\nGET / HTTP/1.1"])
    def test_incomplete_request_line_is_rejected(self, data):
        with pytest.raises(RequestDecodeError) as exc_info:
            parse_request(data)
        assert exc_info.value.status_code == 400

    def test_request_line_without_version_is_accepted(self):
        request = parse_request(b"GET /health")
        assert request.method == "GET"
        assert request.path == "/health"


@pytest.mark.unit
class TestBuildResponse:
    """Response composition"""

    def test_headers_and_body(self):
        body = b'{"status":"ok"}'
        response = build_response(body, 200)

        head, _, rest = response.partition(b"\r\n\r\n")
        lines = head.decode("ascii").split("\r\n")

        assert lines[0] == "HTTP/1.1 200 OK"
        assert "Content-Type: application/json" in lines
        assert f"Content-Length: {len(body)}" in lines
        assert "Connection: close" in lines
        assert "Access-Control-Allow-Origin: *" in lines
        assert rest == body

    def test_content_length_counts_bytes_not_characters(self):
        body = '{"message":"你好"}'.encode("utf-8")
        response = build_response(body)
        assert f"Content-Length: {len(body)}".encode() in response

    def test_status_line_uses_reason_phrase(self):
        assert build_response(b"{}", 502).startswith(b"HTTP/1.1 502 Bad Gateway\r\n")
        assert build_response(b"{}", 404).startswith(b"HTTP/1.1 404 Not Found\r\n")

    def test_unknown_status_code(self):
        assert reason_phrase(799) == "Unknown"
        assert build_response(b"{}", 799).startswith(b"HTTP/1.1 799 Unknown\r\n")

    def test_error_envelope(self):
        assert json.loads(error_body("Not found")) == {
            "error": {"message": "Not found", "type": "api_error"}
        }
