"""
Minimal HTTP/1.1 message handling.

Requests are parsed from a single received chunk: only the request line and
the body are used. Responses are always complete, JSON typed and
``Connection: close``.
"""
import json
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Optional

from aiproxy.api.schemas import ErrorDetail, ErrorResponse
from aiproxy.core.exceptions import RequestDecodeError

CRLF = "\r\n"


@dataclass(frozen=True)
class HttpRequest:
    method: str
    path: str
    body: Optional[bytes]


def parse_request(data: bytes) -> HttpRequest:
    """
    Parse one received chunk into method, path and body.

    The query string is dropped from the path. The body is everything after
    the first empty line, or ``None`` when there is no empty line.

    Raises:
        RequestDecodeError: If the bytes are not UTF-8 or the request line
            lacks a method and target
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise RequestDecodeError("Invalid request") from e

    lines = text.split(CRLF)
    tokens = lines[0].split(" ")
    if len(tokens) < 2:
        raise RequestDecodeError("Invalid request")

    method = tokens[0]
    path = tokens[1].split("?", 1)[0]

    body = None
    if "" in lines:
        boundary = lines.index("")
        body = CRLF.join(lines[boundary + 1:]).encode("utf-8")

    return HttpRequest(method=method, path=path, body=body)


def reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Unknown"


def build_response(body: bytes, status_code: int = 200) -> bytes:
    """Render a complete HTTP response around a JSON body."""
    head = CRLF.join([
        f"HTTP/1.1 {status_code} {reason_phrase(status_code)}",
        "Content-Type: application/json",
        f"Content-Length: {len(body)}",
        "Connection: close",
        "Access-Control-Allow-Origin: *",
        "",
        "",
    ])
    return head.encode("ascii") + body


def json_body(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def error_body(message: str) -> bytes:
    return json_body(ErrorResponse(error=ErrorDetail(message=message)).model_dump())
