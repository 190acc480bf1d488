"""Inbound HTTP: request parsing, responses and the prefix router."""

from .request import (
    HTTPParseError,
    HTTPRequest,
    RequestParser,
    parse_form,
    parse_query_params,
    percent_decode,
    split_path_and_query,
)
from .response import HTTPResponse, error_response, text_response
from .router import Route, RouteKind, Router

__all__ = [
    "HTTPParseError",
    "HTTPRequest",
    "RequestParser",
    "parse_form",
    "parse_query_params",
    "percent_decode",
    "split_path_and_query",
    "HTTPResponse",
    "error_response",
    "text_response",
    "Route",
    "RouteKind",
    "Router",
]
