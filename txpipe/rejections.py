"""Route rejections, their prioritization and conversion to error responses.

A handler that cannot serve a request raises ``RouteRejected`` with the reasons
it collected while matching. The pipeline picks the most relevant reasons and
renders them as a JSON error document carrying the transaction id.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from txpipe.core.transaction import TransactionContext


class Rejection:
    """Base class for the reasons a route declined a request."""


@dataclass(frozen=True)
class MethodRejection(Rejection):
    supported: str


@dataclass(frozen=True)
class AuthorizationFailedRejection(Rejection):
    pass


@dataclass(frozen=True)
class MissingQueryParamRejection(Rejection):
    name: str


@dataclass(frozen=True)
class MalformedQueryParamRejection(Rejection):
    name: str
    message: str


@dataclass(frozen=True)
class MalformedHeaderRejection(Rejection):
    name: str
    message: str


@dataclass(frozen=True)
class MalformedRequestContentRejection(Rejection):
    message: str


@dataclass(frozen=True)
class MissingHeaderRejection(Rejection):
    name: str


@dataclass(frozen=True)
class RequestEntityExpectedRejection(Rejection):
    pass


@dataclass(frozen=True)
class UnsupportedRequestContentTypeRejection(Rejection):
    supported: tuple[str, ...]


@dataclass(frozen=True)
class UnacceptedResponseContentTypeRejection(Rejection):
    supported: tuple[str, ...]


@dataclass(frozen=True)
class ValidationRejection(Rejection):
    message: str


class RouteRejected(Exception):
    """Raised by a handler when no route accepted the request.

    An empty rejection set means no route matched the request at all.
    """

    def __init__(self, *rejections: Rejection):
        self.rejections: tuple[Rejection, ...] = rejections
        super().__init__(", ".join(repr(r) for r in rejections) or "no matching route")


class ErrorResponse(BaseModel):
    """Error document returned for rejected requests."""

    error: str
    code: str


def prioritize_rejections(rejections: Sequence[Rejection]) -> tuple[Rejection, ...]:
    """Surface an unaccepted response content type ahead of everything else."""
    for rejection in rejections:
        if isinstance(rejection, UnacceptedResponseContentTypeRejection):
            return (rejection,)
    return tuple(rejections)


NOT_FOUND_MESSAGE = "The requested resource could not be found."


def _method(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    methods = ", ".join(dict.fromkeys(r.supported for r in rejections))
    return 405, f"HTTP method not allowed, supported methods: {methods}", {"Allow": methods}


def _authorization(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    return 403, "The supplied authentication is not authorized to access this resource", {}


def _missing_query_param(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    return 404, f"Request is missing required query parameter '{rejections[0].name}'", {}


def _malformed_query_param(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    rejection = rejections[0]
    return 400, f"The query parameter '{rejection.name}' was malformed:\n{rejection.message}", {}


def _malformed_header(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    rejection = rejections[0]
    return 400, f"The value of HTTP header '{rejection.name}' was malformed:\n{rejection.message}", {}


def _malformed_content(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    return 400, f"The request content was malformed:\n{rejections[0].message}", {}


def _missing_header(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    return 400, f"Request is missing required HTTP header '{rejections[0].name}'", {}


def _entity_expected(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    return 400, "Request entity expected but not supplied", {}


def _unsupported_content_type(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    supported = " or ".join(dict.fromkeys(t for r in rejections for t in r.supported))
    return 415, f"The request's Content-Type is not supported. Expected:\n{supported}", {}


def _unaccepted_content_type(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    supported = "\n".join(dict.fromkeys(t for r in rejections for t in r.supported))
    return (
        406,
        f"Resource representation is only available with these types:\n{supported}",
        {},
    )


def _validation(rejections: list[Rejection]) -> tuple[int, str, dict[str, str]]:
    return 400, rejections[0].message, {}


# First kind present in a rejection set decides the response.
_RENDERERS: list[tuple[type[Rejection], Callable[[list[Rejection]], tuple[int, str, dict[str, str]]]]] = [
    (MethodRejection, _method),
    (AuthorizationFailedRejection, _authorization),
    (MalformedHeaderRejection, _malformed_header),
    (MalformedQueryParamRejection, _malformed_query_param),
    (MalformedRequestContentRejection, _malformed_content),
    (MissingHeaderRejection, _missing_header),
    (MissingQueryParamRejection, _missing_query_param),
    (RequestEntityExpectedRejection, _entity_expected),
    (UnacceptedResponseContentTypeRejection, _unaccepted_content_type),
    (UnsupportedRequestContentTypeRejection, _unsupported_content_type),
    (ValidationRejection, _validation),
]


def error_response(
    status_code: int,
    message: str,
    transid: TransactionContext,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """JSON error document for the given transaction."""
    body = ErrorResponse(error=message, code=transid.id)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def rejection_response(
    rejections: Sequence[Rejection], transid: TransactionContext
) -> JSONResponse:
    """Render rejections as an error response.

    The body is always JSON, whatever media type the client asked for.
    """
    for kind, render in _RENDERERS:
        matching = [r for r in rejections if isinstance(r, kind)]
        if matching:
            status_code, message, headers = render(matching)
            return error_response(status_code, message, transid, headers or None)
    return error_response(404, NOT_FOUND_MESSAGE, transid)
