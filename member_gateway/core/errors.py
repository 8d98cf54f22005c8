"""Error normalization: failure kinds, envelope assembly and handler registration.

Every failure the request layer can raise is converted into one of six
``Failure`` variants and then mapped by :func:`normalize_failure` onto a
status code and an :class:`ErrorResponse`. The set of variants is closed;
anything else is left to the framework.
"""

from __future__ import annotations

from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any
from typing import ClassVar
from typing import assert_never

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import NoResultFound

from member_gateway.core.messages import message as localized
from member_gateway.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

NOT_FOUND_CODE = "404-1"
BAD_REQUEST_CODE = "400-1"
MISSING_HEADER_RULE = "NotBlank"
CONSTRAINT_TEMPLATE = "{{member_gateway.constraints.{rule}.message}}"

# pydantic error types -> constraint names clients already match on
_RULE_CODES = {
    "missing": "NotNull",
    "greater_than": "DecimalMin",
    "greater_than_equal": "Min",
    "less_than": "DecimalMax",
    "less_than_equal": "Max",
    "string_too_short": "Size",
    "string_too_long": "Size",
    "too_short": "Size",
    "too_long": "Size",
    "string_pattern_mismatch": "Pattern",
    "enum": "Enum",
    "literal_error": "Enum",
}
_TYPE_MISMATCH_SUFFIXES = ("_parsing", "_type")


class FailureKind(str, Enum):
    """Discriminant for the closed set of normalizable failures."""

    NOT_FOUND = "not_found"
    CONSTRAINT_VIOLATION = "constraint_violation"
    METHOD_ARGUMENT_INVALID = "method_argument_invalid"
    BODY_UNREADABLE = "body_unreadable"
    MISSING_HEADER = "missing_header"
    SERVICE = "service"


@dataclass(frozen=True)
class ConstraintViolation:
    """A low-level parameter violation as reported by the validator."""

    property_path: str
    message_template: str
    message: str


@dataclass(frozen=True)
class FieldError:
    """A field-level error raised while validating a bound request body."""

    field: str
    code: str
    default_message: str


@dataclass(frozen=True)
class FieldViolation:
    field: str
    rule: str
    detail: str

    @property
    def line(self) -> str:
        return f"{self.field}-{self.rule}-{self.detail}"


@dataclass(frozen=True)
class NotFound:
    kind: ClassVar[FailureKind] = FailureKind.NOT_FOUND


@dataclass(frozen=True)
class ConstraintViolationFailure:
    kind: ClassVar[FailureKind] = FailureKind.CONSTRAINT_VIOLATION

    violations: tuple[ConstraintViolation, ...]


@dataclass(frozen=True)
class MethodArgumentInvalid:
    kind: ClassVar[FailureKind] = FailureKind.METHOD_ARGUMENT_INVALID

    field_errors: tuple[FieldError, ...]


@dataclass(frozen=True)
class BodyUnreadable:
    kind: ClassVar[FailureKind] = FailureKind.BODY_UNREADABLE


@dataclass(frozen=True)
class MissingHeader:
    kind: ClassVar[FailureKind] = FailureKind.MISSING_HEADER

    header_name: str
    message: str


@dataclass(frozen=True)
class ServiceFailure:
    """Application-raised error that already knows its status and code."""

    kind: ClassVar[FailureKind] = FailureKind.SERVICE

    status_code: int
    code: str
    message: str


Failure = NotFound | ConstraintViolationFailure | MethodArgumentInvalid | BodyUnreadable | MissingHeader | ServiceFailure


@dataclass(frozen=True)
class NormalizedError:
    """Status code and envelope produced for one failed request."""

    status_code: int
    body: ErrorResponse

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.body.model_dump())


def _status_from_code(code: str) -> int:
    head = code.split("-", 1)[0]
    if not head.isdigit():
        raise ValueError(f"Error code {code!r} must start with an HTTP status, e.g. '400-1'")
    return int(head)


class ServiceError(Exception):
    """Business error raised by services with a prebuilt code and message.

    The status defaults to the numeric prefix of ``code`` (``"409-1"`` -> 409).
    """

    def __init__(self, code: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{code} : {message}")
        self.code = code
        self.message = message
        self.status_code = _status_from_code(code) if status_code is None else status_code

    def to_failure(self) -> ServiceFailure:
        return ServiceFailure(status_code=self.status_code, code=self.code, message=self.message)


class NotFoundError(LookupError):
    """Raised when a lookup of an entity fails."""

    def __init__(self, *, message: str = "Resource not found") -> None:
        super().__init__(message)
        self.message = message


class FailureError(Exception):
    """Carries an already-classified failure up to the HTTP boundary."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.kind.value)
        self.failure = failure


def field_violation_from(violation: ConstraintViolation) -> FieldViolation:
    """Derive field, rule and detail from a raw constraint violation.

    The field is everything after the first dot of the property path (the
    leading segment names the validated context). The rule is the
    second-to-last dot segment of the message template.
    """
    path_bits = violation.property_path.split(".", 1)
    if len(path_bits) == 2:
        field = path_bits[1]
    else:
        logger.warning("Violation property path %r has no field segment", violation.property_path)
        field = violation.property_path

    stripped = violation.message_template.strip("{}")
    template_bits = stripped.split(".")
    while template_bits and not template_bits[-1]:
        template_bits.pop()
    if len(template_bits) >= 2:
        rule = template_bits[-2]
    else:
        logger.warning("Violation message template %r has no rule segment", violation.message_template)
        rule = stripped

    return FieldViolation(field=field, rule=rule, detail=violation.message)


def assemble_violation_message(lines: Iterable[str]) -> str:
    """Sort assembled violation lines by their full text and join them with newlines."""
    return "\n".join(sorted(lines))


def _bad_request(message: str) -> NormalizedError:
    return NormalizedError(
        status_code=status.HTTP_400_BAD_REQUEST,
        body=ErrorResponse(code=BAD_REQUEST_CODE, message=message),
    )


def normalize_failure(failure: Failure) -> NormalizedError:
    """Map one failure onto its status code and error envelope."""
    match failure:
        case NotFound():
            return NormalizedError(
                status_code=status.HTTP_404_NOT_FOUND,
                body=ErrorResponse(code=NOT_FOUND_CODE, message=localized("not_found")),
            )
        case ConstraintViolationFailure(violations=violations):
            return _bad_request(assemble_violation_message(field_violation_from(v).line for v in violations))
        case MethodArgumentInvalid(field_errors=field_errors):
            return _bad_request(
                assemble_violation_message(f"{e.field}-{e.code}-{e.default_message}" for e in field_errors)
            )
        case BodyUnreadable():
            return _bad_request(localized("body_unreadable"))
        case MissingHeader(header_name=header_name, message=header_message):
            return _bad_request(f"{header_name}-{MISSING_HEADER_RULE}-{header_message}")
        case ServiceFailure(status_code=status_code, code=code, message=service_message):
            return NormalizedError(status_code=status_code, body=ErrorResponse(code=code, message=service_message))
        case _:
            assert_never(failure)


def rule_code(error_type: str) -> str:
    """Translate a pydantic error type into a constraint rule name."""
    if error_type in _RULE_CODES:
        return _RULE_CODES[error_type]
    if error_type.endswith(_TYPE_MISMATCH_SUFFIXES):
        return "TypeMismatch"
    return "".join(part.capitalize() for part in error_type.split("_"))


def _location(issue: Mapping[str, Any]) -> tuple[str, ...]:
    return tuple(str(part) for part in issue.get("loc", ()))


def _name_from(location: Sequence[str]) -> str:
    if not location:
        return "request"
    return ".".join(location[1:]) or location[0]


def _is_unreadable_body(issue: Mapping[str, Any]) -> bool:
    error_type = str(issue.get("type", ""))
    if error_type == "json_invalid":
        return True
    # root-level missing or wrong-shape body: nothing could be bound
    return _location(issue) == ("body",) and (error_type == "missing" or error_type.endswith("_type"))


def failure_from_validation_error(exc: RequestValidationError) -> Failure:
    """Classify a request validation error into the closed failure set.

    Precedence follows the order arguments are resolved in: an unreadable
    body first, then missing headers, then body field errors, and finally
    low-level parameter constraints. Model-level body errors (no field in
    their location) count as body validation failures but are left out of
    the message, which only lists field errors.
    """
    issues = list(exc.errors())

    if any(_is_unreadable_body(issue) for issue in issues):
        return BodyUnreadable()

    for issue in issues:
        location = _location(issue)
        if issue.get("type") == "missing" and location[:1] == ("header",):
            header_name = _name_from(location)
            return MissingHeader(header_name=header_name, message=localized("missing_header", header=header_name))

    body_issues = [issue for issue in issues if _location(issue)[:1] == ("body",)]
    if body_issues:
        return MethodArgumentInvalid(
            field_errors=tuple(
                FieldError(
                    field=_name_from(_location(issue)),
                    code=rule_code(str(issue.get("type", ""))),
                    default_message=str(issue.get("msg", "Invalid value")),
                )
                for issue in body_issues
                if len(_location(issue)) > 1
            )
        )

    return ConstraintViolationFailure(
        violations=tuple(
            ConstraintViolation(
                property_path=".".join(_location(issue)) or "request",
                message_template=CONSTRAINT_TEMPLATE.format(rule=rule_code(str(issue.get("type", "")))),
                message=str(issue.get("msg", "Invalid value")),
            )
            for issue in issues
        )
    )


def _respond(failure: Failure) -> JSONResponse:
    normalized = normalize_failure(failure)
    logger.info(
        "Normalized %s failure to status=%s code=%s",
        failure.kind.value,
        normalized.status_code,
        normalized.body.code,
    )
    return normalized.to_response()


async def request_validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Normalize FastAPI request validation errors."""
    return _respond(failure_from_validation_error(exc))


async def failure_error_handler(_: Request, exc: FailureError) -> JSONResponse:
    """Normalize failures that were classified at the raise site."""
    return _respond(exc.failure)


async def service_error_handler(_: Request, exc: ServiceError) -> JSONResponse:
    """Pass business errors through with their own status and code."""
    return _respond(exc.to_failure())


async def not_found_error_handler(_: Request, exc: NotFoundError | NoResultFound) -> JSONResponse:
    """Report failed entity lookups with the fixed not-found envelope."""
    logger.debug("Lookup failed: %s", exc)
    return _respond(NotFound())


def register_error_handlers(app: FastAPI) -> None:
    """Attach the error normalization handlers to a FastAPI app instance."""

    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(FailureError, failure_error_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(NotFoundError, not_found_error_handler)
    app.add_exception_handler(NoResultFound, not_found_error_handler)
