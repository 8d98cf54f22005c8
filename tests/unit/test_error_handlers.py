"""Unit tests for error normalization and the shared envelope handlers."""

from __future__ import annotations

from itertools import permutations

from fastapi import FastAPI
from fastapi import Header
from fastapi import Query
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel
from pydantic import Field
from pydantic import model_validator
import pytest
from sqlalchemy.exc import NoResultFound

from member_gateway.core.errors import BodyUnreadable
from member_gateway.core.errors import ConstraintViolation
from member_gateway.core.errors import ConstraintViolationFailure
from member_gateway.core.errors import FailureError
from member_gateway.core.errors import FieldError
from member_gateway.core.errors import MethodArgumentInvalid
from member_gateway.core.errors import MissingHeader
from member_gateway.core.errors import NotFound
from member_gateway.core.errors import NotFoundError
from member_gateway.core.errors import ServiceError
from member_gateway.core.errors import ServiceFailure
from member_gateway.core.errors import failure_from_validation_error
from member_gateway.core.errors import field_violation_from
from member_gateway.core.errors import normalize_failure
from member_gateway.core.errors import register_error_handlers
from member_gateway.core.errors import rule_code
from member_gateway.core.messages import message


class _JoinPayload(BaseModel):
    nickname: str = Field(min_length=1)
    age: int = Field(ge=0)


class _SignupPayload(BaseModel):
    password: str
    password_confirm: str

    @model_validator(mode="after")
    def _passwords_match(self) -> "_SignupPayload":
        if self.password != self.password_confirm:
            raise ValueError("passwords do not match")
        return self


def _build_client() -> TestClient:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/query")
    def query(limit: int = Query(ge=1), offset: int = Query(ge=0)) -> dict[str, int]:
        return {"limit": limit, "offset": offset}

    @app.post("/join")
    def join(payload: _JoinPayload) -> dict[str, str]:
        return {"nickname": payload.nickname}

    @app.post("/signup")
    def signup(payload: _SignupPayload) -> dict[str, str]:
        return {"password": payload.password}

    @app.get("/header")
    def header(client_id: str = Header(alias="x-client-id")) -> dict[str, str]:
        return {"client_id": client_id}

    @app.get("/not-found")
    def not_found() -> None:
        raise NotFoundError(message="Post 7 not found")

    @app.get("/no-result")
    def no_result() -> None:
        raise NoResultFound("No row was found when one was required")

    @app.get("/service")
    def service() -> None:
        raise ServiceError("409-1", "이미 존재하는 아이디입니다.")

    @app.get("/classified")
    def classified() -> None:
        raise FailureError(MissingHeader(header_name="Authorization", message="token required"))

    return TestClient(app)


def _violation(field: str, rule: str, detail: str) -> ConstraintViolation:
    return ConstraintViolation(
        property_path=f"join.{field}",
        message_template=f"{{jakarta.validation.constraints.{rule}.message}}",
        message=detail,
    )


def test_not_found_maps_to_fixed_404_envelope() -> None:
    normalized = normalize_failure(NotFound())

    assert normalized.status_code == 404
    assert normalized.body.code == "404-1"
    assert normalized.body.message == message("not_found")


def test_constraint_violations_are_assembled_and_sorted() -> None:
    failure = ConstraintViolationFailure(
        violations=(
            _violation("age", "Min", "must be >= 0"),
            _violation("name", "NotBlank", "must not be blank"),
        )
    )

    normalized = normalize_failure(failure)

    assert normalized.status_code == 400
    assert normalized.body.code == "400-1"
    assert normalized.body.message == "age-Min-must be >= 0\nname-NotBlank-must not be blank"


def test_constraint_violation_message_is_independent_of_input_order() -> None:
    violations = [
        _violation("password", "Size", "size must be between 4 and 30"),
        _violation("age", "Min", "must be >= 0"),
        _violation("name", "NotBlank", "must not be blank"),
        _violation("age", "Max", "must be <= 150"),
    ]

    messages = {
        normalize_failure(ConstraintViolationFailure(violations=tuple(order))).body.message
        for order in permutations(violations)
    }

    assert messages == {
        "age-Max-must be <= 150\nage-Min-must be >= 0\nname-NotBlank-must not be blank\n"
        "password-Size-size must be between 4 and 30"
    }


def test_sort_uses_full_line_text_rather_than_field_name() -> None:
    failure = ConstraintViolationFailure(
        violations=(
            _violation("ab", "NotBlank", "x"),
            _violation("a", "Size", "y"),
        )
    )

    # "a-Size-y" sorts before "ab-NotBlank-x" because "-" < "b"
    assert normalize_failure(failure).body.message == "a-Size-y\nab-NotBlank-x"


def test_field_keeps_everything_after_the_context_segment() -> None:
    violation = ConstraintViolation(
        property_path="modify.address.city",
        message_template="{jakarta.validation.constraints.NotBlank.message}",
        message="must not be blank",
    )

    assert field_violation_from(violation).line == "address.city-NotBlank-must not be blank"


def test_malformed_violation_parts_degrade_to_the_raw_values() -> None:
    violation = ConstraintViolation(property_path="limit", message_template="{Min}", message="too small")

    violation_line = field_violation_from(violation)

    assert violation_line.field == "limit"
    assert violation_line.rule == "Min"
    assert violation_line.detail == "too small"


def test_method_argument_errors_are_sorted_by_full_line() -> None:
    failure = MethodArgumentInvalid(
        field_errors=(
            FieldError(field="title", code="NotBlank", default_message="must not be blank"),
            FieldError(field="content", code="Size", default_message="size must be between 2 and 5000"),
        )
    )

    normalized = normalize_failure(failure)

    assert normalized.status_code == 400
    assert normalized.body.code == "400-1"
    assert normalized.body.message == "content-Size-size must be between 2 and 5000\ntitle-NotBlank-must not be blank"


def test_body_unreadable_uses_fixed_message() -> None:
    normalized = normalize_failure(BodyUnreadable())

    assert normalized.status_code == 400
    assert normalized.body.code == "400-1"
    assert normalized.body.message == message("body_unreadable")


def test_missing_header_message_format() -> None:
    normalized = normalize_failure(MissingHeader(header_name="Authorization", message="header missing"))

    assert normalized.status_code == 400
    assert normalized.body.code == "400-1"
    assert normalized.body.message == "Authorization-NotBlank-header missing"


def test_service_failure_passes_status_and_code_through() -> None:
    normalized = normalize_failure(ServiceFailure(status_code=403, code="403-2", message="권한이 없습니다."))

    assert normalized.status_code == 403
    assert normalized.body.model_dump() == {"code": "403-2", "message": "권한이 없습니다."}


def test_service_error_status_defaults_to_code_prefix() -> None:
    assert ServiceError("409-1", "duplicate").status_code == 409
    assert ServiceError("400-3", "custom", status_code=422).status_code == 422

    with pytest.raises(ValueError):
        ServiceError("conflict", "duplicate")


@pytest.mark.parametrize(
    ("error_type", "expected"),
    [
        ("greater_than_equal", "Min"),
        ("string_too_short", "Size"),
        ("missing", "NotNull"),
        ("int_parsing", "TypeMismatch"),
        ("url_scheme", "UrlScheme"),
    ],
)
def test_rule_code_translates_pydantic_error_types(error_type: str, expected: str) -> None:
    assert rule_code(error_type) == expected


def test_query_parameter_violations_are_normalized() -> None:
    client = _build_client()

    response = client.get("/query", params={"limit": 0, "offset": -1})

    assert response.status_code == 400
    assert response.json() == {
        "code": "400-1",
        "message": "limit-Min-Input should be greater than or equal to 1\n"
        "offset-Min-Input should be greater than or equal to 0",
    }


def test_body_field_errors_are_normalized() -> None:
    client = _build_client()

    response = client.post("/join", json={"nickname": "", "age": -1})

    assert response.status_code == 400
    assert response.json() == {
        "code": "400-1",
        "message": "age-Min-Input should be greater than or equal to 0\n"
        "nickname-Size-String should have at least 1 character",
    }


def test_malformed_json_body_is_reported_as_unreadable() -> None:
    client = _build_client()

    response = client.post("/join", content=b'{"nickname": ', headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"code": "400-1", "message": message("body_unreadable")}


def test_missing_body_is_reported_as_unreadable() -> None:
    client = _build_client()

    response = client.post("/join")

    assert response.status_code == 400
    assert response.json() == {"code": "400-1", "message": message("body_unreadable")}


def test_missing_header_is_normalized() -> None:
    client = _build_client()

    response = client.get("/header")

    assert response.status_code == 400
    assert response.json() == {
        "code": "400-1",
        "message": f"x-client-id-NotBlank-{message('missing_header', header='x-client-id')}",
    }


@pytest.mark.parametrize("path", ["/not-found", "/no-result"])
def test_lookup_failures_use_not_found_envelope(path: str) -> None:
    client = _build_client()

    response = client.get(path)

    assert response.status_code == 404
    assert response.json() == {"code": "404-1", "message": message("not_found")}


def test_service_errors_keep_their_own_status_and_code() -> None:
    client = _build_client()

    response = client.get("/service")

    assert response.status_code == 409
    assert response.json() == {"code": "409-1", "message": "이미 존재하는 아이디입니다."}


def test_preclassified_failures_are_normalized() -> None:
    client = _build_client()

    response = client.get("/classified")

    assert response.status_code == 400
    assert response.json() == {"code": "400-1", "message": "Authorization-NotBlank-token required"}


def test_model_level_body_errors_are_not_reported_as_unreadable() -> None:
    client = _build_client()

    response = client.post("/signup", json={"password": "a", "password_confirm": "b"})

    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "400-1"
    assert payload["message"] != message("body_unreadable")
    assert payload["message"] == ""


def test_non_object_body_is_reported_as_unreadable() -> None:
    client = _build_client()

    response = client.post("/join", json=[1, 2])

    assert response.status_code == 400
    assert response.json() == {"code": "400-1", "message": message("body_unreadable")}


def test_model_level_errors_are_left_out_of_field_error_message() -> None:
    exc = RequestValidationError(
        [
            {"type": "value_error", "loc": ("body",), "msg": "Value error, passwords do not match"},
            {"type": "string_too_short", "loc": ("body", "nickname"), "msg": "String should have at least 1 character"},
        ]
    )

    failure = failure_from_validation_error(exc)

    assert failure == MethodArgumentInvalid(
        field_errors=(
            FieldError(field="nickname", code="Size", default_message="String should have at least 1 character"),
        )
    )
