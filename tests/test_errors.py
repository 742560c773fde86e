"""Tests for the credential error taxonomy."""

import json
import logging

import pytest

from keyward.errors import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    CredentialError,
    ErrorCategory,
    InternalError,
    NotFoundError,
    RecoveryStrategy,
    ValidationError,
    log_credential_error,
)


@pytest.mark.parametrize(
    "error_class, status_code, category, retryable",
    [
        (ValidationError, 400, ErrorCategory.VALIDATION, False),
        (NotFoundError, 404, ErrorCategory.NOT_FOUND, False),
        (AuthorizationError, 403, ErrorCategory.AUTHORIZATION, False),
        (ConflictError, 409, ErrorCategory.CONFLICT, True),
        (ConfigurationError, 500, ErrorCategory.CONFIGURATION, False),
        (InternalError, 500, ErrorCategory.INTERNAL_ERROR, True),
    ],
)
def test_error_classes(error_class, status_code, category, retryable):
    error = error_class()

    assert isinstance(error, CredentialError)
    assert error.http_status_code == status_code
    assert error.category == category
    assert error.retryable is retryable


def test_error_details():
    error = ConflictError("API key is already revoked", credential_id="key-1", operation="revoke")
    details = error.get_error_details()

    assert details["error_type"] == "ConflictError"
    assert details["category"] == "conflict"
    assert details["recovery_strategy"] == RecoveryStrategy.RETRY.value
    assert details["credential_id"] == "key-1"
    assert details["operation"] == "revoke"
    assert details["error_id"] == error.error_id


def test_to_http_response():
    error = NotFoundError(credential_id="key-1", operation="get")

    response = error.to_http_response()
    body = json.loads(response.body)

    assert response.status_code == 404
    assert body["error"] is True
    assert body["category"] == "not_found"
    assert body["retryable"] is False
    assert body["error_id"] == error.error_id
    assert "credential_id" not in body

    debug_body = json.loads(error.to_http_response(include_debug_info=True).body)
    assert debug_body["credential_id"] == "key-1"
    assert debug_body["internal_message"] == "API key not found"


def test_validation_message_reaches_user():
    error = ValidationError("Key name is required")
    assert error.user_message == "Key name is required"


def test_internal_message_is_hidden_from_user():
    error = InternalError("Storage failure during create: RuntimeError")
    body = json.loads(error.to_http_response().body)
    assert "RuntimeError" not in body["message"]


class TestLogCredentialError:
    """Test error logging levels and context."""

    @pytest.mark.parametrize(
        "error, level",
        [
            (ValidationError("bad name"), logging.INFO),
            (ConflictError("already revoked"), logging.WARNING),
            (InternalError("storage down"), logging.ERROR),
            (RuntimeError("unexpected"), logging.ERROR),
        ],
    )
    def test_levels(self, caplog, error, level):
        with caplog.at_level(logging.DEBUG, logger="keyward.errors"):
            log_credential_error(error, "revoke", "key-1")

        record = caplog.records[-1]
        assert record.levelno == level
        assert record.operation == "revoke"
        assert record.credential_id == "key-1"
        assert "key-1" in record.getMessage()
