"""Tests for keel.core.errors and keel.core.result."""

import pytest

from keel.core.errors import (
    ConfigError,
    ErrorCategory,
    FieldReplaceError,
    KeelError,
    ModuleNotFoundError,
    SchemaRejectionError,
    ValidationVetoError,
    VersionMismatchError,
)
from keel.core.result import Err, Ok


class TestKeelError:
    def test_categories(self):
        assert ConfigError("x").category == ErrorCategory.CONFIG
        assert ValidationVetoError("x").category == ErrorCategory.VALIDATION
        assert KeelError("x").category == ErrorCategory.INTERNAL

    def test_with_context_and_to_dict(self):
        error = ValidationVetoError("nope").with_context(module="data", removed=["a", "b"])
        assert error.to_dict() == {
            "error_type": "ValidationVetoError",
            "message": "nope",
            "category": "VALIDATION",
            "retryable": False,
            "context": {"module": "data", "removed": ["a", "b"]},
        }

    def test_version_mismatch_message(self):
        error = VersionMismatchError(2, 3)
        assert error.message == "Given version (2) and current version (3) do not match."
        assert error.context.version == 2

    def test_module_not_found(self):
        error = ModuleNotFoundError("nope")
        assert error.module == "nope"
        assert isinstance(error, ConfigError)

    def test_schema_rejection_carries_errors(self):
        error = SchemaRejectionError("bad", errors=[{"loc": ["a"], "msg": "m", "type": "t"}])
        assert error.to_dict()["errors"][0]["loc"] == ["a"]


class TestResult:
    def test_ok_chain(self):
        assert Ok(2).map(lambda x: x * 3).unwrap() == 6
        assert Ok(2).to_dict() == {"ok": True, "value": 2}

    def test_err_passes_through(self):
        err = Err(FieldReplaceError("users", "role", "field does not exist"))
        assert err.map(lambda x: x * 2).is_err()
        assert err.unwrap_or("fallback") == "fallback"
        with pytest.raises(FieldReplaceError):
            err.unwrap()

    def test_inspect_err_side_effect(self):
        seen = []
        Err(ValueError("boom")).inspect_err(lambda e: seen.append(str(e)))
        Ok(1).inspect_err(lambda e: seen.append("unexpected"))
        assert seen == ["boom"]

    def test_err_to_dict_uses_keel_error(self):
        data = Err(FieldReplaceError("users", "role", "nope")).to_dict()
        assert data["ok"] is False
        assert data["error"]["error_type"] == "FieldReplaceError"
