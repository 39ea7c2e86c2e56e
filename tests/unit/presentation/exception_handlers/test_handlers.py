"""
Presentation層例外ハンドラーの単体テスト
"""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

from fastapi.exceptions import RequestValidationError

from punt.domain.exceptions import ConflictError, NotFoundError, RateLimitError
from punt.presentation.exception_handlers.handlers import (
    domain_error_handler,
    validation_exception_handler,
)


class TestDomainErrorHandler:
    """domain_error_handler関数のテスト"""

    def test_not_found_error_handler(self) -> None:
        """NotFoundErrorが404レスポンスに変換されること"""
        error = NotFoundError("Project not found", details={"projectId": "p-1"})

        response = asyncio.run(domain_error_handler(MagicMock(), error))

        assert response.status_code == 404
        content = json.loads(response.body.decode())
        assert content == {
            "status": "error",
            "code": "not_found",
            "message": "Project not found",
            "details": {"projectId": "p-1"},
        }

    def test_conflict_error_handler(self) -> None:
        response = asyncio.run(
            domain_error_handler(MagicMock(), ConflictError("Username already taken"))
        )

        assert response.status_code == 409
        assert json.loads(response.body.decode())["code"] == "conflict"

    def test_rate_limit_handler_sets_headers(self) -> None:
        """429レスポンスにレート制限ヘッダーが付くこと"""
        error = RateLimitError(reset_at=datetime(2030, 1, 1, tzinfo=timezone.utc))

        response = asyncio.run(domain_error_handler(MagicMock(), error))

        assert response.status_code == 429
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in response.headers


class TestValidationExceptionHandler:
    """validation_exception_handler関数のテスト"""

    def test_request_validation_error_handler(self) -> None:
        """RequestValidationErrorが400 validation_error になること"""
        from pydantic_core import ErrorDetails

        pydantic_errors: list[ErrorDetails] = [
            {
                "loc": ("body", "title"),
                "msg": "Field required",
                "type": "missing",
                "input": {},
            },  # type: ignore[typeddict-item]
            {
                "loc": ("body", "storyPoints"),
                "msg": "Input should be a valid integer",
                "type": "int_parsing",
                "input": "many",
            },  # type: ignore[typeddict-item]
        ]
        validation_error = RequestValidationError(errors=pydantic_errors)  # type: ignore[arg-type]

        response = asyncio.run(validation_exception_handler(MagicMock(), validation_error))

        assert response.status_code == 400
        content = json.loads(response.body.decode())
        assert content["status"] == "error"
        assert content["code"] == "validation_error"
        assert content["message"] == "Invalid request body"
        assert len(content["details"]) == 2
        for detail in content["details"]:
            assert set(detail) == {"loc", "msg", "type"}
