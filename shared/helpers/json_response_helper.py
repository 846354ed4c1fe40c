from fastapi import HTTPException
from typing import Any

from shared.utils.app_status_code import AppStatusCode
from shared.core.schemas import JsonOutResult


def success_response(data: Any, message: str = "Success", status_code: str = AppStatusCode.DATA_RETRIEVED_SUCCESSFULLY):
    return JsonOutResult(
        data=data,
        status="Success",
        status_code=status_code,
        message=message
    )


def failure_payload(message: str, status_code: str = AppStatusCode.OPERATION_FAILED) -> dict:
    """Failure envelope as a plain dict, ready for a JSONResponse or HTTPException detail."""
    return JsonOutResult(
        data=None,
        status="Failure",
        status_code=str(status_code),
        message=message
    ).model_dump()


def error_response(message: str, status_code: str = AppStatusCode.OPERATION_FAILED, http_status: int = 400):
    raise HTTPException(
        status_code=http_status,
        detail=failure_payload(message, status_code)
    )
