"""
API errors with a machine-readable code.

main.py renders every HTTPException as {"error": detail, "error_code": code};
plain HTTPExceptions carry error_code None.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class APIException(HTTPException):

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class UpstreamServiceError(APIException):
    """Strava or the LLM provider answered with an error."""

    def __init__(self, service: str, detail: str):
        super().__init__(status.HTTP_502_BAD_GATEWAY, f"{service}: {detail}", "UPSTREAM_ERROR")


class GenerationUnavailableError(APIException):
    """No acceptable AI text could be produced right now; the user may retry."""

    def __init__(self, detail: str):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, detail, "GENERATION_UNAVAILABLE")
