"""
Error kinds raised by the order workflow and the services around it.

They subclass HTTPException so services can raise them directly, the same way
the auth services raise HTTPException, and routers need no translation layer.
Tests can still tell them apart with pytest.raises(IllegalTransition) etc.
"""

from fastapi import HTTPException
from starlette import status


class IllegalTransition(HTTPException):
    """Requested status change is not an edge of the transition table."""

    def __init__(self, current: str, target: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Illegal transition from '{current}' to '{target}'"
        )
        self.current = current
        self.target = target


class Unauthorized(HTTPException):
    """Actor's role or assignment does not permit the action."""

    def __init__(self, detail: str = "Not permitted to perform this action"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ValidationError(HTTPException):
    """Missing or inconsistent input, e.g. an empty rejection reason."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class UpstreamFailure(HTTPException):
    """Store or provider call failed for an environment reason."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)
