from fastapi import HTTPException, status

from medresponse.errors import (
    InvalidStatusTransition,
    MedResponseError,
    NotFoundError,
    ResourceUnavailableError,
)


def to_http_exception(exc: MedResponseError) -> HTTPException:
    """Map a service-layer error onto the status code REST clients see."""
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (InvalidStatusTransition, ResourceUnavailableError)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))
