"""Error kinds raised by the scheduling core.

Routes translate these into ``HTTPException`` at their boundary. Business
rule violations are reported as 400, matching how bookings have always
surfaced them to clients.
"""

from fastapi import HTTPException, status


class SchedulingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidRequestError(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST


class IntegrationError(SchedulingError):
    status_code = status.HTTP_502_BAD_GATEWAY


class NotificationError(SchedulingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
