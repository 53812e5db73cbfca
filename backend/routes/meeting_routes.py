import datetime as dt
from typing import Any

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from backend.core.errors import SchedulingError, to_http_exception
from backend.integrations.zoom import ZoomMeetingAdapter, get_meeting_adapter

router = APIRouter(tags=['meetings'])


class CreateMeetingRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=200)
    start_time: dt.datetime
    duration: int = Field(default=60, gt=0, le=24 * 60)
    timezone: str | None = None
    agenda: str = ''


class UpdateMeetingRequest(BaseModel):
    topic: str | None = Field(default=None, max_length=200)
    start_time: dt.datetime | None = None
    duration: int | None = Field(default=None, gt=0, le=24 * 60)
    agenda: str | None = None


class MeetingResponse(BaseModel):
    meeting_id: str
    join_url: str
    start_url: str
    password: str
    host_email: str
    host_id: str
    topic: str
    duration: int
    timezone: str
    start_time: str
    created_at: str


@router.post('', response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
def create_meeting(data: CreateMeetingRequest, meetings: ZoomMeetingAdapter = Depends(get_meeting_adapter)):
    try:
        meeting = meetings.create_meeting(
            topic=data.topic,
            start_time=data.start_time,
            duration_minutes=data.duration,
            timezone=data.timezone,
            agenda=data.agenda,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return MeetingResponse(**meeting.to_metadata())


@router.get('/{meeting_id}')
def get_meeting(meeting_id: str, meetings: ZoomMeetingAdapter = Depends(get_meeting_adapter)) -> dict[str, Any]:
    try:
        return meetings.get_meeting(meeting_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{meeting_id}', status_code=status.HTTP_204_NO_CONTENT)
def update_meeting(
    meeting_id: str,
    data: UpdateMeetingRequest,
    meetings: ZoomMeetingAdapter = Depends(get_meeting_adapter),
):
    try:
        meetings.update_meeting(
            meeting_id,
            topic=data.topic,
            start_time=data.start_time,
            duration_minutes=data.duration,
            agenda=data.agenda,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete('/{meeting_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_meeting(meeting_id: str, meetings: ZoomMeetingAdapter = Depends(get_meeting_adapter)):
    try:
        meetings.delete_meeting(meeting_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)
