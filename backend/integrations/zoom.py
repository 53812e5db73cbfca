"""Zoom meeting provisioning over the server-to-server OAuth API."""

import base64
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

import httpx

from backend.core import config
from backend.core.errors import IntegrationError
from backend.core.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

SCHEDULED_MEETING_TYPE = 2
TOKEN_REFRESH_BUFFER = timedelta(minutes=5)


@dataclass
class MeetingDetails:
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

    def to_metadata(self) -> dict[str, Any]:
        return asdict(self)


class ZoomMeetingAdapter:
    def __init__(
        self,
        account_id: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        api_base_url: str | None = None,
        oauth_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.account_id = config.ZOOM_ACCOUNT_ID if account_id is None else account_id
        self.client_id = config.ZOOM_CLIENT_ID if client_id is None else client_id
        self.client_secret = config.ZOOM_CLIENT_SECRET if client_secret is None else client_secret
        self.api_base_url = (api_base_url or config.ZOOM_API_BASE_URL).rstrip('/')
        self.oauth_url = oauth_url or config.ZOOM_OAUTH_URL
        self.timeout = timeout or config.ZOOM_TIMEOUT_SECONDS
        self._http = httpx.Client(
            timeout=self.timeout,
            transport=transport or httpx.HTTPTransport(retries=config.ZOOM_HTTP_RETRIES),
        )
        self._access_token: str | None = None
        self._token_expires_at: datetime | None = None

    def is_configured(self) -> bool:
        return bool(self.account_id and self.client_id and self.client_secret)

    def close(self) -> None:
        self._http.close()

    def _get_access_token(self) -> str:
        if self._access_token and self._token_expires_at:
            if utcnow() < self._token_expires_at - TOKEN_REFRESH_BUFFER:
                return self._access_token

        if not self.is_configured():
            logger.error('Zoom credentials not configured')
            raise IntegrationError('Zoom integration is not configured. Please contact administrator.')

        credentials = base64.b64encode(f'{self.client_id}:{self.client_secret}'.encode()).decode()
        try:
            response = self._http.post(
                self.oauth_url,
                headers={'Authorization': f'Basic {credentials}'},
                data={'grant_type': 'account_credentials', 'account_id': self.account_id},
            )
        except httpx.HTTPError as exc:
            logger.error('Error getting Zoom access token: %s', exc)
            raise IntegrationError('Failed to connect to Zoom.') from exc

        if response.status_code != 200:
            logger.error('Failed to get Zoom access token: %s', response.text)
            raise IntegrationError('Failed to authenticate with Zoom.')

        try:
            payload = response.json()
            self._access_token = payload['access_token']
        except (KeyError, TypeError, ValueError) as exc:
            raise IntegrationError('Failed to authenticate with Zoom.') from exc
        self._token_expires_at = utcnow() + timedelta(seconds=int(payload.get('expires_in', 3600)))
        logger.info('Zoom access token obtained')
        return self._access_token

    def _request(self, method: str, path: str, *, action: str, **kwargs) -> httpx.Response:
        token = self._get_access_token()
        try:
            return self._http.request(
                method,
                f'{self.api_base_url}{path}',
                headers={'Authorization': f'Bearer {token}'},
                **kwargs,
            )
        except httpx.HTTPError as exc:
            logger.error('Error trying to %s Zoom meeting: %s', action, exc)
            raise IntegrationError(f'Failed to {action} Zoom meeting.') from exc

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get('message') or 'Unknown error'
        except ValueError:
            return response.text or 'Unknown error'

    def create_meeting(
        self,
        topic: str,
        start_time: datetime,
        duration_minutes: int = 60,
        timezone: str | None = None,
        agenda: str = '',
    ) -> MeetingDetails:
        meeting_timezone = timezone or config.DEFAULT_MENTOR_TIMEZONE
        body = {
            'topic': topic,
            'type': SCHEDULED_MEETING_TYPE,
            'start_time': as_utc(start_time).strftime('%Y-%m-%dT%H:%M:%SZ'),
            'duration': duration_minutes,
            'timezone': meeting_timezone,
            'agenda': agenda,
            'settings': {
                'host_video': True,
                'participant_video': True,
                'join_before_host': True,
                'mute_upon_entry': False,
                'waiting_room': False,
                'audio': 'both',
                'auto_recording': 'none',
                'approval_type': 2,
                'registration_type': 1,
                'enforce_login': False,
            },
        }

        response = self._request('POST', '/users/me/meetings', action='create', json=body)
        if response.status_code not in (200, 201):
            message = self._error_message(response)
            logger.error('Failed to create Zoom meeting: %s', message)
            raise IntegrationError(f'Failed to create Zoom meeting: {message}')

        try:
            meeting = response.json()
            meeting_id = str(meeting['id'])
        except (KeyError, TypeError, ValueError) as exc:
            logger.error('Zoom returned an unexpected meeting payload: %s', response.text)
            raise IntegrationError('Zoom returned an unexpected meeting payload.') from exc

        logger.info('Zoom meeting created: %s', meeting_id)
        return MeetingDetails(
            meeting_id=meeting_id,
            join_url=meeting.get('join_url', ''),
            start_url=meeting.get('start_url', ''),
            password=meeting.get('password') or '',
            host_email=meeting.get('host_email', ''),
            host_id=meeting.get('host_id', ''),
            topic=meeting.get('topic', topic),
            duration=int(meeting.get('duration', duration_minutes)),
            timezone=meeting.get('timezone', meeting_timezone),
            start_time=meeting.get('start_time', body['start_time']),
            created_at=utcnow().isoformat(),
        )

    def update_meeting(
        self,
        meeting_id: str,
        *,
        topic: str | None = None,
        start_time: datetime | None = None,
        duration_minutes: int | None = None,
        agenda: str | None = None,
    ) -> None:
        body: dict[str, Any] = {}
        if topic:
            body['topic'] = topic
        if start_time:
            body['start_time'] = as_utc(start_time).strftime('%Y-%m-%dT%H:%M:%SZ')
        if duration_minutes:
            body['duration'] = duration_minutes
        if agenda:
            body['agenda'] = agenda

        response = self._request('PATCH', f'/meetings/{meeting_id}', action='update', json=body)
        if response.status_code not in (200, 204):
            message = self._error_message(response)
            logger.error('Failed to update Zoom meeting %s: %s', meeting_id, message)
            raise IntegrationError(f'Failed to update Zoom meeting: {message}')

        logger.info('Zoom meeting %s updated', meeting_id)

    def delete_meeting(self, meeting_id: str) -> None:
        response = self._request('DELETE', f'/meetings/{meeting_id}', action='delete')
        if response.status_code == 404:
            logger.warning('Zoom meeting %s was already deleted', meeting_id)
            return
        if response.status_code not in (200, 204):
            message = self._error_message(response)
            logger.error('Failed to delete Zoom meeting %s: %s', meeting_id, message)
            raise IntegrationError(f'Failed to delete Zoom meeting: {message}')

        logger.info('Zoom meeting %s deleted', meeting_id)

    def get_meeting(self, meeting_id: str) -> dict[str, Any]:
        response = self._request('GET', f'/meetings/{meeting_id}', action='get')
        if response.status_code != 200:
            message = self._error_message(response)
            logger.error('Failed to get Zoom meeting %s: %s', meeting_id, message)
            raise IntegrationError(f'Failed to get Zoom meeting: {message}')
        return response.json()


_default_adapter: ZoomMeetingAdapter | None = None


def get_meeting_adapter() -> ZoomMeetingAdapter:
    global _default_adapter

    if _default_adapter is None:
        _default_adapter = ZoomMeetingAdapter()
    return _default_adapter
