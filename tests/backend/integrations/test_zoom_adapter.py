import json
from datetime import datetime, timezone

import httpx
import pytest

from backend.core.errors import IntegrationError
from backend.integrations.zoom import ZoomMeetingAdapter

API = 'https://api.zoom.test/v2'
OAUTH = 'https://zoom.test/oauth/token'


class ZoomStub:
    """Records requests and answers them like the Zoom API would."""

    def __init__(self, meeting_status: int = 201, delete_status: int = 204):
        self.meeting_status = meeting_status
        self.delete_status = delete_status
        self.requests: list[httpx.Request] = []
        self.token_requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if str(request.url) == OAUTH:
            self.token_requests += 1
            return httpx.Response(200, json={'access_token': 'token-abc', 'expires_in': 3600})

        if request.method == 'POST' and request.url.path.endswith('/users/me/meetings'):
            if self.meeting_status >= 400:
                return httpx.Response(self.meeting_status, json={'message': 'User does not exist'})
            body = json.loads(request.content)
            return httpx.Response(
                self.meeting_status,
                json={
                    'id': 123456789,
                    'join_url': 'https://zoom.test/j/123456789',
                    'start_url': 'https://zoom.test/s/123456789',
                    'password': 'pw',
                    'host_email': 'host@example.org',
                    'host_id': 'host-1',
                    'topic': body['topic'],
                    'duration': body['duration'],
                    'timezone': body['timezone'],
                    'start_time': body['start_time'],
                },
            )

        if request.method == 'PATCH':
            return httpx.Response(204)
        if request.method == 'DELETE':
            return httpx.Response(self.delete_status, json={'message': 'Meeting not found'})
        if request.method == 'GET':
            return httpx.Response(200, json={'id': 123456789, 'topic': 'Mentoring'})
        return httpx.Response(404)


def _adapter(stub: ZoomStub, **credentials) -> ZoomMeetingAdapter:
    options = {'account_id': 'acct', 'client_id': 'client', 'client_secret': 'secret'}
    options.update(credentials)
    return ZoomMeetingAdapter(
        **options,
        api_base_url=API,
        oauth_url=OAUTH,
        transport=httpx.MockTransport(stub),
    )


def test_create_meeting_returns_details() -> None:
    stub = ZoomStub()
    adapter = _adapter(stub)

    meeting = adapter.create_meeting(
        topic='Mentoring session',
        start_time=datetime(2026, 1, 5, 4, 30, tzinfo=timezone.utc),
        duration_minutes=60,
        timezone='Asia/Kolkata',
    )

    assert meeting.meeting_id == '123456789'
    assert meeting.join_url == 'https://zoom.test/j/123456789'
    assert meeting.start_time == '2026-01-05T04:30:00Z'
    assert meeting.to_metadata()['host_email'] == 'host@example.org'

    token_request, meeting_request = stub.requests
    assert token_request.headers['Authorization'].startswith('Basic ')
    assert b'grant_type=account_credentials' in token_request.content
    assert meeting_request.headers['Authorization'] == 'Bearer token-abc'
    assert json.loads(meeting_request.content)['type'] == 2


def test_access_token_is_reused_until_expiry() -> None:
    stub = ZoomStub()
    adapter = _adapter(stub)
    start = datetime(2026, 1, 5, 4, 30, tzinfo=timezone.utc)

    adapter.create_meeting(topic='One', start_time=start)
    adapter.create_meeting(topic='Two', start_time=start)

    assert stub.token_requests == 1


def test_create_meeting_surfaces_provider_message() -> None:
    adapter = _adapter(ZoomStub(meeting_status=404))

    with pytest.raises(IntegrationError) as exception_info:
        adapter.create_meeting(topic='Mentoring', start_time=datetime(2026, 1, 5, tzinfo=timezone.utc))

    assert exception_info.value.detail == 'Failed to create Zoom meeting: User does not exist'
    assert exception_info.value.status_code == 502


def test_unconfigured_adapter_refuses_to_call_out() -> None:
    stub = ZoomStub()
    adapter = _adapter(stub, client_secret='')

    assert adapter.is_configured() is False
    with pytest.raises(IntegrationError):
        adapter.create_meeting(topic='Mentoring', start_time=datetime(2026, 1, 5, tzinfo=timezone.utc))
    assert stub.requests == []


def test_transport_failure_becomes_integration_error() -> None:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError('connection refused', request=request)

    adapter = ZoomMeetingAdapter(
        'acct',
        'client',
        'secret',
        api_base_url=API,
        oauth_url=OAUTH,
        transport=httpx.MockTransport(unreachable),
    )

    with pytest.raises(IntegrationError) as exception_info:
        adapter.get_meeting('123')

    assert exception_info.value.detail == 'Failed to connect to Zoom.'


def test_update_meeting_sends_only_changed_fields() -> None:
    stub = ZoomStub()
    adapter = _adapter(stub)

    adapter.update_meeting('123', start_time=datetime(2026, 1, 5, 5, 30, tzinfo=timezone.utc))

    patch = stub.requests[-1]
    assert patch.method == 'PATCH'
    assert patch.url.path == '/v2/meetings/123'
    assert json.loads(patch.content) == {'start_time': '2026-01-05T05:30:00Z'}


def test_delete_meeting_tolerates_missing_meeting() -> None:
    adapter = _adapter(ZoomStub(delete_status=404))

    adapter.delete_meeting('123')


def test_delete_meeting_raises_on_provider_error() -> None:
    adapter = _adapter(ZoomStub(delete_status=500))

    with pytest.raises(IntegrationError) as exception_info:
        adapter.delete_meeting('123')

    assert exception_info.value.detail == 'Failed to delete Zoom meeting: Meeting not found'


def test_get_meeting_returns_payload() -> None:
    adapter = _adapter(ZoomStub())

    assert adapter.get_meeting('123456789') == {'id': 123456789, 'topic': 'Mentoring'}
