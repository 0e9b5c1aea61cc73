import pytest
from uuid import uuid4

from apps.realtime.transport import LocalRealtimeClient
from apps.realtime.tests.support import Recorder


@pytest.fixture
def realtime_client():
    client = LocalRealtimeClient()
    yield client
    client.close()


@pytest.fixture
def bill_id():
    return str(uuid4())


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def claim_payload(bill_id):
    """Factory for claim change payloads on the bill."""
    def _payload(event_type='UPDATE', new_status=None, old_status=None, claim_id=None,
                 timestamp='2026-01-01T12:00:00+00:00', bill=None):
        claim_id = claim_id or str(uuid4())
        new = {'id': claim_id, 'bill_id': bill or bill_id, 'status': new_status} if new_status else {}
        old = {'id': claim_id, 'bill_id': bill or bill_id, 'status': old_status} if old_status else {}
        return {
            'event_type': event_type,
            'table': 'claims',
            'new': new,
            'old': old,
            'commit_timestamp': timestamp,
        }
    return _payload
