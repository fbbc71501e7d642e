from fastapi.testclient import TestClient
from prometheus_client import REGISTRY


def _value(name):
    return REGISTRY.get_sample_value(name) or 0.0


def test_metrics_endpoint(make_hub):
    client = TestClient(make_hub())
    r = client.get('/metrics')
    assert r.status_code == 200
    # should contain prometheus metrics header
    assert r.headers.get('content-type').startswith('text/plain')
    assert 'hub_sessions_created_total' in r.text


def test_session_lifecycle_counters(make_hub):
    client = TestClient(make_hub())
    created = _value('hub_sessions_created_total')
    saved = _value('hub_sessions_saved_total')
    touched = _value('hub_sessions_touched_total')

    client.get('/health')
    client.get('/health')

    assert _value('hub_sessions_created_total') == created + 1
    assert _value('hub_sessions_saved_total') == saved + 1
    assert _value('hub_sessions_touched_total') == touched + 1


def test_terminate_denied_counter(make_hub):
    client = TestClient(make_hub(admin_token="t"))
    denied = _value('hub_terminate_denied_total')
    assert client.post('/api/sessions/whatever/terminate').status_code == 403
    assert _value('hub_terminate_denied_total') == denied + 1
