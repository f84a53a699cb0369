import httpx
import pytest

from routeengine.config import settings
from routeengine.errors import ExternalServiceError
from routeengine.services.routing.maps_client import DistanceMatrixClient, check_health


def _ok_response(request: httpx.Request) -> httpx.Response:
    origins = [tuple(map(float, p.split(","))) for p in request.url.params["origins"].split("|")]
    destinations = [tuple(map(float, p.split(","))) for p in request.url.params["destinations"].split("|")]
    rows = [
        {
            "elements": [
                {
                    "status": "OK",
                    "distance": {"value": abs(o[0] - d[0]) * 1000},
                    "duration": {"value": abs(o[0] - d[0]) * 60},
                }
                for d in destinations
            ]
        }
        for o in origins
    ]
    return httpx.Response(200, json={"status": "OK", "rows": rows})


def _client(handler, **kwargs) -> DistanceMatrixClient:
    kwargs.setdefault("backoff_seconds", 0)
    return DistanceMatrixClient(api_key="test-key", transport=httpx.MockTransport(handler), **kwargs)


def test_matrix_sends_lat_lng_pairs_and_key():
    seen = []

    def handler(request):
        seen.append(request)
        return _ok_response(request)

    result = _client(handler).matrix([(1.0, 0.5), (2.0, 0.5)])

    assert result["distances"] == [[0, 1000], [1000, 0]]
    assert result["durations"][0][1] == 60
    params = seen[0].url.params
    assert params["origins"] == "1.0,0.5|2.0,0.5"
    assert params["key"] == "test-key"
    assert seen[0].url.path.endswith("/distancematrix/json")


def test_large_matrix_is_split_into_blocks():
    seen = []

    def handler(request):
        seen.append(request)
        return _ok_response(request)

    coordinates = [(1.0, 0.0), (2.0, 0.0), (3.0, 0.0)]
    result = _client(handler, max_locations_per_request=2).matrix(coordinates)

    assert len(seen) == 4
    assert result["distances"][0][2] == 2000
    assert result["distances"][2][0] == 2000
    assert result["distances"][1][1] == 0


def test_timeout_is_retried_exactly_once():
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ExternalServiceError):
        _client(handler, max_retries=1).matrix([(1.0, 0.0), (2.0, 0.0)])
    assert len(attempts) == 2


def test_timeout_then_success_recovers():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return _ok_response(request)

    result = _client(handler, max_retries=1).matrix([(1.0, 0.0), (2.0, 0.0)])
    assert result["distances"][0][1] == 1000
    assert len(attempts) == 2


def test_denied_status_fails_without_retry():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(200, json={"status": "REQUEST_DENIED", "error_message": "bad key"})

    with pytest.raises(ExternalServiceError, match="REQUEST_DENIED"):
        _client(handler).matrix([(1.0, 0.0), (2.0, 0.0)])
    assert len(attempts) == 1


def test_element_status_not_ok_fails():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "rows": [
                    {"elements": [{"status": "OK", "distance": {"value": 0}, "duration": {"value": 0}}, {"status": "ZERO_RESULTS"}]},
                    {"elements": [{"status": "OK", "distance": {"value": 5}, "duration": {"value": 5}}, {"status": "OK", "distance": {"value": 0}, "duration": {"value": 0}}]},
                ],
            },
        )

    with pytest.raises(ExternalServiceError):
        _client(handler).matrix([(1.0, 0.0), (2.0, 0.0)])


def test_server_error_is_reported_after_retry():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(ExternalServiceError):
        _client(handler, max_retries=1).matrix([(1.0, 0.0), (2.0, 0.0)])
    assert len(attempts) == 2


def test_missing_api_key_is_an_external_service_error(monkeypatch):
    monkeypatch.setattr(settings, "maps_api_key", None)
    with pytest.raises(ExternalServiceError):
        DistanceMatrixClient()


def test_check_health():
    assert check_health(api_key="test-key", transport=httpx.MockTransport(_ok_response)) is True
    denied = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "REQUEST_DENIED"}))
    assert check_health(api_key="test-key", transport=denied) is False


def test_non_object_body_is_an_external_service_error():
    client = _client(lambda request: httpx.Response(200, json=[]))
    with pytest.raises(ExternalServiceError, match="unexpected list body"):
        client.matrix([(1.0, 0.5), (2.0, 0.5)])


def test_non_object_element_is_an_external_service_error():
    def handler(request):
        return httpx.Response(200, json={"status": "OK", "rows": [{"elements": ["OK", "OK"]}] * 2})

    with pytest.raises(ExternalServiceError, match="not an object"):
        _client(handler).matrix([(1.0, 0.5), (2.0, 0.5)])
