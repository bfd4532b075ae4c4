from intentcad.boundary.protocol import BoundaryRequest, ResponseStatus
from intentcad.boundary.worker import serve_request


class EchoEvaluator:
    def handle(self, operation, payload):
        if operation == "FAIL":
            raise ValueError("Geometry 'geo_x' not found in cache")
        return {"operation": operation, "payload": payload}


def test_serve_request_wraps_result():
    message = BoundaryRequest(id="req_1", operation="CREATE_BOX", payload={"width": 1}).to_message()
    response = serve_request(EchoEvaluator(), message)
    assert response.id == "req_1"
    assert response.ok
    assert response.result == {"operation": "CREATE_BOX", "payload": {"width": 1}}


def test_serve_request_turns_exceptions_into_error_responses():
    message = BoundaryRequest(id="req_2", operation="FAIL").to_message()
    response = serve_request(EchoEvaluator(), message)
    assert response.status is ResponseStatus.ERROR
    assert response.error == "Geometry 'geo_x' not found in cache"
