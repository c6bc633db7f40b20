"""Tests for the response envelope helpers."""

from pydantic import BaseModel

from takeoff_ai.utils.responses import create_api_response, create_error_detail


class Sample(BaseModel):
    workflow_id: str


def test_model_payload_is_dumped():
    response = create_api_response(Sample(workflow_id="ingest-plan-1"), message="started")

    assert response["status"] is True
    assert response["message"] == "started"
    assert response["data"] == {"workflow_id": "ingest-plan-1"}
    assert response["meta"]["api_version"] == "v1"
    assert response["meta"]["request_id"]


def test_list_payload_is_wrapped():
    response = create_api_response([Sample(workflow_id="a"), {"workflow_id": "b"}])

    assert response["data"] == {"items": [{"workflow_id": "a"}, {"workflow_id": "b"}]}


def test_scalar_and_empty_payloads():
    assert create_api_response(3)["data"] == {"value": 3}
    assert create_api_response(None)["data"] == {}


def test_error_detail():
    detail = create_error_detail(title="Plan Not Found", status=404, detail="Plan x not found", instance="/plans/x")

    assert detail.status == 404
    assert detail.instance == "/plans/x"
    assert detail.request_id
