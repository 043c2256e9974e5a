"""
Tests for the upload service HTTP client.
"""
from unittest.mock import MagicMock

import pytest
import requests

from resumable_upload.api import UploadApiClient
from resumable_upload.exceptions import CollaboratorError
from resumable_upload.models import CompletedPart, RemoteSession

SESSION = RemoteSession(upload_id="mpu-123", object_key="videos/1-a.mp4")


def make_response(payload=None, status_code=200):
    response = MagicMock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.json.return_value = payload
    return response


@pytest.fixture
def http_session():
    return MagicMock()


@pytest.fixture
def client(http_session):
    return UploadApiClient("http://uploads.test/", session=http_session, timeout=5)


def test_start_session(client, http_session):
    http_session.request.return_value = make_response({"uploadId": "mpu-1", "key": "videos/1-a.mp4"})

    session = client.start_session("a.mp4", "video/mp4")

    assert session == RemoteSession(upload_id="mpu-1", object_key="videos/1-a.mp4")
    http_session.request.assert_called_once_with(
        "POST", "http://uploads.test/uploads/start", timeout=5,
        json={"fileName": "a.mp4", "contentType": "video/mp4"}
    )


def test_start_session_missing_fields(client, http_session):
    http_session.request.return_value = make_response({"uploadId": "mpu-1"})

    with pytest.raises(CollaboratorError):
        client.start_session("a.mp4", "video/mp4")


def test_get_part_url(client, http_session):
    http_session.request.return_value = make_response({"url": "https://signed"})

    assert client.get_part_url(SESSION, 4) == "https://signed"
    http_session.request.assert_called_once_with(
        "POST", "http://uploads.test/uploads/part-url", timeout=5,
        json={"key": "videos/1-a.mp4", "uploadId": "mpu-123", "partNumber": 4}
    )


def test_get_part_url_without_url(client, http_session):
    http_session.request.return_value = make_response({})

    with pytest.raises(CollaboratorError):
        client.get_part_url(SESSION, 4)


def test_list_parts(client, http_session):
    http_session.request.return_value = make_response({"parts": [
        {"PartNumber": 2, "ETag": '"b"', "Size": 10},
        {"PartNumber": 1, "ETag": '"a"', "Size": 10}
    ]})

    parts = client.list_parts(SESSION)

    assert parts == [CompletedPart(2, '"b"'), CompletedPart(1, '"a"')]
    http_session.request.assert_called_once_with(
        "GET", "http://uploads.test/uploads/parts", timeout=5,
        params={"key": "videos/1-a.mp4", "uploadId": "mpu-123"}
    )


def test_list_parts_empty(client, http_session):
    http_session.request.return_value = make_response({"parts": None})

    assert client.list_parts(SESSION) == []


def test_complete_sends_parts(client, http_session):
    http_session.request.return_value = make_response({"success": True})

    client.complete(SESSION, [CompletedPart(1, '"a"'), CompletedPart(2, '"b"')])

    http_session.request.assert_called_once_with(
        "POST", "http://uploads.test/uploads/complete", timeout=5,
        json={
            "key": "videos/1-a.mp4",
            "uploadId": "mpu-123",
            "parts": [{"PartNumber": 1, "ETag": '"a"'}, {"PartNumber": 2, "ETag": '"b"'}]
        }
    )


def test_abort_uses_delete(client, http_session):
    http_session.request.return_value = make_response({"aborted": True})

    client.abort(SESSION)

    http_session.request.assert_called_once_with(
        "DELETE", "http://uploads.test/uploads/abort", timeout=5,
        json={"key": "videos/1-a.mp4", "uploadId": "mpu-123"}
    )


def test_error_status_raises_collaborator_error(client, http_session):
    http_session.request.return_value = make_response({"error": "nope"}, status_code=500)

    with pytest.raises(CollaboratorError) as exc_info:
        client.complete(SESSION, [])
    assert exc_info.value.status_code == 500


def test_connection_failure_raises_collaborator_error(client, http_session):
    http_session.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(CollaboratorError) as exc_info:
        client.list_parts(SESSION)
    assert exc_info.value.status_code is None


def test_invalid_json_raises_collaborator_error(client, http_session):
    response = make_response()
    response.json.side_effect = ValueError("not json")
    http_session.request.return_value = response

    with pytest.raises(CollaboratorError):
        client.start_session("a.mp4", "video/mp4")
