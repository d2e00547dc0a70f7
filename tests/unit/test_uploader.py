"""Unit tests for the artifact uploader (GraphQL and HTTP faked)."""

from __future__ import annotations

from typing import Any
from unittest.mock import Mock

import pytest
import requests

from workflow_cli.artifact.builder import Artifact
from workflow_cli.errors import GraphQLError, UploadError
from workflow_cli.graphql.client import GraphQLClient
from workflow_cli.storage.uploader import ArtifactType, ArtifactUploader, content_md5_base64

from conftest import ANVIL_ADDRESS, REGISTRY_ADDRESS

WORKFLOW_ID = "00" + "ab" * 31


class FakeResponse:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text

    def close(self) -> None:
        pass


class FakeSession:
    def __init__(self, statuses: list[int]) -> None:
        self.statuses = list(statuses)
        self.posts: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.posts.append({"url": url, **kwargs})
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return FakeResponse(status, text="body")

    def close(self) -> None:
        pass


def _graphql(*, presign_error: Exception | None = None) -> Mock:
    def execute(query: str, variables: dict[str, Any] | None = None, **_: Any) -> dict[str, Any]:
        if "generatePresignedPostUrlForArtifact" in query:
            if presign_error is not None:
                raise presign_error
            return {
                "generatePresignedPostUrlForArtifact": {
                    "presignedPostUrl": "https://blob.example/upload",
                    "presignedPostFields": [{"key": "policy", "value": "p"}, {"key": "x-sig", "value": "s"}],
                }
            }
        kind = variables["artifact"]["artifactType"] if variables else "?"
        return {"generateUnsignedGetUrlForArtifact": {"unsignedGetUrl": f"https://blob.example/{kind}"}}

    graphql = Mock(spec=GraphQLClient)
    graphql.execute.side_effect = execute
    return graphql


def _uploader(graphql: Mock, session: FakeSession) -> ArtifactUploader:
    return ArtifactUploader(
        graphql=graphql,
        owner=ANVIL_ADDRESS,
        registry_address=REGISTRY_ADDRESS,
        chain_selector=16015286601757825753,
        session=session,  # type: ignore[arg-type]
        retry_delay_seconds=0,
    )


def test_upload_binary_and_config_posts_each_part_once() -> None:
    graphql = _graphql()
    session = FakeSession([204])
    artifact = Artifact(workflow_id=WORKFLOW_ID, binary_framed=b"ZnJhbWVk", config=b"a: 1\n")

    urls = _uploader(graphql, session).upload_artifact(artifact)

    assert urls.binary_url == "https://blob.example/BINARY"
    assert urls.config_url == "https://blob.example/CONFIG"
    assert len(session.posts) == 2
    form = dict(session.posts[0]["data"])
    assert form["policy"] == "p"
    assert form["Content-MD5"] == content_md5_base64(b"ZnJhbWVk")
    assert form["Content-Type"] == "application/octet-stream"
    assert dict(session.posts[1]["data"])["Content-Type"] == "text/plain"


def test_presign_request_carries_content_hash_and_registry() -> None:
    graphql = _graphql()
    _uploader(graphql, FakeSession([201])).upload(
        workflow_id=WORKFLOW_ID, artifact_type=ArtifactType.BINARY, content=b"abc"
    )
    variables = graphql.execute.call_args_list[0].args[1]["artifact"]
    assert variables["contentHash"] == content_md5_base64(b"abc")
    assert variables["workflowOwnerAddress"] == ANVIL_ADDRESS
    assert variables["workflowRegistryAddress"] == REGISTRY_ADDRESS
    assert variables["chainSelector"] == "16015286601757825753"


def test_status_200_is_not_accepted_and_is_retried_three_times() -> None:
    session = FakeSession([200])
    with pytest.raises(UploadError, match="expected status 204 or 201, got 200"):
        _uploader(_graphql(), session).upload(
            workflow_id=WORKFLOW_ID, artifact_type=ArtifactType.BINARY, content=b"abc"
        )
    assert len(session.posts) == 3


def test_transient_post_failure_recovers_on_retry() -> None:
    session = FakeSession([500, 204])
    url = _uploader(_graphql(), session).upload(
        workflow_id=WORKFLOW_ID, artifact_type=ArtifactType.BINARY, content=b"abc"
    )
    assert url == "https://blob.example/BINARY"
    assert len(session.posts) == 2


def test_existing_content_skips_the_post() -> None:
    graphql = _graphql(presign_error=GraphQLError("graphql: content already exists", codes=["ALREADY_EXISTS"]))
    session = FakeSession([204])

    url = _uploader(graphql, session).upload(
        workflow_id=WORKFLOW_ID, artifact_type=ArtifactType.BINARY, content=b"abc"
    )

    assert url == "https://blob.example/BINARY"
    assert session.posts == []
    presign_calls = [c for c in graphql.execute.call_args_list if "Presigned" in c.args[0]]
    assert len(presign_calls) == 1


def test_presign_failure_is_retried_then_reported() -> None:
    graphql = _graphql(presign_error=requests.ConnectionError("connection refused"))
    with pytest.raises(UploadError, match="generate presigned post url"):
        _uploader(graphql, FakeSession([204])).upload(
            workflow_id=WORKFLOW_ID, artifact_type=ArtifactType.BINARY, content=b"abc"
        )
    assert graphql.execute.call_count == 3


def test_empty_content_is_rejected() -> None:
    with pytest.raises(UploadError, match="content is empty"):
        _uploader(_graphql(), FakeSession([204])).upload(
            workflow_id=WORKFLOW_ID, artifact_type=ArtifactType.CONFIG, content=b""
        )
