"""Upload workflow artifacts to the blob store through presigned POST URLs.

Each part goes through three steps, each retried up to three times:
1. presign (GraphQL `generatePresignedPostUrlForArtifact`)
2. multipart POST to the presigned URL (skipped when the content already exists)
3. resolve the durable GET URL (GraphQL `generateUnsignedGetUrlForArtifact`)
"""

from __future__ import annotations

import base64
import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import requests

from workflow_cli.artifact.builder import Artifact
from workflow_cli.errors import GraphQLError, UploadError
from workflow_cli.graphql.client import GraphQLClient
from workflow_cli.retry import call_with_retries

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
_ERROR_BODY_LIMIT = 512

PRESIGN_MUTATION = """
mutation GeneratePresignedPostUrlForArtifact($artifact: GeneratePresignedPostUrlRequest!) {
  generatePresignedPostUrlForArtifact(artifact: $artifact) {
    presignedPostUrl
    presignedPostFields {
      key
      value
    }
  }
}"""

GET_URL_MUTATION = """
mutation GenerateUnsignedGetUrlForArtifact($artifact: GenerateUnsignedGetUrlRequest!) {
  generateUnsignedGetUrlForArtifact(artifact: $artifact) {
    unsignedGetUrl
  }
}"""


class ArtifactType(str, Enum):
    BINARY = "BINARY"
    CONFIG = "CONFIG"


_CONTENT_TYPES = {
    ArtifactType.BINARY: "application/octet-stream",
    ArtifactType.CONFIG: "text/plain",
}


class _ContentAlreadyExists(Exception):
    pass


@dataclass(frozen=True, slots=True)
class PresignedPost:
    url: str
    fields: list[tuple[str, str]]


@dataclass(frozen=True, slots=True)
class UploadedArtifacts:
    binary_url: str
    config_url: str = ""


def content_md5_base64(content: bytes) -> str:
    """Base64 MD5 used for the Content-MD5 integrity header (not a security control)."""

    return base64.b64encode(hashlib.md5(content, usedforsecurity=False).digest()).decode("ascii")


def _is_already_exists(error: Exception) -> bool:
    text = str(error).lower()
    if "already exists" in text:
        return True
    if isinstance(error, GraphQLError):
        return any("ALREADY_EXISTS" in code.upper() for code in error.codes)
    return False


class ArtifactUploader:
    def __init__(
        self,
        *,
        graphql: GraphQLClient,
        owner: str,
        registry_address: str,
        chain_selector: int,
        http_timeout_seconds: float = 60.0,
        session: requests.Session | None = None,
        retry_delay_seconds: float = 0.5,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._graphql = graphql
        self._owner = owner
        self._registry_address = registry_address
        self._chain_selector = chain_selector
        self._http_timeout = http_timeout_seconds
        self._session = session or requests.Session()
        self._retry_delay = retry_delay_seconds
        self._sleep = sleep

    def close(self) -> None:
        self._session.close()

    def _retry_kwargs(self) -> dict[str, object]:
        kwargs: dict[str, object] = {"attempts": MAX_ATTEMPTS, "delay_seconds": self._retry_delay}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return kwargs

    def presign(self, *, workflow_id: str, artifact_type: ArtifactType, content: bytes) -> PresignedPost:
        variables = {
            "artifact": {
                "workflowId": workflow_id,
                "artifactType": artifact_type.value,
                "contentHash": content_md5_base64(content),
                "workflowOwnerAddress": self._owner,
                "workflowRegistryAddress": self._registry_address,
                "chainSelector": str(self._chain_selector),
            }
        }
        try:
            data = self._graphql.execute(PRESIGN_MUTATION, variables)
        except GraphQLError as e:
            if _is_already_exists(e):
                raise _ContentAlreadyExists(str(e)) from e
            raise

        raw = data.get("generatePresignedPostUrlForArtifact")
        if not isinstance(raw, dict) or not isinstance(raw.get("presignedPostUrl"), str):
            raise UploadError("presign response is missing presignedPostUrl")

        fields: list[tuple[str, str]] = []
        raw_fields = raw.get("presignedPostFields")
        if isinstance(raw_fields, list):
            for item in raw_fields:
                if isinstance(item, dict) and isinstance(item.get("key"), str):
                    fields.append((item["key"], str(item.get("value", ""))))
        return PresignedPost(url=raw["presignedPostUrl"], fields=fields)

    def post_to_origin(self, presigned: PresignedPost, *, content: bytes, content_type: str) -> None:
        """POST the multipart form: presigned fields, Content-Type, Content-MD5, then the file."""

        form = list(presigned.fields)
        form.append(("Content-Type", content_type))
        form.append(("Content-MD5", content_md5_base64(content)))
        files = [("file", ("artifact", content, "application/octet-stream"))]

        logger.debug("Uploading content to origin", extra={"url": presigned.url})
        resp = self._session.post(
            presigned.url, data=form, files=files, timeout=self._http_timeout
        )
        try:
            if resp.status_code not in (201, 204):
                body = resp.text[:_ERROR_BODY_LIMIT]
                raise UploadError(f"expected status 204 or 201, got {resp.status_code}: {body}")
        finally:
            resp.close()
        logger.debug("Uploaded content to origin", extra={"url": presigned.url})

    def resolve_get_url(self, *, workflow_id: str, artifact_type: ArtifactType) -> str:
        variables = {
            "artifact": {
                "workflowId": workflow_id,
                "artifactType": artifact_type.value,
                "workflowRegistryAddress": self._registry_address,
                "chainSelector": str(self._chain_selector),
            }
        }
        data = self._graphql.execute(GET_URL_MUTATION, variables)
        raw = data.get("generateUnsignedGetUrlForArtifact")
        url = raw.get("unsignedGetUrl") if isinstance(raw, dict) else None
        if not isinstance(url, str) or not url:
            raise UploadError("service returned no unsigned GET URL")
        return url

    def upload(self, *, workflow_id: str, artifact_type: ArtifactType, content: bytes) -> str:
        """Upload one part and return its GET URL; existing content is not re-uploaded."""

        if not workflow_id:
            raise UploadError("workflow ID is empty")
        if not content:
            raise UploadError(f"content is empty for artifact type {artifact_type.value}")

        presigned: PresignedPost | None = None
        try:
            presigned = call_with_retries(
                lambda: self.presign(
                    workflow_id=workflow_id, artifact_type=artifact_type, content=content
                ),
                give_up_on=(_ContentAlreadyExists,),
                description="presign",
                **self._retry_kwargs(),
            )
        except _ContentAlreadyExists:
            logger.info(
                "Workflow artifact already exists, skipping upload",
                extra={"workflow_id": workflow_id, "artifact_type": artifact_type.value},
            )
        except Exception as e:
            raise UploadError(f"generate presigned post url: {e}") from e

        if presigned is not None:
            try:
                call_with_retries(
                    lambda: self.post_to_origin(
                        presigned, content=content, content_type=_CONTENT_TYPES[artifact_type]
                    ),
                    description="upload to origin",
                    **self._retry_kwargs(),
                )
            except UploadError:
                raise
            except Exception as e:
                raise UploadError(f"upload to origin: {e}") from e

        try:
            url = call_with_retries(
                lambda: self.resolve_get_url(workflow_id=workflow_id, artifact_type=artifact_type),
                description="resolve get url",
                **self._retry_kwargs(),
            )
        except UploadError:
            raise
        except Exception as e:
            raise UploadError(f"generate unsigned get url: {e}") from e

        logger.info(
            "Artifact available",
            extra={"workflow_id": workflow_id, "artifact_type": artifact_type.value, "url": url},
        )
        return url

    def upload_artifact(self, artifact: Artifact) -> UploadedArtifacts:
        """Upload the binary, then the config when present; parts are sent serially."""

        binary_url = self.upload(
            workflow_id=artifact.workflow_id,
            artifact_type=ArtifactType.BINARY,
            content=artifact.binary_framed,
        )
        config_url = ""
        if artifact.config:
            config_url = self.upload(
                workflow_id=artifact.workflow_id,
                artifact_type=ArtifactType.CONFIG,
                content=artifact.config,
            )
        return UploadedArtifacts(binary_url=binary_url, config_url=config_url)
