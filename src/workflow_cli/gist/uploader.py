"""GitHub Gist upload utility.

Wraps PyGithub so gist calls stay out of CLI code. Binary artifacts (`.wasm`, `.wasm.br`) are
base64 encoded before upload so they survive JSON transport; configuration files go up as text.
"""

from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import requests
from github import Auth, Github, GithubException, InputFileContent

from workflow_cli.errors import InputValidationError, UploadError
from workflow_cli.secrets import GitHubAPIToken

logger = logging.getLogger(__name__)

GITHUB_GIST_API_URL = "https://api.github.com/gists"
CREATED_DESCRIPTION = "Created by workflow CLI"
UPDATED_DESCRIPTION = "Updated by workflow CLI"

_BINARY_SUFFIXES = (".wasm.br", ".wasm")
_TEXT_SUFFIXES = (".yaml", ".yml", ".json", ".b64")
_GIST_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def is_binary_file(file_name: str) -> bool:
    """Classify a file by extension; unsupported extensions are rejected."""

    if file_name.endswith(_BINARY_SUFFIXES):
        return True
    if file_name.endswith(_TEXT_SUFFIXES):
        return False
    raise InputValidationError(
        f"file extension not supported by the tool: {file_name}, "
        "supported extensions: .wasm.br, .wasm, .json, .yaml, .yml, .b64"
    )


def is_valid_gist_id(gist_id: str) -> bool:
    return bool(_GIST_ID_RE.match(gist_id))


def read_gist_content(path: Path, *, binary: bool) -> str:
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise InputValidationError(f"failed to read file {path}: {e}") from e
    if binary:
        return base64.b64encode(raw).decode("ascii")
    return raw.decode("utf-8")


def has_gist_permissions(
    token: GitHubAPIToken | None, *, session: requests.Session | None = None, timeout_seconds: float = 30.0
) -> bool:
    """True when the token can list the authenticated user's gists."""

    if token is None or not token.get_secret_value():
        return False
    http = session or requests.Session()
    try:
        resp = http.get(
            GITHUB_GIST_API_URL,
            headers={
                "Authorization": f"Bearer {token.get_secret_value()}",
                "Accept": "application/vnd.github.v3+json",
            },
            timeout=timeout_seconds,
        )
    except requests.RequestException as e:
        logger.debug("Gist permission check failed", extra={"error": str(e)})
        return False
    return resp.status_code == 200


@dataclass(frozen=True, slots=True)
class GistUpload:
    gist_id: str
    file_name: str
    raw_url: str
    binary: bool


class GistUploader:
    def __init__(self, *, token: GitHubAPIToken, github: Github | None = None) -> None:
        if not token.get_secret_value():
            raise InputValidationError("GITHUB_API_TOKEN is not set")
        self._github = github or Github(auth=Auth.Token(token.get_secret_value()))

    def close(self) -> None:
        self._github.close()

    def upload(self, path: Path, *, public: bool = False) -> GistUpload:
        """Create a new gist holding `path` and return its raw URL."""

        binary = is_binary_file(path.name)
        content = read_gist_content(path, binary=binary)
        logger.info("Creating gist", extra={"file": path.name, "binary": binary})
        try:
            gist = self._github.get_user().create_gist(
                public, {path.name: InputFileContent(content)}, CREATED_DESCRIPTION
            )
        except GithubException as e:
            raise UploadError(f"gist not created: {e}") from e
        return self._result(gist, path.name, binary)

    def update(self, gist_id: str, path: Path) -> GistUpload:
        """Replace the content of an existing single-file gist."""

        if not is_valid_gist_id(gist_id):
            raise InputValidationError(f"invalid gist ID: {gist_id}")
        try:
            gist = self._github.get_gist(gist_id)
        except GithubException as e:
            raise UploadError(f"gist not updated: {e}") from e
        if len(gist.files) != 1:
            raise UploadError("gist does not contain a single file as expected")
        existing_name = next(iter(gist.files))
        binary = is_binary_file(existing_name)
        content = read_gist_content(path, binary=binary)

        logger.info("Updating gist", extra={"gist_id": gist_id, "binary": binary})
        try:
            gist.edit(UPDATED_DESCRIPTION, {path.name: InputFileContent(content)})
        except GithubException as e:
            raise UploadError(f"gist not updated: {e}") from e
        return self._result(gist, path.name, binary)

    @staticmethod
    def _result(gist: object, file_name: str, binary: bool) -> GistUpload:
        files = getattr(gist, "files", {}) or {}
        entry = files.get(file_name)
        if entry is None or not getattr(entry, "raw_url", ""):
            raise UploadError("failed to extract gist URL from response")
        return GistUpload(
            gist_id=str(getattr(gist, "id", "")), file_name=file_name, raw_url=entry.raw_url, binary=binary
        )
