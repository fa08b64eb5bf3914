import json
import re
from pathlib import Path
from typing import Any

import pytest

from schedulr.shopify.models import GraphQLResponse, UploadResponse

FIXTURES = Path(__file__).parent / "fixtures" / "graphql"
OPERATION_RE = re.compile(r"(?:query|mutation)\s+(\w+)")


def load_fixture(name: str) -> GraphQLResponse:
    body = json.loads((FIXTURES / name).read_text())
    return GraphQLResponse(data=body.get("data"), errors=body.get("errors"))


class FakeExecutor:
    """Answers GraphQL documents by operation name.

    A list of responses is consumed in order; the last one repeats. An
    exception instance is raised instead of answered.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    async def execute(self, query, variables=None):
        operation = OPERATION_RE.search(query).group(1)
        self.calls.append((operation, variables))
        answer = self.responses[operation]
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]

    def variables_for(self, operation: str) -> dict[str, Any]:
        return [variables for name, variables in self.calls if name == operation][-1]


class FakeUploader:
    """Object store double that rejects fields sent out of the signed order."""

    def __init__(self, expected_order: list[str] | None = None, response: UploadResponse | None = None) -> None:
        self.expected_order = expected_order
        self.response = response or UploadResponse(status_code=204, body="")
        self.calls: list[dict[str, Any]] = []

    async def post_multipart(self, url, fields, file):
        names = [field.name for field in fields] + [file.name]
        self.calls.append({"url": url, "names": names, "fields": list(fields), "file": file})
        if self.expected_order is not None and names != self.expected_order + ["file"]:
            return UploadResponse(status_code=403, body="<Error><Code>SignatureDoesNotMatch</Code></Error>")
        return self.response


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def recording_sleep():
    return RecordingSleep()


@pytest.fixture()
def no_billing(monkeypatch):
    monkeypatch.setenv("BILLING_ENABLED", "false")
