import base64
import json
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Any, overload

import httpx
import pytest
from fastmcp import FastMCP
from fastmcp.client.client import CallToolResult
from fastmcp.server.middleware.logging import StructuredLoggingMiddleware
from git import Actor
from git.repo import Repo
from openai import AsyncOpenAI
from pydantic import BaseModel

from reposage.clients.github import GitHubRepoClient, get_githubkit_client
from reposage.clients.llm import LLMAdvisor
from reposage.publish.gate import PublishGate
from reposage.workspace.runner import LocalToolRunner

TEST_REPO_URL = "https://github.com/octo/widgets"
TEST_API_PREFIX = "/repos/octo/widgets"

TEST_MODEL = "test-model"

GIT_ACTOR = Actor(name="RepoSage Tests", email="tests@example.com")

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

type Responder = Callable[[httpx.Request], httpx.Response]


def json_response(payload: Any, status_code: int = 200) -> Responder:
    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=status_code, json=payload)

    return respond


def text_response(text: str, status_code: int = 200) -> Responder:
    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=status_code, text=text)

    return respond


def encode_content(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class MockUpstream:
    """Routes requests by method and path. Unrouted requests get a 404 with a GitHub-style body."""

    def __init__(self):
        self.routes: dict[tuple[str, str], Responder] = {}
        self.requests: list[httpx.Request] = []

    def route(self, method: str, path: str, responder: Responder) -> None:
        self.routes[(method, path)] = responder

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if responder := self.routes.get((request.method, request.url.path)):
            return responder(request)

        return httpx.Response(status_code=404, json={"message": "Not Found"})

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.method == method and request.url.path == path]

    def json_bodies(self, method: str, path: str) -> list[Any]:
        return [json.loads(request.content) for request in self.requests_to(method, path)]


def chat_completion(content: str | None) -> dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 0,
        "model": TEST_MODEL,
        "choices": [{"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}}],
    }


class MockModel(MockUpstream):
    """A chat completions endpoint that answers with queued replies, in order."""

    def __init__(self):
        super().__init__()
        self.replies: list[str | None] = []
        self.route("POST", "/v1/chat/completions", self._complete)

    def reply(self, *contents: str | None) -> None:
        self.replies.extend(contents)

    def _complete(self, request: httpx.Request) -> httpx.Response:
        content: str | None = self.replies.pop(0) if self.replies else ""
        return httpx.Response(status_code=200, json=chat_completion(content))

    def prompts(self) -> list[list[dict[str, Any]]]:
        return [body["messages"] for body in self.json_bodies("POST", "/v1/chat/completions")]


@pytest.fixture
def mock_github() -> MockUpstream:
    mock_github = MockUpstream()
    mock_github.route("GET", TEST_API_PREFIX, json_response({"full_name": "octo/widgets", "name": "widgets", "default_branch": "main"}))
    return mock_github


@pytest.fixture
def github_client(mock_github: MockUpstream) -> GitHubRepoClient:
    githubkit_client = get_githubkit_client(token="test-token", transport=httpx.MockTransport(mock_github.handle))
    return GitHubRepoClient(githubkit_client=githubkit_client, token="test-token")


@pytest.fixture
def anonymous_github_client(mock_github: MockUpstream, monkeypatch: pytest.MonkeyPatch) -> GitHubRepoClient:
    """A client that reads its token from the environment, which starts out without one."""

    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_PERSONAL_ACCESS_TOKEN", raising=False)

    return GitHubRepoClient(transport=httpx.MockTransport(mock_github.handle))


@pytest.fixture
def mock_model() -> MockModel:
    return MockModel()


@pytest.fixture
def llm_advisor(mock_model: MockModel) -> LLMAdvisor:
    openai_client = AsyncOpenAI(
        api_key="test-key",
        base_url="https://llm.example.com/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(mock_model.handle)),
    )
    return LLMAdvisor(openai_client=openai_client, model=TEST_MODEL)


@pytest.fixture
def publish_gate(github_client: GitHubRepoClient) -> PublishGate:
    return PublishGate(github_client=github_client)


# Local repositories


@pytest.fixture
def upstream_root(tmp_path: Path) -> Path:
    upstream_root = tmp_path / "upstream"
    upstream_root.mkdir()
    return upstream_root


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    workspace_root = tmp_path / "workspaces"
    workspace_root.mkdir()
    return workspace_root


@pytest.fixture
def tool_runner(upstream_root: Path, workspace_root: Path) -> LocalToolRunner:
    return LocalToolRunner(clone_base_url=upstream_root.as_uri(), temp_root=workspace_root)


def make_upstream_repository(upstream_root: Path, files: dict[str, str], owner: str = "octo", repo: str = "widgets") -> Path:
    """Create a repository that `LocalToolRunner` can clone with `upstream_root` as its clone base URL."""

    path = upstream_root / owner / f"{repo}.git"
    path.mkdir(parents=True)

    repository = Repo.init(path)

    for name, content in files.items():
        file_path = path / name
        file_path.parent.mkdir(parents=True, exist_ok=True)
        _ = file_path.write_text(content)

    _ = repository.index.add(list(files))
    _ = repository.index.commit("Initial commit", author=GIT_ACTOR, committer=GIT_ACTOR)
    _ = repository.git.branch("-M", "main")

    repository.close()

    return path


@pytest.fixture
def logging_middleware() -> StructuredLoggingMiddleware:
    return StructuredLoggingMiddleware(include_payloads=True)


@pytest.fixture
def fastmcp(logging_middleware: StructuredLoggingMiddleware) -> FastMCP[Any]:
    return FastMCP(name="RepoSage", middleware=[logging_middleware])


def handle_exclude_keys(dictionary: dict[str, Any], exclude_keys: list[str] | None = None) -> dict[str, Any]:
    if exclude_keys is None:
        return dictionary
    return {key: value for key, value in dictionary.items() if key not in exclude_keys}


@overload
def dump_for_snapshot(
    basemodel: None,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> None:
    return None


@overload
def dump_for_snapshot(
    basemodel: BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any]:
    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_for_snapshot(
    basemodel: None | BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any] | None:
    if basemodel is None:
        return None

    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_call_tool_result_for_snapshot(
    call_tool_result: CallToolResult,
    /,
) -> dict[str, Any]:
    return {
        "content": [item.model_dump() for item in call_tool_result.content],
        "structured_content": call_tool_result.structured_content,
    }
