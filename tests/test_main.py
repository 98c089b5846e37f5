from collections.abc import AsyncGenerator
from typing import Any

import pytest
from fastmcp.client import Client
from fastmcp.client.transports import FastMCPTransport
from fastmcp.exceptions import ToolError
from inline_snapshot import snapshot

from reposage.main import mcp


def test_main():
    assert mcp is not None


@pytest.fixture
async def main_mcp_client() -> AsyncGenerator[Client[FastMCPTransport], Any]:
    async with Client[FastMCPTransport](transport=mcp) as mcp_client:
        yield mcp_client


async def test_list_tools(main_mcp_client: Client[FastMCPTransport]):
    list_tools = await main_mcp_client.list_tools()
    assert [tool.name for tool in list_tools] == snapshot(
        [
            "read_file",
            "list_repo_files",
            "find_file",
            "search_github_issues",
            "analyze_repository",
            "run_tests",
            "check_dependencies",
            "format_code",
            "fix_lint_errors",
            "analyze_code_quality",
            "create_issue",
            "comment_on_issue",
            "close_issue",
            "create_pull_request",
            "merge_pull_request",
            "ai_review_pull_request",
            "ai_improve_pull_request",
            "ai_ask_pull_request",
            "generate_and_apply_labels",
            "draft_changelog",
            "ai_describe_pull_request",
            "generate_fix",
            "trigger_workflow",
            "get_workflow_status",
        ]
    )


async def test_tools_are_described(main_mcp_client: Client[FastMCPTransport]):
    list_tools = await main_mcp_client.list_tools()

    assert all(tool.description for tool in list_tools)


async def test_invalid_url_is_a_tool_error(main_mcp_client: Client[FastMCPTransport]):
    with pytest.raises(ToolError, match="not a GitHub repository URL"):
        _ = await main_mcp_client.call_tool("read_file", arguments={"repo_url": "https://example.com/nope", "path": "README.md"})
