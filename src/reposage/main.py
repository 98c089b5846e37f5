from logging import Logger
from typing import Literal

import click
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.utilities.logging import get_logger

from reposage.clients.github import GitHubRepoClient
from reposage.clients.llm import LLMAdvisor
from reposage.publish.gate import PublishGate
from reposage.servers.issues import IssueServer
from reposage.servers.pull_requests import PullRequestServer
from reposage.servers.repository import RepositoryServer
from reposage.servers.tools import ToolServer
from reposage.servers.workflows import WorkflowServer
from reposage.workspace.runner import LocalToolRunner

logger: Logger = get_logger(name=__name__)

mcp: FastMCP[None] = FastMCP[None](name="RepoSage")

mcp.add_middleware(middleware=LoggingMiddleware(include_payloads=True, logger=logger))

github_client: GitHubRepoClient = GitHubRepoClient(logger=logger)
llm_advisor: LLMAdvisor = LLMAdvisor(logger=logger)
tool_runner: LocalToolRunner = LocalToolRunner(logger=logger)
publish_gate: PublishGate = PublishGate(github_client=github_client, logger=logger)

repository_server: RepositoryServer = RepositoryServer(github_client=github_client, tool_runner=tool_runner, logger=logger)
_ = repository_server.register_tools(fastmcp=mcp)

tool_server: ToolServer = ToolServer(tool_runner=tool_runner, logger=logger)
_ = tool_server.register_tools(fastmcp=mcp)

issue_server: IssueServer = IssueServer(github_client=github_client, logger=logger)
_ = issue_server.register_tools(fastmcp=mcp)

pull_request_server: PullRequestServer = PullRequestServer(
    github_client=github_client, llm_advisor=llm_advisor, publish_gate=publish_gate, logger=logger
)
_ = pull_request_server.register_tools(fastmcp=mcp)

workflow_server: WorkflowServer = WorkflowServer(github_client=github_client, logger=logger)
_ = workflow_server.register_tools(fastmcp=mcp)


@click.command()
@click.option(
    "--mcp-transport",
    type=click.Choice(["stdio", "streamable-http"]),
    default="stdio",
    help="The transport to run the MCP server on",
)
def run_mcp(mcp_transport: Literal["stdio", "streamable-http"]):
    mcp.run(transport=mcp_transport)


if __name__ == "__main__":
    run_mcp()
