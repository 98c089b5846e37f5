from logging import Logger
from typing import Any

from fastmcp import FastMCP
from fastmcp.tools.tool import Tool
from fastmcp.utilities.logging import get_logger

from reposage.clients.coordinates import parse_repo_url
from reposage.clients.github import GitHubRepoClient
from reposage.clients.models.github import WorkflowRunList
from reposage.servers.models.workflows import WorkflowStatus, WorkflowTriggered
from reposage.servers.shared.annotations import BRANCH, REPO_URL, WORKFLOW_ID, WORKFLOW_INPUTS

FALLBACK_REF = "main"


class WorkflowServer:
    """Triggers GitHub Actions workflows and reports on their recent runs."""

    def __init__(self, github_client: GitHubRepoClient, logger: Logger | None = None):
        self.github_client: GitHubRepoClient = github_client
        self.logger: Logger = logger or get_logger(__name__)

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.trigger_workflow))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.get_workflow_status))

        return fastmcp

    async def trigger_workflow(
        self, repo_url: REPO_URL, workflow_id: WORKFLOW_ID, branch: BRANCH = None, inputs: WORKFLOW_INPUTS = None
    ) -> WorkflowTriggered:
        """Trigger a workflow that accepts `workflow_dispatch` events."""

        _ = parse_repo_url(repo_url)
        _ = self.github_client.require_token(action="Dispatch workflow")

        ref: str = branch or await self.github_client.get_default_branch(repo_url=repo_url) or FALLBACK_REF

        await self.github_client.dispatch_workflow(repo_url=repo_url, workflow_id=workflow_id, ref=ref, inputs=inputs)

        self.logger.info(f"Triggered workflow {workflow_id} on {ref} for {repo_url}")

        return WorkflowTriggered(success=True, message="Workflow triggered successfully")

    async def get_workflow_status(self, repo_url: REPO_URL, branch: BRANCH = None) -> WorkflowStatus:
        """Summarize the most recent workflow runs of a repository."""

        workflow_runs: WorkflowRunList = await self.github_client.list_workflow_runs(repo_url=repo_url, branch=branch)

        return WorkflowStatus.from_workflow_runs(workflow_runs.workflow_runs)
