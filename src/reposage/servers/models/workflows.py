from typing import Self

from pydantic import BaseModel, Field

from reposage.clients.models.github import WorkflowRun


class WorkflowTriggered(BaseModel):
    success: bool = Field(description="Whether the workflow was triggered.")
    message: str = Field(description="A status message.")


class WorkflowRunSummary(BaseModel):
    name: str = Field(description="The name of the workflow.")
    status: str = Field(description="The status of the run.")
    conclusion: str | None = Field(default=None, description="The conclusion of the run, once it has completed.")
    run_number: int = Field(default=0, description="The run number.")
    created_at: str = Field(default="", description="When the run was created.")
    html_url: str = Field(default="", description="The URL of the run.")

    @classmethod
    def from_workflow_run(cls, workflow_run: WorkflowRun) -> Self:
        return cls(
            name=workflow_run.name or "Unknown",
            status=workflow_run.status or "unknown",
            conclusion=workflow_run.conclusion,
            run_number=workflow_run.run_number or 0,
            created_at=workflow_run.created_at or "",
            html_url=workflow_run.html_url or "",
        )


class WorkflowStatus(BaseModel):
    workflows: list[WorkflowRunSummary] = Field(default_factory=list, description="The most recent workflow runs.")
    summary: str = Field(description="A one-line summary of the runs.")

    @classmethod
    def from_workflow_runs(cls, workflow_runs: list[WorkflowRun]) -> Self:
        workflows: list[WorkflowRunSummary] = [WorkflowRunSummary.from_workflow_run(run) for run in workflow_runs]

        failed: int = len([workflow for workflow in workflows if workflow.conclusion == "failure"])

        if not workflows:
            summary = "No workflows found"
        elif failed > 0:
            summary = f"{failed} workflow(s) failed out of {len(workflows)}"
        else:
            summary = f"All {len(workflows)} workflows passing"

        return cls(workflows=workflows, summary=summary)
