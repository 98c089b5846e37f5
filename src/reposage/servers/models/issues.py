from pydantic import BaseModel, Field


class IssueCreated(BaseModel):
    success: bool = Field(description="Whether the issue was created.")
    issue_number: int = Field(description="The number of the new issue.")
    issue_url: str = Field(description="The URL of the new issue.")


class CommentPosted(BaseModel):
    success: bool = Field(description="Whether the comment was posted.")
    comment_url: str = Field(description="The URL of the comment.")


class IssueClosed(BaseModel):
    success: bool = Field(description="Whether the issue was closed.")
    message: str = Field(description="A status message.")
