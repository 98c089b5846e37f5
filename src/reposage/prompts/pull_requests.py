from reposage.clients.models.github import Commit, PullRequest, PullRequestFile
from reposage.prompts.builder import (
    CHANGED_FILES_MAX_ENTRIES,
    COMMIT_MESSAGES_MAX_CHARACTERS,
    DESCRIPTION_MAX_CHARACTERS,
    DIFF_MAX_CHARACTERS,
    PromptBuilder,
    PromptSection,
)

REVIEW_SYSTEM_PROMPT = "You are an expert senior code reviewer. Provide precise, actionable findings. Output concise markdown."

IMPROVE_SYSTEM_PROMPT = (
    "You are an expert code reviewer. Return concise, actionable code suggestions with rationale and optional code snippets."
)

ASK_SYSTEM_PROMPT = "You are an expert software engineer answering questions about a pull request precisely and concisely."

LABELS_SYSTEM_PROMPT = (
    'You generate short, conventional repository labels for PRs. Output JSON {"labels": ["label1", ...]}. '
    "Prefer existing conventions: bug, enhancement, docs, tests, refactor, security, performance."
)

CHANGELOG_SYSTEM_PROMPT = "You draft semantic, clean CHANGELOG entries."

DESCRIBE_SYSTEM_PROMPT = "You are an expert PR author. Improve titles and descriptions. Be concise and informative."

FIX_SYSTEM_PROMPT = (
    'You are an expert software engineer. Propose a minimal fix for the reported problem. Output JSON {"fix": string, '
    '"explanation": string, "confidence": number between 0 and 100}.'
)

REVIEW_INSTRUCTIONS = PromptSection(
    title="Please produce",
    section="""- High-level summary
- Key issues (file, line if possible, what, why, severity)
- Security concerns, test coverage notes, and suggested improvements
- Final concise checklist""",
)

IMPROVE_INSTRUCTIONS = PromptSection(
    title="Output",
    section="""Output a concise markdown list of suggestions. For each item include:
- File (and line if inferable)
- What/Why
- Severity (low|medium|high)
- Suggested code snippet (when applicable)""",
)

CHANGELOG_INSTRUCTIONS = PromptSection(
    title="Output",
    section="Draft a CHANGELOG entry in markdown under sections (Added/Changed/Fixed/Removed). Keep concise.",
)

DESCRIBE_INSTRUCTIONS = PromptSection(
    title="Output",
    section="""Produce JSON with keys {"title": string, "description": string} where description includes:
- Summary
- Changes made
- Rationale
- Impact/risks
- Testing/validation notes
- Breaking changes (if any)""",
)


def commit_messages(commits: list[Commit]) -> str:
    return "\n".join(f"- {commit.message}" for commit in commits)


def changed_files(files: list[PullRequestFile]) -> list[str]:
    return [f"{file.filename or 'unknown'} (+{file.additions or 0}/-{file.deletions or 0})" for file in files]


def _header(builder: PromptBuilder, repository: str, pull_request: PullRequest, pull_number: int) -> PromptBuilder:
    return builder.add_text_section(
        title="Pull request", text=[f"Repository: {repository}", f"PR #{pull_number}: {pull_request.title or ''}"]
    )


def review_prompt(repository: str, pull_number: int, pull_request: PullRequest, commits: list[Commit], diff: str) -> PromptBuilder:
    builder = _header(PromptBuilder(), repository, pull_request, pull_number)

    builder.add_text_section(title="Commit messages", text=commit_messages(commits), max_characters=COMMIT_MESSAGES_MAX_CHARACTERS)
    builder.add_code_section(title="Unified diff (clipped)", code=diff, language="diff", max_characters=DIFF_MAX_CHARACTERS)

    return builder.add_prompt_section(REVIEW_INSTRUCTIONS)


def improve_prompt(repository: str, pull_number: int, pull_request: PullRequest, diff: str) -> PromptBuilder:
    builder = _header(PromptBuilder(), repository, pull_request, pull_number)

    builder.add_code_section(title="Unified diff (clipped)", code=diff, language="diff", max_characters=DIFF_MAX_CHARACTERS)

    return builder.add_prompt_section(IMPROVE_INSTRUCTIONS)


def ask_prompt(repository: str, pull_number: int, pull_request: PullRequest, question: str) -> PromptBuilder:
    builder = _header(PromptBuilder(), repository, pull_request, pull_number)

    builder.add_text_section(title="PR description", text=pull_request.body or "(empty)", max_characters=DESCRIPTION_MAX_CHARACTERS)

    return builder.add_text_section(title="Question", text=question)


def labels_prompt(pull_request: PullRequest, max_labels: int) -> PromptBuilder:
    builder = PromptBuilder()

    builder.add_text_section(title="PR title", text=pull_request.title or "")
    builder.add_text_section(title="PR description", text=pull_request.body or "", max_characters=DESCRIPTION_MAX_CHARACTERS)

    return builder.add_text_section(title="Limit", text=f"Limit to {max_labels} labels.")


def changelog_prompt(pull_request: PullRequest, commits: list[Commit]) -> PromptBuilder:
    builder = PromptBuilder().add_text_section(title="PR", text=pull_request.title or "")

    builder.add_text_section(title="Commit messages", text=commit_messages(commits), max_characters=COMMIT_MESSAGES_MAX_CHARACTERS)

    return builder.add_prompt_section(CHANGELOG_INSTRUCTIONS)


def describe_prompt(repository: str, pull_number: int, pull_request: PullRequest, files: list[PullRequestFile]) -> PromptBuilder:
    builder = PromptBuilder().add_text_section(
        title="Pull request", text=[f"Repository: {repository}", f"PR #{pull_number}", f"Current title: {pull_request.title or ''}"]
    )

    builder.add_text_section(title="Existing description", text=pull_request.body or "(empty)", max_characters=DESCRIPTION_MAX_CHARACTERS)
    builder.add_list_section(title="Changed files summary", items=changed_files(files), max_items=CHANGED_FILES_MAX_ENTRIES)

    return builder.add_prompt_section(DESCRIBE_INSTRUCTIONS)


def fix_prompt(repository: str, problem: str, file_path: str | None, file_content: str | None) -> PromptBuilder:
    builder = PromptBuilder().add_text_section(title="Repository", text=repository)

    builder.add_text_section(title="Problem", text=problem, max_characters=DESCRIPTION_MAX_CHARACTERS)

    if file_path and file_content is not None:
        builder.add_code_section(title=f"File: {file_path}", code=file_content, language="", max_characters=DIFF_MAX_CHARACTERS)

    return builder
