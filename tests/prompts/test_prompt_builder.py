from inline_snapshot import snapshot

from reposage.clients.models.github import Commit, CommitDetail, PullRequest, PullRequestFile
from reposage.prompts.builder import DIFF_MAX_CHARACTERS, PromptBuilder, PromptSection, clip_text
from reposage.prompts.pull_requests import changed_files, describe_prompt, fix_prompt, labels_prompt, review_prompt

PULL_REQUEST = PullRequest(number=5, title="Add retry to fetcher", body="Retries failed downloads.")


def test_clip_text():
    assert clip_text("abcdef", 3) == "abc"
    assert clip_text("abc", 3) == "abc"
    assert clip_text("abc", None) == "abc"


def test_render_sections():
    builder = PromptBuilder()
    _ = builder.add_text_section(title="Pull request", text=["Repository: octo/widgets", "PR #5"])
    _ = builder.add_list_section(title="Files", items=["a.py", "b.py", "c.py"], level=2, max_items=2)
    _ = builder.add_code_section(title="Diff", code="+x", language="diff")
    _ = builder.add_prompt_section(PromptSection(title="Output", section="Be brief."))

    assert builder.render_text() == snapshot("""\
# Pull request
Repository: octo/widgets
PR #5

## Files
- a.py
- b.py

# Diff
```diff
+x
```

# Output
Be brief.\
""")


def test_add_yaml_section():
    builder = PromptBuilder().add_yaml_section(title="Labels", obj={"labels": ["bug", "docs"]})

    assert builder.render_text() == snapshot("""\
# Labels
```yaml
labels:
- bug
- docs
```\
""")


def test_get_section():
    builder = PromptBuilder().add_text_section(title="Question", text="Why?")

    section = builder.get_section("Question")

    assert section is not None
    assert section.section == "Why?"
    assert builder.get_section("Missing") is None


def test_review_prompt_caps_diff():
    diff = "+" * (DIFF_MAX_CHARACTERS + 500)
    commits = [Commit(sha="abc", commit=CommitDetail(message="Add retry")), Commit(sha="def", commit=CommitDetail(message="Fix test"))]

    builder = review_prompt(repository="octo/widgets", pull_number=5, pull_request=PULL_REQUEST, commits=commits, diff=diff)

    diff_section = builder.get_section("Unified diff (clipped)")
    assert diff_section is not None
    assert diff_section.section == f"```diff\n{'+' * DIFF_MAX_CHARACTERS}\n```"

    commit_section = builder.get_section("Commit messages")
    assert commit_section is not None
    assert commit_section.section == "- Add retry\n- Fix test"


def test_review_prompt_keeps_short_diff():
    builder = review_prompt(repository="octo/widgets", pull_number=5, pull_request=PULL_REQUEST, commits=[], diff="+x\n-y")

    diff_section = builder.get_section("Unified diff (clipped)")
    assert diff_section is not None
    assert diff_section.section == "```diff\n+x\n-y\n```"


def test_labels_prompt():
    text = labels_prompt(pull_request=PULL_REQUEST, max_labels=2).render_text()

    assert text == snapshot("""\
# PR title
Add retry to fetcher

# PR description
Retries failed downloads.

# Limit
Limit to 2 labels.\
""")


def test_changed_files():
    files = [PullRequestFile(filename="src/fetch.py", additions=10, deletions=2), PullRequestFile()]

    assert changed_files(files) == ["src/fetch.py (+10/-2)", "unknown (+0/-0)"]


def test_describe_prompt_lists_files():
    files = [PullRequestFile(filename=f"file_{i}.py", additions=1, deletions=0) for i in range(150)]

    builder = describe_prompt(repository="octo/widgets", pull_number=5, pull_request=PULL_REQUEST, files=files)

    files_section = builder.get_section("Changed files summary")
    assert files_section is not None
    assert len(files_section.section.splitlines()) == 100


def test_fix_prompt_without_file():
    builder = fix_prompt(repository="octo/widgets", problem="TypeError in fetch()", file_path=None, file_content=None)

    assert [section.title for section in builder.sections] == ["Repository", "Problem"]


def test_fix_prompt_with_file():
    builder = fix_prompt(repository="octo/widgets", problem="TypeError", file_path="src/fetch.py", file_content="def fetch(): ...")

    file_section = builder.get_section("File: src/fetch.py")
    assert file_section is not None
    assert file_section.section == "```\ndef fetch(): ...\n```"
