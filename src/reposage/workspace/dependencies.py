import json
from typing import Any, Literal

from pydantic import BaseModel, Field

Severity = Literal["critical", "high", "moderate", "low"]

VALID_SEVERITIES: set[str] = {"critical", "high", "moderate", "low"}

NO_MANIFEST_SUMMARY = "No package.json found or unable to check dependencies"


class OutdatedDependency(BaseModel):
    name: str = Field(description="The name of the package.")
    current: str = Field(description="The installed version.")
    latest: str = Field(description="The latest published version.")
    type: Literal["dependencies", "devDependencies"] = Field(description="The manifest section the package is declared in.")


class Vulnerability(BaseModel):
    name: str = Field(description="The name of the vulnerable package.")
    severity: Severity = Field(description="The severity of the vulnerability.")
    description: str = Field(description="A short description of the vulnerability.")


def _load_json_object(output: str) -> dict[str, Any]:
    """npm prints JSON to stdout even when it exits non-zero."""

    if not output.strip():
        return {}

    try:
        parsed: Any = json.loads(output)
    except ValueError:
        return {}

    return parsed if isinstance(parsed, dict) else {}  # pyright: ignore[reportUnknownVariableType]


def parse_outdated(output: str) -> list[OutdatedDependency]:
    """Reduce `npm outdated --json` output to a list of outdated packages."""

    outdated: list[OutdatedDependency] = []

    for name, info in _load_json_object(output).items():
        details: dict[str, Any] = info if isinstance(info, dict) else {}  # pyright: ignore[reportUnknownVariableType]
        outdated.append(
            OutdatedDependency(
                name=name,
                current=str(details.get("current") or "unknown"),
                latest=str(details.get("latest") or "unknown"),
                type="devDependencies" if details.get("type") == "devDependencies" else "dependencies",
            )
        )

    return outdated


def _severity(value: Any) -> Severity:
    severity: str = str(value).lower() if value else ""
    return severity if severity in VALID_SEVERITIES else "low"  # pyright: ignore[reportReturnType]


def _description(details: dict[str, Any]) -> str:
    if title := details.get("title"):
        return str(title)

    for via in details.get("via") or []:
        if isinstance(via, dict) and (title := via.get("title")):  # pyright: ignore[reportUnknownMemberType]
            return str(title)  # pyright: ignore[reportUnknownArgumentType]

    return "No description"


def parse_audit(output: str) -> list[Vulnerability]:
    """Reduce `npm audit --json` output to a list of vulnerabilities."""

    vulnerabilities_by_name: Any = _load_json_object(output).get("vulnerabilities") or {}

    if not isinstance(vulnerabilities_by_name, dict):
        return []

    vulnerabilities: list[Vulnerability] = []

    for key, info in vulnerabilities_by_name.items():  # pyright: ignore[reportUnknownVariableType]
        details: dict[str, Any] = info if isinstance(info, dict) else {}  # pyright: ignore[reportUnknownVariableType]
        vulnerabilities.append(
            Vulnerability(
                name=str(details.get("name") or key or "unknown"),
                severity=_severity(details.get("severity")),
                description=_description(details),
            )
        )

    return vulnerabilities


def summarize(outdated: list[OutdatedDependency], vulnerabilities: list[Vulnerability]) -> str:
    return f"Found {len(outdated)} outdated packages and {len(vulnerabilities)} vulnerabilities"
