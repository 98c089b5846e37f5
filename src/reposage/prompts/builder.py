from textwrap import dedent
from typing import Self

import yaml
from pydantic import BaseModel, Field

DIFF_MAX_CHARACTERS = 120000
COMMIT_MESSAGES_MAX_CHARACTERS = 4000
DESCRIPTION_MAX_CHARACTERS = 8000
CHANGED_FILES_MAX_ENTRIES = 100


def clip_text(text: str, max_characters: int | None) -> str:
    """Keep the first `max_characters` characters of `text`."""

    if max_characters is None:
        return text

    return text[:max_characters]


class PromptSection(BaseModel):
    title: str = Field(description="The title of the section.")
    level: int = Field(default=1, description="The level of the section.")
    section: str = Field(description="The section of the prompt.")

    def render_text(self) -> str:
        return f"{'#' * self.level} {self.title}\n{self.section}"


class PromptBuilder(BaseModel):
    """Assembles a prompt from sections. Each section is clipped to its budget before it is added."""

    sections: list[PromptSection] = Field(default_factory=list, description="The sections of the prompt.")

    def add_text_section(self, title: str, text: str | list[str], level: int = 1, max_characters: int | None = None) -> Self:
        if not isinstance(text, list):
            text = [text]

        text_block = "\n".join([dedent(text) for text in text])

        self.sections.append(PromptSection(title=title, level=level, section=clip_text(text_block, max_characters)))

        return self

    def add_code_section(self, title: str, code: str, language: str, level: int = 1, max_characters: int | None = None) -> Self:
        code_block = f"```{language}\n{clip_text(code, max_characters)}\n```"

        self.sections.append(PromptSection(title=title, level=level, section=code_block))

        return self

    def add_list_section(self, title: str, items: list[str], level: int = 1, max_items: int | None = None) -> Self:
        kept_items: list[str] = items if max_items is None else items[:max_items]

        self.sections.append(PromptSection(title=title, level=level, section="\n".join(f"- {item}" for item in kept_items)))

        return self

    def add_yaml_section(self, title: str, obj: dict | BaseModel | list, level: int = 1) -> Self:  # pyright: ignore[reportMissingTypeArgument]
        yaml_text: str

        if isinstance(obj, BaseModel):
            yaml_text = yaml.safe_dump(obj.model_dump(), sort_keys=False)
        elif isinstance(obj, dict):
            yaml_text = yaml.safe_dump(obj, sort_keys=False)
        else:
            dumped_objs = [item.model_dump() if isinstance(item, BaseModel) else item for item in obj]  # pyright: ignore[reportUnknownVariableType]
            yaml_text = yaml.safe_dump(dumped_objs, sort_keys=False)

        self.sections.append(PromptSection(title=title, level=level, section=f"```yaml\n{yaml_text}```"))

        return self

    def add_prompt_section(self, section: PromptSection) -> Self:
        self.sections.append(section)
        return self

    def get_section(self, title: str) -> PromptSection | None:
        return next((section for section in self.sections if section.title == title), None)

    def render_text(self) -> str:
        return "\n\n".join(section.render_text() for section in self.sections)
