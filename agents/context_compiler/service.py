from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import click

from agents.issue_fetcher.service import Issue


PREVIEW_HEADER = "\n=== Combined Content Preview ==="
CONFIRM_MESSAGE = "Proceed to open Codex with this content?"
MONOREPO_MESSAGE = "Is this codebase a monorepo?"
PROJECT_NAME_MESSAGE = "Enter the specific project name or folder within the monorepo relevant to this issue:"


class Prompter(Protocol):
    def confirm(self, message: str, default: bool) -> bool: ...

    def text(self, message: str, default: str = "") -> str: ...

    def choose(self, message: str, choices: Sequence[str], default: str) -> str: ...

    def echo(self, message: str = "") -> None: ...


class ClickPrompter:
    """Blocking terminal prompts backed by click."""

    def confirm(self, message: str, default: bool) -> bool:
        return click.confirm(message, default=default)

    def text(self, message: str, default: str = "") -> str:
        return click.prompt(message, default=default, show_default=bool(default))

    def choose(self, message: str, choices: Sequence[str], default: str) -> str:
        value = click.prompt(
            message,
            type=click.Choice(list(choices), case_sensitive=False),
            default=default,
        )
        return str(value).strip().lower()

    def echo(self, message: str = "") -> None:
        click.echo(message)


@dataclass(frozen=True)
class ContextAnswers:
    include_sub_issues: bool = False
    include_comments: bool = False
    is_monorepo: bool = False
    project_name: str = ""


def _single_line(text: Optional[str]) -> str:
    return " ".join(str(text or "").split())


def compile_prompt_text(issue: Issue, answers: ContextAnswers) -> str:
    content = f"**Issue:** {issue.title}\n**Description:** {issue.description or ''}\n"
    if answers.include_sub_issues and issue.children:
        content += "Sub-issues:\n"
        for sub in issue.children:
            content += f"- {sub.title}: {sub.description or ''}\n"
    if answers.include_comments and issue.comments:
        content += "Comments:\n"
        for body in issue.comments:
            content += f"- {_single_line(body)}\n"
    project_name = str(answers.project_name or "").strip()
    if answers.is_monorepo and project_name:
        content += f'Project context: (Monorepo) focus on the "{project_name}" project.\n'
    return content


def collect_context(issue: Issue, prompter: Prompter) -> ContextAnswers:
    """Ask the operator which optional context goes into the prompt.

    Questions about sub-issues and comments are only asked when the issue has
    any. The project name is only asked for monorepos.
    """
    include_sub_issues = False
    if issue.children:
        include_sub_issues = prompter.confirm(
            f"Include {len(issue.children)} sub-issue(s) in the context?",
            default=False,
        )

    include_comments = False
    if issue.comments:
        include_comments = prompter.confirm(
            f"Include {len(issue.comments)} comment(s) in the context?",
            default=False,
        )

    is_monorepo = prompter.confirm(MONOREPO_MESSAGE, default=False)
    project_name = ""
    if is_monorepo:
        project_name = str(prompter.text(PROJECT_NAME_MESSAGE, default="") or "").strip()

    return ContextAnswers(
        include_sub_issues=bool(include_sub_issues),
        include_comments=bool(include_comments),
        is_monorepo=bool(is_monorepo),
        project_name=project_name,
    )


def review_prompt_text(prompt_text: str, prompter: Prompter) -> bool:
    prompter.echo(PREVIEW_HEADER)
    prompter.echo(prompt_text)
    return bool(prompter.confirm(CONFIRM_MESSAGE, default=True))
