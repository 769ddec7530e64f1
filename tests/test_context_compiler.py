import unittest

from agents.context_compiler.service import (
    CONFIRM_MESSAGE,
    MONOREPO_MESSAGE,
    PREVIEW_HEADER,
    ContextAnswers,
    collect_context,
    compile_prompt_text,
    review_prompt_text,
)
from agents.issue_fetcher.service import Issue, SubIssue


class _ScriptedPrompter:
    """Answers prompts from a script; unscripted prompts take the default."""

    def __init__(self, confirms=None, texts=None) -> None:
        self.confirms = dict(confirms or {})
        self.texts = dict(texts or {})
        self.asked = []
        self.echoed = []

    def confirm(self, message, default):
        self.asked.append(message)
        return self.confirms.get(message, default)

    def text(self, message, default=""):
        self.asked.append(message)
        return self.texts.get(message, default)

    def choose(self, message, choices, default):
        self.asked.append(message)
        return default

    def echo(self, message=""):
        self.echoed.append(message)


def _issue(children=(), comments=()):
    return Issue(
        id="issue-1",
        identifier="ABC-1",
        title="Fix login bug",
        description="Users cannot log in",
        children=list(children),
        comments=list(comments),
    )


SUB_ISSUES = [
    SubIssue(title="Reproduce", description="Write a failing test"),
    SubIssue(title="Patch", description=None),
]


class CompilePromptTextTests(unittest.TestCase):
    def test_sample_issue_with_defaults(self) -> None:
        prompter = _ScriptedPrompter()
        issue = _issue()

        answers = collect_context(issue, prompter)

        self.assertEqual(
            compile_prompt_text(issue, answers),
            "**Issue:** Fix login bug\n**Description:** Users cannot log in\n",
        )
        self.assertEqual(prompter.asked, [MONOREPO_MESSAGE])

    def test_missing_description_renders_empty(self) -> None:
        issue = Issue(id="x", title="No body")
        self.assertEqual(compile_prompt_text(issue, ContextAnswers()), "**Issue:** No body\n**Description:** \n")

    def test_sub_issues_included_when_accepted(self) -> None:
        text = compile_prompt_text(_issue(children=SUB_ISSUES), ContextAnswers(include_sub_issues=True))
        self.assertTrue(
            text.endswith("Sub-issues:\n- Reproduce: Write a failing test\n- Patch: \n"),
            text,
        )

    def test_sub_issues_never_included_when_declined(self) -> None:
        issue = _issue(children=SUB_ISSUES)
        prompter = _ScriptedPrompter(confirms={"Include 2 sub-issue(s) in the context?": False})

        text = compile_prompt_text(issue, collect_context(issue, prompter))

        self.assertIn("Include 2 sub-issue(s) in the context?", prompter.asked)
        self.assertNotIn("Sub-issues:", text)
        self.assertNotIn("Reproduce", text)

    def test_comments_flattened_to_single_lines(self) -> None:
        issue = _issue(comments=["Seen on\nSafari", "Also Firefox"])
        prompter = _ScriptedPrompter(confirms={"Include 2 comment(s) in the context?": True})

        text = compile_prompt_text(issue, collect_context(issue, prompter))

        self.assertIn("Comments:\n- Seen on Safari\n- Also Firefox\n", text)

    def test_project_line_for_monorepo(self) -> None:
        prompter = _ScriptedPrompter(
            confirms={MONOREPO_MESSAGE: True},
            texts={
                "Enter the specific project name or folder within the monorepo relevant to this issue:": "  apps/web  "
            },
        )
        issue = _issue(children=SUB_ISSUES)

        answers = collect_context(issue, prompter)
        text = compile_prompt_text(issue, answers)

        self.assertEqual(answers.project_name, "apps/web")
        self.assertTrue(text.endswith('Project context: (Monorepo) focus on the "apps/web" project.\n'))

    def test_no_project_line_when_not_monorepo(self) -> None:
        answers = ContextAnswers(is_monorepo=False, project_name="apps/web")
        self.assertNotIn("Project context", compile_prompt_text(_issue(), answers))

    def test_no_project_line_for_blank_name(self) -> None:
        prompter = _ScriptedPrompter(confirms={MONOREPO_MESSAGE: True})

        answers = collect_context(_issue(), prompter)

        self.assertTrue(answers.is_monorepo)
        self.assertNotIn("Project context", compile_prompt_text(_issue(), answers))


class ReviewPromptTextTests(unittest.TestCase):
    def test_preview_is_printed_before_confirmation(self) -> None:
        prompter = _ScriptedPrompter()

        accepted = review_prompt_text("**Issue:** x\n", prompter)

        self.assertTrue(accepted)
        self.assertEqual(prompter.echoed, [PREVIEW_HEADER, "**Issue:** x\n"])
        self.assertEqual(prompter.asked, [CONFIRM_MESSAGE])

    def test_decline_returns_false(self) -> None:
        prompter = _ScriptedPrompter(confirms={CONFIRM_MESSAGE: False})
        self.assertFalse(review_prompt_text("text", prompter))


if __name__ == "__main__":
    unittest.main()
