"""Tests for the code review prompt."""

from chatlog._types import ReviewContext
from chatlog.review import build_review_prompt


class TestBuildReviewPrompt:
    def test_branches_log_and_diff_are_inlined(self):
        prompt = build_review_prompt(
            ReviewContext(
                current_branch="feature/rename",
                base_branch="main",
                commit_log="  abc123 Rename foo\n",
                diff="\n-foo = 1\n+bar = 1\n",
            )
        )
        assert prompt.startswith(
            "You are performing a code review on the changes in the current branch."
        )
        assert "The current branch is **feature/rename**, and the target branch is **origin/main**." in prompt
        assert "## Commit History\n\n```\nabc123 Rename foo\n```" in prompt
        assert prompt.endswith("```diff\n-foo = 1\n+bar = 1\n```")
        assert "truncated" not in prompt

    def test_empty_log_and_diff(self):
        prompt = build_review_prompt(ReviewContext(current_branch="wip", base_branch="main"))
        assert "## Commit History" not in prompt
        assert prompt.endswith("No changes detected between `wip` and `origin/main`.")

    def test_truncated_diff_note(self):
        prompt = build_review_prompt(
            ReviewContext(current_branch="wip", base_branch="main", diff="+x", diff_truncated=True)
        )
        note = prompt.index("The diff was truncated")
        assert note < prompt.index("```diff")

    def test_context_from_dict_defaults(self):
        context = ReviewContext.from_dict({"currentBranch": "wip", "diffTruncated": 1})
        assert context.current_branch == "wip"
        assert context.base_branch == "main"
        assert context.diff == ""
        assert context.diff_truncated is True
