"""Code review prompt built from a task's branch state."""

from __future__ import annotations

from ._types import ReviewContext

_INSTRUCTIONS = [
    "When reviewing the diff:",
    "1. **Focus on logic and correctness** - Check for bugs, edge cases, and potential issues.",
    "2. **Consider readability** - Is the code clear and maintainable? "
    "Does it follow best practices in this repository?",
    "3. **Evaluate performance** - Are there obvious performance concerns or optimizations "
    "that could be made?",
    "4. **Assess test coverage** - Does the repository have testing patterns? "
    "If so, are there adequate tests for these changes?",
    "5. **Security review** - Check for injection risks, auth issues, hardcoded secrets, "
    "or other vulnerabilities.",
    "6. **Ask clarifying questions** - Ask the user for clarification if you are unsure "
    "about the changes or need more context.",
    "7. **Don't be overly pedantic** - Nitpicks are fine, but only if they are relevant "
    "issues within reason.",
    "",
    "In your output:",
    "- Provide a short summary overview of the general code quality.",
    "- Present findings as a numbered list (no tables, no HTML).",
    "- For each finding, use this exact structure with labels on separate lines:",
    "  - Location: file path + line number(s) if available",
    "  - Snippet: fenced code block (keep it short)",
    "  - Issue: what is wrong and why it matters",
    "  - Recommendation: concrete fix or next step",
    "  - Severity: low | medium | high",
    '- If no issues are found, write: "Findings: None" and briefly state why.',
    '- End with an overall verdict line: "Verdict: APPROVE" or "Verdict: REQUEST CHANGES" '
    'or "Verdict: NEEDS DISCUSSION".',
    "- Avoid markdown tables entirely. Use headings and lists only.",
]


def build_review_prompt(context: ReviewContext) -> str:
    """Render the review request sent to the reviewing agent.

    The commit log and diff are inlined so the reviewer never has to run
    git itself. An empty diff is stated explicitly.
    """
    lines = [
        "You are performing a code review on the changes in the current branch.",
        "",
        f"The current branch is **{context.current_branch}**, "
        f"and the target branch is **origin/{context.base_branch}**.",
        "",
        "## Code Review Instructions",
        "",
        "**CRITICAL: EVERYTHING YOU NEED IS ALREADY PROVIDED BELOW.** "
        "The complete git diff and full commit history are included in this message.",
        "",
        "**DO NOT run git diff, git log, git status, or ANY other git commands.** "
        "All the information you need to perform this review is already here.",
        "",
        *_INSTRUCTIONS,
        "",
    ]

    commit_log = context.commit_log.strip()
    if commit_log:
        lines += ["## Commit History", "", "```", commit_log, "```", ""]

    lines += [
        "## Full Diff",
        "",
        "**REMINDER: DO NOT use any tools to fetch git information.** "
        "Simply read the diff and commit history provided above.",
        "",
    ]
    if context.diff_truncated:
        lines += [
            "> **Note:** The diff was truncated due to size (~100KB limit). "
            "Focus on the included changes and note that some files may be missing.",
            "",
        ]

    diff = context.diff.strip()
    if diff:
        lines += ["```diff", diff, "```"]
    else:
        lines.append(
            f"No changes detected between `{context.current_branch}` "
            f"and `origin/{context.base_branch}`."
        )
    return "\n".join(lines)
