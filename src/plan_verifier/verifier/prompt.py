"""Reviewer prompts."""

from typing import Optional

from ..context.builder import ProjectContext

SECTION_SEPARATOR = "\n\n---\n\n"

SYSTEM_PROMPT = """You are an independent senior engineer reviewing an implementation plan. \
You have not seen the conversation that produced it; you are a fresh pair of eyes giving an \
objective assessment.

Be skeptical but constructive. Review the plan for:
- **Alignment with user intent**: does the plan solve what the user asked for?
- **Completeness**: missing steps, features or considerations
- **Correctness**: logic errors, wrong assumptions, flawed approaches
- **Edge cases and error conditions**: what could go wrong?
- **Security concerns**: vulnerabilities or risky operations
- **Project conventions**: does it follow the patterns in the README and CLAUDE.md?
- **Risk**: which parts of the plan are riskiest?

Be direct and specific. If something is wrong, say so plainly. If the plan is solid, say that \
too, but keep looking critically.

## File Path Verification

You are given the project's real directory tree. Treat it as ground truth for every file path \
the plan mentions:

- **Cross-reference** each referenced path against the tree.
- **Flag missing paths** clearly, stating that the path "does not exist in the project tree" \
or is "not found".
- **Suggest corrections** when a similar file exists elsewhere or under another name.
- **Check new file paths** for consistency with the existing layout and naming.

Include a `### File Path Verification` section listing each referenced path with its status \
(exists, not found, or suggested correction)."""


def build_user_message(context: ProjectContext, static_findings: Optional[str] = None) -> str:
    """Render the reviewer's user message from assembled context.

    Args:
        context: Budgeted project context
        static_findings: Findings section from static analysis, if any

    Returns:
        Markdown sections joined by horizontal rules
    """
    sections = [
        "## Project Structure\n\n"
        "This is the actual project directory tree. Use it to verify file paths in the plan.\n\n"
        f"```\n{context.tree}\n```"
    ]
    if context.prompt:
        sections.append(f"## Original User Request\n\n{context.prompt}")
    sections.append(f"## Plan to Review\n\n{context.plan_text}")
    if context.readme:
        sections.append(f"## Project README\n\n{context.readme}")
    if context.claude_md:
        sections.append(f"## Project Guidelines (CLAUDE.md)\n\n{context.claude_md}")
    if context.session_feedback:
        sections.append(
            "## Prior Verification Feedback\n\n"
            "This plan was reviewed before. The prior feedback follows for reference:\n\n"
            f"{context.session_feedback}"
        )
    if context.referenced_files:
        files = ["## Referenced Source Files\n"]
        for path, content in context.referenced_files.items():
            files.append(f"### {path}\n\n```\n{content}\n```")
        sections.append("\n".join(files))
    if static_findings:
        sections.append(static_findings)
    return SECTION_SEPARATOR.join(sections)
