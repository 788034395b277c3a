"""Prompt construction for submission reviews."""

from ..models import BountyContext, CodeContext, FileTreeNode, PullRequestContext

KEY_FILE_CHAR_LIMIT = 10000
DIFF_CHAR_LIMIT = 15000
TRUNCATION_MARKER = "\n// ... truncated ..."

SYSTEM_PROMPT = """You are a senior code reviewer specializing in Solana/blockchain development and Web3 applications.
Your task is to evaluate GitHub submissions against specific bounty requirements for Superteam Earn.

CRITICAL RULES:
1. ONLY reference code that actually exists in the provided context. Never invent file names, function names, or code.
2. If you cannot verify something, mark confidence as LOW and explain why in your response.
3. Be specific: cite exact file paths and line numbers when making claims about the code.
4. For Solana/Anchor code, check for common vulnerabilities:
   - Missing signer checks
   - Improper PDA validation
   - Arithmetic overflow/underflow
   - Missing account validation
   - Reentrancy vulnerabilities
5. Score conservatively: 70+ means genuinely good work, 90+ is exceptional and rare.

SCORING GUIDE:
- 0-30: Does not meet basic requirements or has critical issues
- 31-50: Partially meets requirements, significant gaps or major issues
- 51-70: Meets most requirements, some issues or missing elements
- 71-85: Meets all requirements well, minor improvements possible
- 86-100: Exceeds requirements, production-quality code

LABEL GUIDE:
- "high-quality": Score >= 75, no critical issues
- "excellent": Score >= 90, exceptional work
- "needs-review": Score 50-74 or has concerns worth human review
- "incomplete": Missing significant required features
- "security-concern": Has security issues that need addressing
- "potential-plagiarism": Code appears copied from common tutorials/templates without modification
- "needs-revision": Has issues that could be fixed with revisions

When evaluating Solana projects, pay special attention to:
- Proper use of Anchor framework (if applicable)
- Account structure and PDA design
- Error handling
- Test coverage for smart contracts
- Security best practices"""


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def file_tree_to_string(nodes: list[FileTreeNode], indent: str = "") -> str:
    """Render a file tree as an indented listing."""
    result = ""
    for node in nodes:
        marker = "[dir]" if node.type == "directory" else "-"
        result += f"{indent}{marker} {node.name}\n"
        if node.children:
            result += file_tree_to_string(node.children, indent + "  ")
    return result


def _submission_section(code: CodeContext) -> str:
    if isinstance(code, PullRequestContext):
        commits = "\n".join(f"- {c.message}" for c in code.commits) or "No commits"
        diff = _truncate(code.diff, DIFF_CHAR_LIMIT) if code.diff else "No diff available"
        return f"""
### Pull Request Information
**Title:** {code.pr_title or "N/A"}
**Description:** {code.pr_description or "No description provided"}

### Commits
{commits}

### Changes (Diff)
```diff
{diff}
```"""

    return f"""
### Repository Structure
```
{file_tree_to_string(code.file_tree)}
```"""


def build_user_prompt(bounty: BountyContext, code: CodeContext) -> str:
    """
    Build the user prompt for a review.

    The output depends only on the inputs, so identical submissions
    produce identical prompts.

    Args:
        bounty: The bounty requirements.
        code: The repository or pull request snapshot.

    Returns:
        The formatted prompt string.
    """
    requirements_list = "\n".join(
        f"{i}. {requirement}" for i, requirement in enumerate(bounty.requirements, 1)
    )

    key_files_content = "\n".join(
        f"""
#### {f.path}
```{f.language}
{_truncate(f.content, KEY_FILE_CHAR_LIMIT)}
```"""
        for f in code.key_files
    )

    submission_type = "Pull Request" if code.type == "pr" else "Full Repository"

    return f"""
## Bounty Information

### Title
{bounty.title}

### Description
{bounty.description}

### Specific Requirements to Verify
{requirements_list or "No specific requirements provided - evaluate general code quality"}

### Expected Tech Stack
{", ".join(bounty.tech_stack) or "Not specified"}

---

## Submission Details

**Type:** {submission_type}

{_submission_section(code)}

### Key Files Content
{key_files_content}

---

Analyze this submission thoroughly and provide a structured review. Remember to:
1. Verify each requirement against actual code
2. Check for security issues, especially in smart contract code
3. Evaluate code quality and best practices
4. Identify any red flags
5. Provide actionable feedback in the detailed notes"""
