"""Prompts used in conjunction with LLMs for renaming."""

from amv.models.entries import FileEntry


# One request per entry. The model must answer with a JSON object so that the
# suggestion pipeline can validate it before touching the entry.
RENAME_PROMPT_TEMPLATE = """## Goal
You are a file renaming assistant. Given the following file and renaming rules, suggest a new name for the file.

## Rules
{rules}

## File to rename
{target}

## Output format
Respond with a JSON object with a single property "suggestion", which is a string containing only the new filename or directory name (without path). Keep file extensions if they exist.

Example response format:
{{ "suggestion": "new-name.txt" }}"""


def build_rename_prompt(entry: FileEntry, rules: str) -> str:
    """Build the prompt asking for a new name for one entry.

    Args:
        entry: The entry to rename. Only its original name and kind are sent.
        rules: User's free-text renaming rules, embedded verbatim.

    Returns:
        The prompt text.
    """
    target = f"{entry.original_name} (directory)" if entry.is_directory else entry.original_name
    return RENAME_PROMPT_TEMPLATE.format(rules=rules, target=target)
