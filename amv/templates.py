"""Rule templates shipped with amv."""

from dataclasses import dataclass
from pathlib import Path


TEMPLATES_DIR = Path(__file__).parent / "rule_templates"
TEMPLATE_SUFFIX = ".md"


@dataclass(frozen=True)
class RuleTemplate:
    """A ready-made set of renaming rules."""

    name: str
    filename: str

    def to_api(self) -> dict:
        return {"name": self.name, "filename": self.filename}


def list_templates(directory: Path = TEMPLATES_DIR) -> list[RuleTemplate]:
    """List the templates available in a directory, sorted by name."""
    if not directory.is_dir():
        return []
    return [
        RuleTemplate(name=path.stem, filename=path.name)
        for path in sorted(directory.iterdir())
        if path.is_file() and path.suffix == TEMPLATE_SUFFIX
    ]


def load_template(name: str, directory: Path = TEMPLATES_DIR) -> str:
    """Read a template by name or filename.

    Only templates returned by `list_templates` can be read, so `name` never reaches
    the filesystem as a path.

    Raises:
        FileNotFoundError: If no template has this name.
    """
    for template in list_templates(directory):
        if name in (template.name, template.filename):
            return (directory / template.filename).read_text(encoding="utf-8")
    raise FileNotFoundError(f"Template not found: {name}")
