"""Loader for the newline-delimited query template file."""

from __future__ import annotations

from pathlib import Path

from .errors import QueryBenchError


class TemplateLoadError(QueryBenchError):
    """Raised when the template file cannot be opened or read."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"cannot read query templates from {path}: {reason}")
        self.path = path


def load_templates(path: str | Path) -> list[str]:
    """Return every non-blank line of ``path``, stripped, in file order."""

    template_path = Path(path)
    templates: list[str] = []
    try:
        with template_path.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if line:
                    templates.append(line)
    except (OSError, UnicodeDecodeError) as exc:
        raise TemplateLoadError(template_path, str(exc)) from exc
    return templates
