"""Template rendering for ``{{name}}`` placeholders.

Whitespace inside the braces is allowed (``{{ name }}``). Every placeholder
must have a value; there is no default or empty substitution.
"""

import re
from typing import List, Mapping

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


class MissingVariable(Exception):
    """Raised when a template references a variable that has no value."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Missing variable '{name}'")


def find_placeholders(template: str) -> List[str]:
    """Placeholder names in template order, first occurrence only."""
    seen = []
    for match in PLACEHOLDER_RE.finditer(template):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def render(template: str, variables: Mapping[str, str]) -> str:
    """Substitute placeholders from ``variables``.

    Raises:
        MissingVariable: naming the first unresolved placeholder in
            template order
    """
    for name in find_placeholders(template):
        if name not in variables:
            raise MissingVariable(name)

    return PLACEHOLDER_RE.sub(lambda m: str(variables[m.group(1)]), template)
