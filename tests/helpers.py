"""
Helpers for building declarations in tests.
"""

from modtree.core.parser import from_value, parse_expression
from modtree.core.types import ModuleDeclaration


def declare(name, source=None, *, for_each=None, count=None, **arguments):
    """Build a declaration; string values are parsed like declaration files."""
    return ModuleDeclaration(
        name=name,
        source=source or f"./{name}",
        for_each=parse_expression(for_each) if isinstance(for_each, str) else for_each,
        count=parse_expression(count) if isinstance(count, str) else count,
        arguments={key: from_value(value) for key, value in arguments.items()},
    )
