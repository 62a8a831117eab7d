"""
Configuration management.

Project configuration, declaration files and input variables.
"""

from modtree.config.loader import (
    Config,
    collect_variables,
    load_config,
    load_declarations,
    parse_declarations,
    parse_var_assignment,
)
from modtree.config.resolver import resolve_config

__all__ = [
    "load_config",
    "load_declarations",
    "parse_declarations",
    "parse_var_assignment",
    "collect_variables",
    "Config",
    "resolve_config",
]
