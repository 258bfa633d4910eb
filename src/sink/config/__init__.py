"""Sink TOML loading, include resolution and editing."""

from .editor import add_dependency, remove_dependency, set_field
from .loader import load_config_node, parse_config_node
from .resolve import resolve

__all__ = [
    "add_dependency",
    "load_config_node",
    "parse_config_node",
    "remove_dependency",
    "resolve",
    "set_field",
]
