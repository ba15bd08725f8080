"""Core."""

from .config import IngressConfig, clear_config, get_config, load_config_from_file, read_document
from .validation import LabelRequirement, SelectorOperator, is_qualified_name, parse_label_selector

__all__ = [
    "IngressConfig",
    "clear_config",
    "get_config",
    "load_config_from_file",
    "read_document",
    "LabelRequirement",
    "SelectorOperator",
    "is_qualified_name",
    "parse_label_selector",
]
