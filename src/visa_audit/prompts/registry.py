"""Prompt registry backed by template modules on disk.

Usage::

    prompt = get_prompt("visa", "document", "CROSS_CHECK_PROMPT")

Module path convention: ``visa_audit.prompts.templates.{domain}.{category}``.
Each module stores its prompts in a ``_PROMPT_DATA: dict[str, str]``. The
registry reads that dict directly so module ``__getattr__`` (which delegates
back here) is never re-entered.
"""

from __future__ import annotations

import importlib
import logging
from types import ModuleType

logger = logging.getLogger(__name__)

_modules: dict[tuple[str, str], ModuleType] = {}


def get_prompt(domain: str, category: str, name: str) -> str:
    """Look up a prompt template by domain, category, and name.

    Args:
        domain: Domain namespace (e.g. ``"visa"``).
        category: Prompt category (e.g. ``"document"``, ``"advisory"``).
        name: Constant name (e.g. ``"READ_PROMPT"``).

    Returns:
        The prompt template string.

    Raises:
        KeyError: If the module or the prompt does not exist.
    """
    key = (domain, category)
    if key not in _modules:
        module_path = f"visa_audit.prompts.templates.{domain}.{category}"
        try:
            _modules[key] = importlib.import_module(module_path)
        except ModuleNotFoundError as exc:
            raise KeyError(f"Prompt module not found: {module_path}") from exc
        logger.debug("Loaded prompt module %s", module_path)

    data: dict[str, str] | None = getattr(_modules[key], "_PROMPT_DATA", None)
    if data is not None and name in data:
        return data[name]
    raise KeyError(f"Prompt {name!r} not found in {domain}/{category}")


def reset() -> None:
    """Drop cached template modules (for testing)."""
    _modules.clear()
