"""System prompt and knowledge base loading."""

import logging
from pathlib import Path

from src.config import settings

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"


def _read(path: Path) -> str:
    """Read a prompt file, returning empty string if missing."""
    if path.exists():
        return path.read_text(encoding="utf-8").strip()
    logger.warning("Prompt file not found: %s", path)
    return ""


def load_system_prompt() -> str:
    """Persona and reply rules for the assistant."""
    return _read(settings.system_prompt_path or CONFIG_DIR / "SYSTEM_PROMPT.md")


def load_knowledge_base() -> str:
    """Facts, links and FAQ the assistant answers from."""
    return _read(settings.knowledge_base_path or CONFIG_DIR / "KNOWLEDGE_BASE.md")
