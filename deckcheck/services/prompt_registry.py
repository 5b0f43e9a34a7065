"""Prompt registry: versioned critique prompt templates loaded from deckcheck/prompts/."""
import logging
from pathlib import Path
from typing import List, Optional

import yaml

logger = logging.getLogger(__name__)

# Directory containing prompt name/version folders (deckcheck/prompts/)
_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

DEFAULT_VERSION = "v1"


def list_names() -> List[str]:
    """List available prompt names (top-level folders under prompts/)."""
    if not _PROMPTS_DIR.is_dir():
        return []
    names = []
    for p in _PROMPTS_DIR.iterdir():
        if p.is_dir() and p.name and not p.name.startswith("."):
            names.append(p.name)
    return sorted(names)


def _load_prompt_file(name: str, version: str) -> Optional[dict]:
    """Load a single prompt YAML file. Returns None if not found."""
    path = _PROMPTS_DIR / name / f"{version}.yaml"
    if not path.is_file():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else None
    except Exception as e:
        logger.warning("Failed to load prompt %s/%s: %s", name, version, e)
        return None


def get_prompt(name: str, version: str = DEFAULT_VERSION) -> Optional[str]:
    """
    Get prompt template body by name and version.
    Returns the template string with {var} placeholders, or None if not found.
    """
    data = _load_prompt_file(name, version)
    if not data:
        return None
    body = data.get("body")
    return body.strip() if isinstance(body, str) else None


def critique_prompt_name(insight_type: str) -> str:
    return f"critique_{insight_type}"


def build_critique_prompt(
    insight_type: str,
    page_text: str,
    *,
    page_number: int,
    total_pages: int,
    file_name: str,
    version: str = DEFAULT_VERSION,
) -> str:
    """Render the critique prompt for *insight_type*. Raises ValueError if no template exists."""
    name = critique_prompt_name(insight_type)
    template = get_prompt(name, version)
    if template is None:
        raise ValueError(f"No prompt template for insight type {insight_type!r} ({name}/{version})")
    return template.format(
        page_number=page_number,
        total_pages=total_pages,
        file_name=file_name,
        page_text=page_text,
    )
