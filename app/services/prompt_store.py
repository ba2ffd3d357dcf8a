from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


@lru_cache(maxsize=1)
def _load_catalog() -> dict[str, dict[str, str]]:
    payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Prompt catalog must be a JSON object.")
    return payload


def render_prompt(key: str, **values: Any) -> str:
    """Render a ``group.name`` catalog prompt, substituting ``$name`` placeholders."""
    group, _, name = key.partition(".")
    try:
        text = _load_catalog()[group][name]
    except (KeyError, TypeError) as exc:
        raise KeyError(f"Prompt key not found: {key}") from exc

    try:
        return Template(text).substitute(**values)
    except KeyError as exc:
        missing = str(exc.args[0])
        raise KeyError(f"Missing template value '{missing}' for prompt '{key}'") from exc
