"""Rendering helpers for email notifications."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, Tuple

_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates"
_PLACEHOLDER_PATTERN = re.compile(r"{{\s*(\w+)\s*}}")


def _load_template(template: str) -> str:
    path = _TEMPLATE_PATH / template
    return path.read_text(encoding="utf-8")


def render_template(template: str, context: Dict[str, Any]) -> str:
    """Substitute ``{{ name }}`` placeholders; values are inserted verbatim."""

    source = _load_template(template)

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = context.get(key, "")
        return "" if value is None else str(value)

    return _PLACEHOLDER_PATTERN.sub(_replace, source)


def render_subject_body(
    base_template: str, text_context: Dict[str, Any], html_context: Dict[str, Any]
) -> Tuple[str, str, str]:
    subject = render_template(f"{base_template}_subject.txt.j2", text_context)
    text_body = render_template(f"{base_template}_body.txt.j2", text_context)
    html_body = render_template(f"{base_template}_body.html.j2", html_context)
    return " ".join(subject.split()), text_body.strip(), html_body.strip()


__all__ = ["render_subject_body", "render_template"]
