from __future__ import annotations

import re

VALUE_JSON_TEMPLATE = re.compile(r"^{{\s*value_json\.([\w.-]+)\s*}}$", re.IGNORECASE)


class TemplateError(ValueError):
    pass


def parse_value_template(template: str) -> list[str]:
    """Return the field path selected by a ``{{ value_json.<path> }}`` template."""
    if not isinstance(template, str):
        raise TemplateError(f"Template non valido: {template!r}")

    match = VALUE_JSON_TEMPLATE.match(template.strip())
    if not match:
        raise TemplateError(f"Template non supportato: {template!r}")

    path = [part for part in match.group(1).split(".") if part]
    if not path:
        raise TemplateError(f"Template senza campo: {template!r}")
    return path


def template_field(template: str | None) -> str | None:
    if not template:
        return None
    try:
        return parse_value_template(template)[-1]
    except TemplateError:
        return None
