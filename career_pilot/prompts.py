import json
from pathlib import Path

import yaml

from career_pilot.config import DEFAULT_TEMPLATES_FILE


class TemplateNotFound(KeyError):
    pass


def serialize_value(value):
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, indent=2, ensure_ascii=False)
    return str(value)


class PromptRenderer:
    """Fills ``{{NAME}}`` placeholders of the YAML prompt templates."""

    def __init__(self, path=None, templates=None):
        if templates is None:
            with open(Path(path or DEFAULT_TEMPLATES_FILE), "r", encoding="utf-8") as f:
                templates = yaml.safe_load(f) or {}
        self.templates = templates

    def keys(self):
        return list(self.templates.keys())

    def render(self, template_key, variables=None):
        template = self.templates.get(template_key)
        if not template:
            raise TemplateNotFound(template_key)
        text = template["prompt"] if isinstance(template, dict) else str(template)
        for name, value in (variables or {}).items():
            text = text.replace("{{" + name + "}}", serialize_value(value))
        return text
