"""Recipe parsing and export for Fishbone-MCP.

Supports two input formats:
1. Full diagram (the export format, under a ``diagram`` key in YAML, or a
   bare JSON object with ``problemStatement`` / ``categories``)
2. Simplified recipe format (problem + categories with plain cause strings)

and two exports: JSON (the browser editor's ``fishbone-diagram.json``
layout) and YAML (the full format, re-readable by ``parse_yaml``).
"""

from __future__ import annotations

import json
from pathlib import Path

import yaml

from .models import CATEGORY_COLORS, Category, Cause, Diagram


def parse_yaml(yaml_str: str) -> Diagram:
    """Parse a YAML string into a Diagram model."""
    data = yaml.safe_load(yaml_str)
    if not data:
        raise ValueError("Empty YAML input")
    if not isinstance(data, dict):
        raise ValueError("YAML recipe must be a mapping")

    # Full export format
    if "diagram" in data:
        return Diagram.model_validate(data["diagram"])

    # Otherwise, treat as simplified format
    return _parse_simple_format(data)


def parse_json(json_str: str) -> Diagram:
    """Parse an exported JSON diagram."""
    return Diagram.model_validate_json(json_str)


def parse_file(path: str) -> Diagram:
    """Parse a ``.json``, ``.yaml`` or ``.yml`` file into a Diagram."""
    p = Path(path)
    content = p.read_text()
    if p.suffix.lower() == ".json":
        return parse_json(content)
    return parse_yaml(content)


def _parse_simple_format(data: dict) -> Diagram:
    """Parse simplified recipe format.

    Example:
        problem: Website Conversion Rate is Low
        categories:
          - title: Methods
            causes:
              - Checkout has too many steps
              - text: No guest checkout
                priority: High
          - Machines
    """
    diagram = Diagram(
        problem_statement=str(data.get("problem", data.get("problem_statement", ""))),
    )

    for index, cat_data in enumerate(data.get("categories") or []):
        diagram.categories.append(_parse_category(cat_data, index))

    return diagram


def _parse_category(data, index: int) -> Category:
    """Parse a category given as a bare title or a mapping."""
    if isinstance(data, str):
        data = {"title": data}
    if not isinstance(data, dict):
        raise ValueError(f"Category {index + 1} must be a title or a mapping")
    title = str(data.get("title") or "").strip()
    if not title:
        raise ValueError(f"Category {index + 1} has no title")

    category = Category(
        title=title,
        color=data.get("color", CATEGORY_COLORS[index % len(CATEGORY_COLORS)]),
    )
    if "id" in data:
        category.id = str(data["id"])
    for cause_data in data.get("causes") or []:
        category.causes.append(_parse_cause(cause_data))
    return category


def _parse_cause(data) -> Cause:
    """Parse a cause given as a bare string or a mapping."""
    if isinstance(data, str):
        data = {"text": data}
    if not isinstance(data, dict):
        raise ValueError("Cause must be a string or a mapping")
    text = str(data.get("text") or "").strip()
    if not text:
        raise ValueError("Cause text must not be blank")

    cause = Cause(
        text=text,
        priority=data.get("priority", "Medium"),
        sub_causes=[_parse_cause(sub) for sub in data.get("sub_causes") or data.get("subCauses") or []],
    )
    if "id" in data:
        cause.id = str(data["id"])
    return cause


def diagram_to_json(diagram: Diagram) -> str:
    """Serialize a Diagram to the JSON export format."""
    return json.dumps(diagram.model_dump(by_alias=True), indent=2)


def diagram_to_yaml(diagram: Diagram) -> str:
    """Serialize a Diagram back to YAML (full format)."""
    data = {"diagram": diagram.model_dump(by_alias=True)}
    return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
