"""Tests for the MCP tool handlers."""

import asyncio
import json
from pathlib import Path

import pytest

from fishbone_mcp import server
from fishbone_mcp.parser import parse_yaml

RECIPE = """
problem: Late Deliveries
categories:
  - title: Methods
    causes:
      - Orders batched once a day
      - text: No carrier fallback
        priority: Critical
  - Machines
"""


@pytest.fixture(autouse=True)
def output_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(server, "OUTPUT_DIR", tmp_path)
    return tmp_path


def _call(name, arguments):
    result = asyncio.run(server.call_tool(name, arguments))
    assert len(result) == 1
    return result[0].text


def test_render_fishbone_writes_image(output_dir):
    payload = json.loads(_call("render_fishbone", {"yaml_recipe": RECIPE, "filename": "late", "scale": 1.0}))
    assert payload["status"] == "success"
    assert payload["path"] == str(output_dir / "late.png")
    assert Path(payload["path"]).read_bytes().startswith(b"\x89PNG")
    assert payload["causes"] == 2
    assert payload["canvas_width"] >= 520


def test_render_fishbone_reports_bad_yaml():
    text = _call("render_fishbone", {"yaml_recipe": "categories:\n  - title: ''\n"})
    assert text.startswith("Failed to parse YAML recipe")


def test_create_fishbone_saves_exports():
    payload = json.loads(_call("create_fishbone", {
        "problem_statement": "Late Deliveries",
        "categories": [
            {"title": "Methods", "causes": [{"text": "Manual routing", "priority": "High"}]},
            {"title": "Machines"},
        ],
        "format": "jpeg",
        "scale": 1.0,
    }))
    assert payload["image_path"].endswith(".jpg")
    assert parse_yaml(Path(payload["yaml_path"]).read_text()).categories[0].causes[0].priority == "High"
    assert json.loads(Path(payload["json_path"]).read_text())["problemStatement"] == "Late Deliveries"


def test_create_fishbone_defaults_to_six_ms():
    payload = json.loads(_call("create_fishbone", {"problem_statement": "Scrap", "scale": 1.0}))
    assert payload["categories"] == 6


def test_create_fishbone_rejects_blank_cause():
    text = _call("create_fishbone", {
        "problem_statement": "P",
        "categories": [{"title": "Methods", "causes": [{"text": "  "}]}],
    })
    assert text.startswith("Invalid diagram description")


def test_layout_fishbone_returns_coordinates():
    data = json.loads(_call("layout_fishbone", {"yaml_recipe": RECIPE, "measure": False}))
    assert data["canvas_height"] == 360
    assert len(data["categories"]) == 2
    assert len(data["causes"]) == 2
    first = data["causes"][0]
    assert len(first["connector_path"]) == 3


def test_export_fishbone_formats():
    as_json = json.loads(_call("export_fishbone", {"yaml_recipe": RECIPE}))
    assert as_json["problemStatement"] == "Late Deliveries"
    as_yaml = _call("export_fishbone", {"yaml_recipe": RECIPE, "format": "yaml"})
    assert parse_yaml(as_yaml).categories[1].title == "Machines"


def test_templates():
    listed = json.loads(_call("list_templates", {}))["templates"]
    names = [t["name"] for t in listed]
    assert names[0] == "default"
    assert "website-conversion" in names

    default = parse_yaml(_call("get_template", {"name": "default"}))
    assert len(default.categories) == 6
    assert parse_yaml(_call("get_template", {"name": "website-conversion"})).problem_statement
    assert _call("get_template", {"name": "nope"}) == "Template not found: nope"


def test_unknown_tool():
    assert _call("nope", {}) == "Unknown tool: nope"
