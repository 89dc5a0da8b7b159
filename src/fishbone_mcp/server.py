"""Fishbone-MCP server — MCP tools for laying out and rendering fishbone diagrams."""

from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .layout import compute_layout
from .metrics import PillowTextMetrics
from .models import PRIORITIES, Diagram, default_diagram
from .parser import diagram_to_json, diagram_to_yaml, parse_yaml
from .renderer import FishboneRenderer
from .themes import THEMES

logger = logging.getLogger(__name__)


# --- Constants ---
OUTPUT_DIR = Path(os.environ.get("FISHBONE_OUTPUT_DIR", Path.home() / ".fishbone"))
TEMPLATES_DIR = Path(__file__).parent.parent.parent / "templates"
DEFAULT_TEMPLATE = "default"

server = Server("fishbone-mcp")


def _ensure_output_dir():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)


def _error(message: str) -> list[TextContent]:
    logger.warning(message)
    return [TextContent(type="text", text=message)]


_RENDER_PROPERTIES = {
    "scale": {
        "type": "number",
        "description": "Render scale factor (default 2.0 for crisp, legible output)",
        "default": 2.0,
    },
    "format": {
        "type": "string",
        "enum": ["png", "jpeg"],
        "description": "Image format. Default: png.",
        "default": "png",
    },
    "theme": {
        "type": "string",
        "enum": list(THEMES.keys()),
        "description": "Color theme. Default: light.",
        "default": "light",
    },
    "show_grid": {
        "type": "boolean",
        "description": "Draw a 20px background grid. Default: false.",
        "default": False,
    },
}


# --- Tool definitions ---

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="render_fishbone",
            description=(
                "Render a fishbone (Ishikawa) diagram from a YAML recipe string. "
                "Accepts a simplified recipe (problem + categories with cause strings) "
                "or the full exported format under a 'diagram' key. "
                "Returns the path to the rendered image."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "yaml_recipe": {
                        "type": "string",
                        "description": (
                            "YAML string defining the diagram. Simplified format example:\n"
                            "problem: Website Conversion Rate is Low\n"
                            "categories:\n"
                            "  - title: Methods\n"
                            "    causes:\n"
                            "      - Checkout has too many steps\n"
                            "      - text: No guest checkout\n"
                            "        priority: High\n"
                            "  - Machines\n"
                            "\n"
                            "Priorities: Critical, High, Medium, Low (default Medium).\n"
                            "Even-numbered categories go above the spine, odd below."
                        ),
                    },
                    "filename": {
                        "type": "string",
                        "description": "Output filename (without extension). Default: auto-generated UUID.",
                    },
                    "focus_category": {
                        "type": "string",
                        "description": "Title of a category to highlight; others are faded.",
                    },
                    **_RENDER_PROPERTIES,
                },
                "required": ["yaml_recipe"],
            },
        ),
        Tool(
            name="create_fishbone",
            description=(
                "Create a fishbone diagram from a structured description. "
                "Provide a problem statement and categories with causes — the tool handles "
                "layout and rendering. Returns the image path plus the saved YAML and JSON exports."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "problem_statement": {
                        "type": "string",
                        "description": "The problem at the head of the fish.",
                    },
                    "categories": {
                        "type": "array",
                        "description": "Categories in order. Omit to use the six standard M's.",
                        "items": {
                            "type": "object",
                            "properties": {
                                "title": {"type": "string"},
                                "color": {"type": "string", "description": "Hex bone color"},
                                "causes": {
                                    "type": "array",
                                    "items": {
                                        "type": "object",
                                        "properties": {
                                            "text": {"type": "string"},
                                            "priority": {"type": "string", "enum": PRIORITIES},
                                        },
                                        "required": ["text"],
                                    },
                                },
                            },
                            "required": ["title"],
                        },
                    },
                    **_RENDER_PROPERTIES,
                },
                "required": ["problem_statement"],
            },
        ),
        Tool(
            name="layout_fishbone",
            description=(
                "Compute the layout of a fishbone diagram without rendering it. "
                "Returns canvas size, bone geometry and every cause label's position, "
                "size and connector path as JSON."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "yaml_recipe": {"type": "string", "description": "YAML recipe (see render_fishbone)."},
                    "measure": {
                        "type": "boolean",
                        "description": "Measure labels with the render font instead of estimating. Default: true.",
                        "default": True,
                    },
                },
                "required": ["yaml_recipe"],
            },
        ),
        Tool(
            name="export_fishbone",
            description="Convert a YAML recipe to the full JSON or YAML export format.",
            inputSchema={
                "type": "object",
                "properties": {
                    "yaml_recipe": {"type": "string", "description": "YAML recipe (see render_fishbone)."},
                    "format": {
                        "type": "string",
                        "enum": ["json", "yaml"],
                        "default": "json",
                    },
                },
                "required": ["yaml_recipe"],
            },
        ),
        Tool(
            name="list_templates",
            description="List available fishbone recipe templates that can be used as starting points.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
        Tool(
            name="get_template",
            description="Get the YAML content of a specific template by name.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Template name (from list_templates output)",
                    },
                },
                "required": ["name"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    if name == "render_fishbone":
        return await _render_fishbone(arguments)
    elif name == "create_fishbone":
        return await _create_fishbone(arguments)
    elif name == "layout_fishbone":
        return await _layout_fishbone(arguments)
    elif name == "export_fishbone":
        return await _export_fishbone(arguments)
    elif name == "list_templates":
        return await _list_templates(arguments)
    elif name == "get_template":
        return await _get_template(arguments)
    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]


def _render_to_file(diagram: Diagram, args: dict, filename: str) -> tuple[str, dict]:
    """Render with the common render options; returns (path, layout summary)."""
    fmt = args.get("format", "png").lower()
    ext = "jpg" if fmt in ("jpg", "jpeg") else "png"
    renderer = FishboneRenderer(scale=args.get("scale", 2.0), theme=args.get("theme", "light"))

    focus_id = None
    focus_title = args.get("focus_category")
    if focus_title:
        for category in diagram.categories:
            if category.title == focus_title:
                focus_id = category.id
                break

    layout = renderer.layout(diagram)
    output_path = str(OUTPUT_DIR / f"{filename}.{ext}")
    renderer.render(
        diagram,
        output_path=output_path,
        fmt=fmt,
        show_grid=args.get("show_grid", False),
        focus_category_id=focus_id,
        layout=layout,
    )
    return output_path, {
        "canvas_width": round(layout.canvas_width, 2),
        "canvas_height": round(layout.canvas_height, 2),
    }


async def _render_fishbone(args: dict) -> list[TextContent]:
    """Render a YAML recipe to an image."""
    _ensure_output_dir()

    filename = args.get("filename", str(uuid.uuid4())[:8])

    try:
        diagram = parse_yaml(args["yaml_recipe"])
    except Exception as e:
        return _error(f"Failed to parse YAML recipe: {e}")

    try:
        output_path, canvas = _render_to_file(diagram, args, filename)
    except Exception as e:
        return _error(f"Rendering failed: {e}")

    return [TextContent(
        type="text",
        text=json.dumps({
            "status": "success",
            "path": output_path,
            "problem": diagram.problem_statement,
            "categories": len(diagram.categories),
            "causes": len(diagram.all_causes()),
            **canvas,
        }),
    )]


def _build_diagram(args: dict) -> Diagram:
    """Build a diagram through the content operations."""
    category_defs = args.get("categories")
    if category_defs is None:
        diagram = default_diagram()
    else:
        diagram = Diagram()
        for cd in category_defs:
            category = diagram.add_category(cd["title"], color=cd.get("color"))
            for cause_def in cd.get("causes", []):
                diagram.add_cause(category.id, cause_def["text"], cause_def.get("priority", "Medium"))
    diagram.problem_statement = args.get("problem_statement", "").strip()
    return diagram


async def _create_fishbone(args: dict) -> list[TextContent]:
    """Create a diagram from structured input, render it and save its exports."""
    _ensure_output_dir()

    try:
        diagram = _build_diagram(args)
    except (KeyError, ValueError) as e:
        return _error(f"Invalid diagram description: {e}")

    slug = (diagram.problem_statement or "fishbone").lower().replace(" ", "-")[:30]
    filename = slug + "-" + str(uuid.uuid4())[:4]

    try:
        output_path, canvas = _render_to_file(diagram, args, filename)
    except Exception as e:
        return _error(f"Rendering failed: {e}")

    # Also save the recipe and the JSON export
    yaml_path = OUTPUT_DIR / f"{filename}.yaml"
    yaml_path.write_text(diagram_to_yaml(diagram))
    json_path = OUTPUT_DIR / f"{filename}.json"
    json_path.write_text(diagram_to_json(diagram))

    return [TextContent(
        type="text",
        text=json.dumps({
            "status": "success",
            "image_path": output_path,
            "yaml_path": str(yaml_path),
            "json_path": str(json_path),
            "problem": diagram.problem_statement,
            "categories": len(diagram.categories),
            "causes": len(diagram.all_causes()),
            **canvas,
        }),
    )]


async def _layout_fishbone(args: dict) -> list[TextContent]:
    """Return the computed coordinate set for a recipe."""
    try:
        diagram = parse_yaml(args["yaml_recipe"])
    except Exception as e:
        return _error(f"Failed to parse YAML recipe: {e}")

    metrics = PillowTextMetrics() if args.get("measure", True) else None
    layout = compute_layout(diagram, metrics)

    return [TextContent(type="text", text=json.dumps(layout.to_dict()))]


async def _export_fishbone(args: dict) -> list[TextContent]:
    """Convert a recipe to an export format."""
    try:
        diagram = parse_yaml(args["yaml_recipe"])
    except Exception as e:
        return _error(f"Failed to parse YAML recipe: {e}")

    if args.get("format", "json") == "yaml":
        return [TextContent(type="text", text=diagram_to_yaml(diagram))]
    return [TextContent(type="text", text=diagram_to_json(diagram))]


async def _list_templates(args: dict) -> list[TextContent]:
    """List the built-in template plus any template files."""
    templates = [{"name": DEFAULT_TEMPLATE, "path": None}]

    if TEMPLATES_DIR.exists():
        for f in sorted(TEMPLATES_DIR.glob("*.yaml")) + sorted(TEMPLATES_DIR.glob("*.yml")):
            templates.append({
                "name": f.stem,
                "path": str(f),
            })

    return [TextContent(
        type="text",
        text=json.dumps({"templates": templates}),
    )]


async def _get_template(args: dict) -> list[TextContent]:
    """Get template content by name."""
    name = args["name"]

    for ext in [".yaml", ".yml"]:
        path = TEMPLATES_DIR / f"{name}{ext}"
        if path.exists():
            return [TextContent(type="text", text=path.read_text())]

    if name == DEFAULT_TEMPLATE:
        return [TextContent(type="text", text=diagram_to_yaml(default_diagram()))]

    return [TextContent(type="text", text=f"Template not found: {name}")]


def main():
    """Entry point for the MCP server."""
    import asyncio

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(_run())


async def _run():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    main()
