"""
Data models for Fishbone-MCP — the diagram ontology.

A fishbone (Ishikawa) diagram is a three-level tree:

    Diagram       — the problem statement and its ordered categories
    └── Category  — a grouping bucket ("Methods", "Machines", ...) drawn as a bone
        └── Cause — a labelled cause attached to its category's bone

Each category and cause carries an ``id`` that is generated once and never
reassigned.  Ids are the only keys the layout engine uses for its caches, so
editing a title or a cause text never invalidates cached geometry by itself.

Causes also own a ``sub_causes`` list.  The tree shape is kept for round-trip
fidelity of exported files, but the layout engine only places depth-1 causes;
nested causes are carried along untouched.

Serialization uses camelCase field names (``problemStatement``,
``subCauses``) so an exported diagram reads the same as the JSON files the
browser editor writes.  Python code uses the snake_case attribute names and
either spelling is accepted on input.
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Priority = Literal["Critical", "High", "Medium", "Low"]

PRIORITIES: list[str] = ["Critical", "High", "Medium", "Low"]

PRIORITY_COLORS: dict[str, str] = {
    "Critical": "#dc2626",  # Red
    "High":     "#ea580c",  # Orange
    "Medium":   "#ca8a04",  # Amber
    "Low":      "#16a34a",  # Green
}

# Assigned by insertion index, cycling.
CATEGORY_COLORS: list[str] = [
    "#3b82f6",
    "#10b981",
    "#f59e0b",
    "#ef4444",
    "#8b5cf6",
    "#06b6d4",
    "#ec4899",
    "#14b8a6",
    "#f97316",
    "#8b5cf6",
]

DEFAULT_PROBLEM_STATEMENT = "Website Conversion Rate is Low"

DEFAULT_CATEGORIES: list[str] = [
    "Methods",
    "Machines",
    "Materials",
    "Measurements",
    "Mother Nature",
    "Manpower",
]


def generate_id() -> str:
    """Return a fresh, opaque identifier."""
    return uuid.uuid4().hex[:16]


def _clean(text: str, what: str) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValueError(f"{what} must not be blank")
    return cleaned


class _FishboneModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Cause (leaf)
# ---------------------------------------------------------------------------

class Cause(_FishboneModel):
    """A single cause attached to a category's bone.

    ``priority`` selects the accent color of the label (see
    ``PRIORITY_COLORS``).  ``sub_causes`` is inert nested data: it is
    serialized and parsed, never laid out.
    """
    id: str = Field(default_factory=generate_id)
    text: str
    priority: Priority = "Medium"
    sub_causes: list[Cause] = Field(default_factory=list)

    def get_color(self) -> str:
        return PRIORITY_COLORS[self.priority]


# ---------------------------------------------------------------------------
# Category (a bone)
# ---------------------------------------------------------------------------

class Category(_FishboneModel):
    """A category bone.

    Categories are laid out in pairs by their position in
    ``Diagram.categories``: even indices go above the spine, odd indices
    below, and each (even, odd) pair shares one x-coordinate.  Cause order
    inside a category decides both where each cause attaches along the bone
    and which label wins when two labels compete for the same space.
    """
    id: str = Field(default_factory=generate_id)
    title: str
    color: str = CATEGORY_COLORS[0]
    causes: list[Cause] = Field(default_factory=list)

    def get_cause(self, cause_id: str) -> Optional[Cause]:
        for cause in self.causes:
            if cause.id == cause_id:
                return cause
        return None


# ---------------------------------------------------------------------------
# Diagram (root)
# ---------------------------------------------------------------------------

class Diagram(_FishboneModel):
    """The root aggregate — a problem statement and its categories.

    The diagram is mutated in place by the content operations below.  None
    of them touch layout state; callers re-run the layout (or signal the
    scheduler) after an edit.

    Content operations
    ------------------
    - ``add_category`` / ``rename_category`` / ``remove_category``
    - ``add_cause`` / ``edit_cause`` / ``remove_cause``
    - ``reset`` — clear to an empty diagram

    Removing an id that is not present is a no-op returning ``None``.
    Blank titles and cause texts raise ``ValueError``.
    """
    problem_statement: str = ""
    categories: list[Category] = Field(default_factory=list)

    def get_category(self, category_id: str) -> Optional[Category]:
        """Look up a category by id."""
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def find_cause(self, cause_id: str) -> Optional[tuple[Category, Cause]]:
        """Return ``(category, cause)`` for a cause id, or None."""
        for category in self.categories:
            cause = category.get_cause(cause_id)
            if cause is not None:
                return category, cause
        return None

    def all_causes(self) -> list[Cause]:
        """Return every depth-1 cause, in category then cause order."""
        causes = []
        for category in self.categories:
            causes.extend(category.causes)
        return causes

    def add_category(self, title: str, color: Optional[str] = None) -> Category:
        """Append a category, picking the next palette color if none given."""
        if color is None:
            color = CATEGORY_COLORS[len(self.categories) % len(CATEGORY_COLORS)]
        category = Category(title=_clean(title, "Category title"), color=color)
        self.categories.append(category)
        return category

    def rename_category(self, category_id: str, title: str) -> Optional[Category]:
        category = self.get_category(category_id)
        if category is not None:
            category.title = _clean(title, "Category title")
        return category

    def remove_category(self, category_id: str) -> Optional[Category]:
        """Remove a category and all of its causes."""
        category = self.get_category(category_id)
        if category is not None:
            self.categories.remove(category)
        return category

    def add_cause(
        self,
        category_id: str,
        text: str,
        priority: Priority = "Medium",
    ) -> Cause:
        """Append a cause to a category.

        Raises:
            KeyError: If the category does not exist.
            ValueError: If ``text`` is blank.
        """
        category = self.get_category(category_id)
        if category is None:
            raise KeyError(f"Unknown category '{category_id}'")
        cause = Cause(text=_clean(text, "Cause text"), priority=priority)
        category.causes.append(cause)
        return cause

    def edit_cause(
        self,
        cause_id: str,
        text: Optional[str] = None,
        priority: Optional[Priority] = None,
    ) -> Optional[Cause]:
        found = self.find_cause(cause_id)
        if found is None:
            return None
        _, cause = found
        if text is not None:
            cause.text = _clean(text, "Cause text")
        if priority is not None:
            cause.priority = priority
        return cause

    def remove_cause(self, category_id: str, cause_id: str) -> Optional[Cause]:
        category = self.get_category(category_id)
        if category is None:
            return None
        cause = category.get_cause(cause_id)
        if cause is not None:
            category.causes.remove(cause)
        return cause

    def reset(self) -> None:
        """Clear the diagram to an empty problem with no categories."""
        self.problem_statement = ""
        self.categories = []


def default_diagram() -> Diagram:
    """Build the seed diagram: a sample problem and the six classic M's."""
    diagram = Diagram(problem_statement=DEFAULT_PROBLEM_STATEMENT)
    for title in DEFAULT_CATEGORIES:
        diagram.add_category(title)
    return diagram
