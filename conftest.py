"""
Pytest configuration.

Puts ``src/`` on the Python path so the tests run from a plain checkout,
and provides shared diagram fixtures.
"""

import sys
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).parent.absolute() / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from fishbone_mcp.models import Diagram, default_diagram  # noqa: E402


@pytest.fixture
def seeded_diagram() -> Diagram:
    """The six default categories, each with two short causes."""
    diagram = default_diagram()
    for category in diagram.categories:
        diagram.add_cause(category.id, "Short cause")
        diagram.add_cause(category.id, "Short cause")
    return diagram


@pytest.fixture
def busy_diagram() -> Diagram:
    """Uneven categories with a mix of short, long and clamped labels."""
    diagram = Diagram(problem_statement="Weld Seam Defect Rate Above Target")
    texts = [
        ["Pre-heat skipped", "Fixture clamping order varies by shift and operator", "Old jig"],
        ["Wire feeder slips"],
        [],
        ["Mill scale", "Gas purity", "Wrong filler rod batch received from the secondary supplier "
         "without a certificate of conformance", "Rust", "Oil"],
        ["Humidity"],
    ]
    priorities = ["Critical", "High", "Medium", "Low"]
    for i, cause_texts in enumerate(texts):
        category = diagram.add_category(f"Category {i + 1}")
        for j, text in enumerate(cause_texts):
            diagram.add_cause(category.id, text, priorities[j % 4])
    return diagram
