import sys
import weakref
from pathlib import Path

import pytest

# Ensure 'src' is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
src = ROOT / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

from graphsnap.testing import Item, Scratch, Unit, build_level  # noqa: E402


@pytest.fixture
def world():
    """Level / {Hall / Grunt, Scout, Vault, Debug} with a shared sword.

    Pre-order identities: Level 0, Hall 1, Grunt 2, Scout 3, Vault 4; the
    sword is discovered as 5. Debug is a Scratch node and is never persisted.
    """
    level = build_level()
    hall = level.get_node("Hall")

    grunt = Unit("Grunt")
    hall.add_child(grunt)
    scout = Unit("Scout")
    level.add_child(scout)
    level.move_child(scout, 1)
    level.add_child(Scratch("Debug"))

    sword = Item()
    sword.label = "sword"
    sword.weight = 3.5
    sword.owner = weakref.ref(grunt)
    grunt.inventory = [sword, sword]
    grunt.notes = {"kills": 3, 7: ("a", None)}
    scout.target = weakref.ref(grunt)
    scout.hp = 4
    hall.visited = True
    hall.tags = ["lit", "safe"]
    return level
