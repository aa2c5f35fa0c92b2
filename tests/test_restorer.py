import gc
import weakref

import pytest

from graphsnap.encoder import SnapshotEncoder, encode_tree
from graphsnap.errors import AnchorPathError, ContractViolation, MalformedRecordError, TypeResolutionError
from graphsnap.record import AnchoredPlacement, EphemeralPlacement, SnapshotRecord
from graphsnap.restorer import SnapshotRestorer, restore_tree
from graphsnap.service import load_tree
from graphsnap.testing import (
    Crate,
    Holder,
    Item,
    LockedCrate,
    NeedsArgs,
    Room,
    Scratch,
    Unit,
    build_level,
)
from graphsnap.type_table import TypeRegistry


def test_roundtrip_onto_fresh_anchor(world):
    record = encode_tree(world)
    level = build_level()
    assert restore_tree(record, level) is None

    hall = level.get_node("Hall")
    grunt = level.get_node("Hall/Grunt")
    scout = level.get_child(1)
    assert hall.visited is True and hall.tags == ["lit", "safe"]
    assert isinstance(grunt, Unit) and grunt.parent is hall
    assert scout.name == "Scout" and scout.hp == 4
    assert scout.target() is grunt
    assert grunt.notes == {"kills": 3, 7: ("a", None)}

    sword = grunt.inventory[0]
    assert isinstance(sword, Item)
    assert grunt.inventory[1] is sword
    assert (sword.label, sword.weight) == ("sword", 3.5)
    assert sword.owner() is grunt
    assert [c.name for c in level.children] == ["Hall", "Scout", "Vault"]


def test_reencoding_restored_tree_is_stable(world):
    record = encode_tree(world)
    level = build_level()
    restore_tree(record, level)
    assert encode_tree(level).to_dict() == record.to_dict()


def test_ephemeral_children_point_at_anchor_objects():
    def layout():
        root = Room("Root")
        root.add_child(Room("X"))
        root.add_child(Room("Y"))
        return root

    source = layout()
    z = Holder("Z")
    source.get_node("X").add_child(z)
    z.values = [source.get_node("Y"), "hello", 3]
    record = encode_tree(source)

    target = layout()
    restore_tree(record, target)
    restored = target.get_node("X/Z")
    assert isinstance(restored, Holder)
    assert restored is not z
    assert restored.values == [target.get_node("Y"), "hello", 3]
    assert restored.values[0] is target.get_node("Y")


def test_dead_weak_reference_restores_dead(world):
    temp = Item()
    world.get_node("Hall/Grunt").target = weakref.ref(temp)
    del temp
    gc.collect()
    record = encode_tree(world)

    level = build_level()
    restore_tree(record, level)
    target = level.get_node("Hall/Grunt").target
    assert isinstance(target, weakref.ReferenceType)
    assert target() is None


def test_sibling_index_is_clamped():
    level = build_level()
    level.add_child(Scratch("A"))
    level.add_child(Scratch("B"))
    level.add_child(Unit("Runner"))
    record = encode_tree(level)
    assert record.structural[-1].placement.index == 4

    fresh = build_level()
    restore_tree(record, fresh)
    assert fresh.get_child_count() == 3
    assert fresh.get_child(2).name == "Runner"


def test_ephemeral_root_builds_detached_tree():
    boss = Unit("Boss")
    boss.add_child(Unit("Minion"))
    boss.inventory = [Item()]
    boss.target = weakref.ref(boss.get_child(0))

    restored = restore_tree(encode_tree(boss))
    assert isinstance(restored, Unit)
    assert restored is not boss
    assert restored.name == "Boss"
    assert restored.parent is None
    minion = restored.get_node("Minion")
    assert restored.target() is minion
    assert isinstance(restored.inventory[0], Item)


def test_unpersisted_root_acts_as_anchor():
    def main():
        root = Scratch("Main")
        root.add_child(Room("Arena"))
        return root

    source = main()
    source.junk = 41
    source.get_node("Arena").add_child(Unit("Fighter"))
    record = encode_tree(source)

    target = main()
    restore_tree(record, target)
    assert target.junk == 41
    assert isinstance(target.get_node("Arena/Fighter"), Unit)


def test_empty_record_is_a_noop():
    level = build_level()
    assert restore_tree(encode_tree(None), level) is None
    assert restore_tree(SnapshotRecord(object_count=0)) is None
    assert level.get_child_count() == 2


def _registries():
    old = TypeRegistry()
    old.register(Crate, descriptor="crate")
    new = TypeRegistry()
    new.register(LockedCrate, descriptor="crate")
    return old, new


def test_older_record_restores_into_extended_type():
    old, new = _registries()
    box = Crate("Box")
    box.contents = ["s", 2]
    record = SnapshotEncoder(registry=old).encode(box)
    assert len(record.root.field_groups) == 2

    restored = SnapshotRestorer(new).restore(record)
    assert type(restored) is LockedCrate
    assert restored.name == "Box"
    assert restored.contents == ["s", 2]
    assert restored.locked is False and restored.key_name is None


def test_newer_record_restores_into_reduced_type():
    old, new = _registries()
    box = LockedCrate("Box")
    box.contents = [1.5]
    box.locked = True
    box.key_name = "brass"
    record = SnapshotEncoder(registry=new).encode(box)
    assert len(record.root.field_groups) == 3

    restored = SnapshotRestorer(old).restore(record)
    assert type(restored) is Crate
    assert restored.contents == [1.5]
    assert not hasattr(restored, "locked")


def test_registered_local_class_roundtrip():
    class Local(Unit):
        pass

    reg = TypeRegistry()
    reg.register(Local, descriptor="tests.local")
    level = build_level()
    level.add_child(Local("Here"))
    record = SnapshotEncoder(registry=reg).encode(level)

    fresh = build_level()
    SnapshotRestorer(reg).restore(record, fresh)
    assert type(fresh.get_node("Here")) is Local


def _stale_target():
    level = build_level()
    stale = Unit("Stale")
    level.get_node("Hall").add_child(stale)
    return level, stale


def _assert_untouched(level, stale):
    hall = level.get_node("Hall")
    assert hall.visited is False and hall.tags == []
    assert stale.parent is hall
    assert hall.get_child_count() == 1


def test_missing_anchor_path_leaves_anchor_untouched(world):
    record = encode_tree(world)
    level, stale = _stale_target()
    level.remove_child(level.get_node("Vault"))
    with pytest.raises(AnchorPathError) as exc:
        load_tree(record, level)
    assert exc.value.path == "Vault"
    _assert_untouched(level, stale)


def test_anchor_path_must_be_anchored(world):
    record = encode_tree(world)
    level, stale = _stale_target()
    level.remove_child(level.get_node("Vault"))
    level.add_child(Scratch("Vault"))
    with pytest.raises(AnchorPathError):
        load_tree(record, level)
    _assert_untouched(level, stale)


def test_anchored_record_needs_anchor(world):
    with pytest.raises(AnchorPathError):
        restore_tree(encode_tree(world))


def test_unresolvable_type_leaves_anchor_untouched(world):
    record = encode_tree(world)
    record.types[0] = "graphsnap.testing:Missing"
    level, stale = _stale_target()
    with pytest.raises(TypeResolutionError) as exc:
        load_tree(record, level)
    assert exc.value.descriptor == "graphsnap.testing:Missing"
    _assert_untouched(level, stale)


def test_extra_recorded_values_leave_anchor_untouched(world):
    record = encode_tree(world)
    record.structural[2].field_groups[1].append(99)
    level, stale = _stale_target()
    with pytest.raises(ContractViolation):
        load_tree(record, level)
    _assert_untouched(level, stale)


def test_extra_recorded_group_is_ignored(world):
    record = encode_tree(world)
    record.structural[2].field_groups.append(["s:future"])
    level = build_level()
    restore_tree(record, level)
    assert level.get_node("Hall/Grunt").hp == 10


def test_dangling_reference_is_malformed(world):
    record = encode_tree(world)
    record.structural[2].field_groups[1][1] = "o:77"
    level, stale = _stale_target()
    with pytest.raises(MalformedRecordError):
        load_tree(record, level)
    _assert_untouched(level, stale)


def test_type_without_default_constructor(world):
    world.get_node("Hall/Grunt").target = NeedsArgs(3)
    record = encode_tree(world)
    with pytest.raises(ContractViolation):
        restore_tree(record, build_level())


def test_load_tree_replaces_previous_ephemeral_nodes(world):
    record = encode_tree(world)
    level = build_level()
    load_tree(record, level)
    load_tree(record, level)
    hall = level.get_node("Hall")
    assert [c.name for c in hall.children] == ["Grunt"]
    assert [c.name for c in level.children] == ["Hall", "Scout", "Vault"]


def test_restore_without_teardown_duplicates(world):
    record = encode_tree(world)
    level = build_level()
    load_tree(record, level)
    load_tree(record, level, teardown=False)
    assert sorted(c.name for c in level.get_node("Hall").children) == ["Grunt", "Grunt2"]


def test_sets_reencode_identically():
    bag = Holder("Bag")
    bag.values = [{"b", 3, "a", 1.5, (2, "x")}, frozenset({"z", None, 7})]
    record = encode_tree(bag)
    restored = restore_tree(record)
    assert restored.values == bag.values
    assert encode_tree(restored).to_dict() == record.to_dict()


@pytest.mark.parametrize(
    "placements",
    [
        {2: EphemeralPlacement(parent=5, index=0)},
        {2: EphemeralPlacement(parent=3, index=0), 3: EphemeralPlacement(parent=2, index=0)},
    ],
    ids=["freestanding-parent", "parent-cycle"],
)
def test_invalid_parent_leaves_anchor_untouched(world, placements):
    record = encode_tree(world)
    for identity, placement in placements.items():
        record.structural[identity].placement = placement
    level, stale = _stale_target()
    with pytest.raises(MalformedRecordError, match="earlier structural"):
        load_tree(record, level)
    _assert_untouched(level, stale)


def test_placement_must_match_anchored_type(world):
    record = encode_tree(world)
    record.structural[1].placement = EphemeralPlacement(parent=0, index=0)
    with pytest.raises(MalformedRecordError, match="EphemeralPlacement"):
        restore_tree(record, build_level())

    record = encode_tree(world)
    record.structural[2].placement = AnchoredPlacement(path="Hall/Grunt", index=0)
    level, stale = _stale_target()
    with pytest.raises(MalformedRecordError, match="AnchoredPlacement"):
        load_tree(record, level)
    _assert_untouched(level, stale)
