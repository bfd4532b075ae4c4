from intentcad.intent.hashing import build_geometry_ir
from intentcad.intent.history import IntentHistory
from intentcad.intent.model import PrimitiveIntent, PrimitiveKind


def ir(n):
    return build_geometry_ir(
        "part", [PrimitiveIntent(id="a", kind=PrimitiveKind.BOX, parameters={"width": n})], ()
    )


def test_empty_history():
    history = IntentHistory(limit=10)
    assert history.current() is None
    assert not history.can_undo()
    assert not history.can_redo()
    assert history.undo() is None
    assert history.redo() is None


def test_undo_redo_walks_entries():
    history = IntentHistory(limit=10)
    first, second, third = ir(1), ir(2), ir(3)
    for entry in (first, second, third):
        history.push(entry)

    assert history.current() is third
    assert history.undo() is second
    assert history.undo() is first
    assert not history.can_undo()
    assert history.redo() is second
    assert history.current() is second


def test_push_after_undo_drops_redo():
    history = IntentHistory(limit=10)
    history.push(ir(1))
    history.push(ir(2))
    history.undo()

    replacement = ir(5)
    history.push(replacement)

    assert not history.can_redo()
    assert len(history) == 2
    assert history.current() is replacement


def test_cap_evicts_oldest_and_rebases_pointer():
    history = IntentHistory(limit=100)
    entries = [ir(n) for n in range(150)]
    for entry in entries:
        history.push(entry)

    assert len(history) == 100
    assert history.current() is entries[-1]

    for _ in range(99):
        history.undo()
    assert history.current() is entries[50]
    assert not history.can_undo()


def test_clear():
    history = IntentHistory(limit=10)
    history.push(ir(1))
    history.clear()
    assert len(history) == 0
    assert history.current() is None
