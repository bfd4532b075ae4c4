import json

import pytest
from loguru import logger

from intentcad.cli import build_parser, main


@pytest.fixture(autouse=True)
def release_log_sink():
    # main() binds a sink to the captured stderr
    yield
    logger.remove()


@pytest.fixture
def write_json(tmp_path):
    def write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return path

    return write


def output(capsys):
    return json.loads(capsys.readouterr().out)


def test_sequence(write_json, capsys):
    path = write_json(
        "intent.json",
        {
            "baseGeometry": {"type": "cylinder", "parameters": {"radius": 5, "height": 20}},
            "features": [{"type": "chamfer", "parameters": {"distance": 1}}],
        },
    )

    assert main(["sequence", str(path)]) == 0

    body = output(capsys)
    assert [op["operation"] for op in body["operations"]] == ["CREATE_CYLINDER", "ADD_CHAMFER"]
    assert body["estimated_time"] == 250


def test_sequence_rejects_bad_intent(write_json, capsys):
    path = write_json("intent.json", {"features": []})
    assert main(["sequence", str(path)]) == 2
    assert "baseGeometry" in capsys.readouterr().err


def test_compile_ir_only_accepts_wrapped_objects(write_json, capsys):
    objects = {"plate": {"type": "box", "dimensions": {"width": 10, "height": 2, "depth": 5}}}
    plain = write_json("plain.json", objects)
    wrapped = write_json("wrapped.json", {"objects": objects})

    assert main(["compile", str(plain), "--ir-only"]) == 0
    first = output(capsys)
    assert main(["compile", str(wrapped), "--ir-only"]) == 0
    second = output(capsys)

    assert first["intent_hash"] == second["intent_hash"]
    assert first["ir"]["operations"][0]["type"] == "box"


def test_compile_without_evaluator(write_json, capsys):
    path = write_json("objects.json", {"a": {"type": "sphere", "dimensions": {"radius": 3}}})

    assert main(["compile", str(path), "--no-evaluator"]) == 0

    body = output(capsys)
    assert body["status"] == "fallback"
    assert body["triangles"] == 0


def test_execute_fallback(write_json, capsys):
    path = write_json("intent.json", {"baseGeometry": {"type": "torus", "parameters": {"majorRadius": 10, "minorRadius": 2}}})

    assert main(["execute", str(path), "--fallback"]) == 0

    body = output(capsys)
    assert body["ok"] is True
    assert body["fallback"] is True
    assert body["geometry_id"].startswith("local_")
    assert body["export"] is None


def test_execute_failure_exit_code(write_json, capsys):
    path = write_json(
        "intent.json",
        {
            "baseGeometry": {"type": "box", "parameters": {"width": 1, "height": 1, "depth": 1}},
            "features": [{"type": "fillet", "parameters": {"radius": 0.1}}],
        },
    )

    assert main(["execute", str(path), "--fallback"]) == 1

    body = output(capsys)
    assert body["failed_operation"]["operation"] == "ADD_FILLET"


def test_missing_file(tmp_path, capsys):
    assert main(["sequence", str(tmp_path / "nope.json")]) == 2
    assert "File not found" in capsys.readouterr().err


def test_non_object_json(write_json, capsys):
    path = write_json("list.json", [1, 2, 3])
    assert main(["sequence", str(path)]) == 2
    assert "must contain a JSON object" in capsys.readouterr().err


def test_export_choices_are_enforced():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["execute", "intent.json", "--export", "dwg"])
