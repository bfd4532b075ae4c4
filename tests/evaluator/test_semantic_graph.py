import pytest

from intentcad.evaluator.graph import (
    SemanticGraph,
    SemanticGraphError,
    types_compatible,
    validate_semantic_ir,
)
from intentcad.intent.semantic import SemanticIRGenerator


def primitive(node_id, deps=(), **parameters):
    return {
        "id": node_id,
        "node_type": "primitive",
        "dependencies": list(deps),
        "content": {"data": {"primitive_type": "box", "parameters": parameters or {"width": 10}}},
    }


def feature(node_id, deps):
    return {"id": node_id, "node_type": "feature", "dependencies": list(deps)}


def codes(report):
    return [e["code"] for e in report["errors"]]


# ----------------------------
# Validation
# ----------------------------

def test_clean_graph_is_valid():
    report = validate_semantic_ir({"nodes": [primitive("a"), feature("f", ["a"])]})
    assert report["valid"]
    assert report["errors"] == []
    assert report["summary"] == "Validation passed without issues"


def test_missing_dependency():
    report = validate_semantic_ir({"nodes": [feature("f", ["ghost"])]})
    assert codes(report) == ["MISSING_DEPENDENCY"]
    assert report["errors"][0]["node_id"] == "f"


def test_duplicate_ids():
    report = validate_semantic_ir({"nodes": [primitive("a"), primitive("a")]})
    assert "GRAPH_STRUCTURE" in codes(report)


def test_node_without_id():
    report = validate_semantic_ir({"nodes": [{"node_type": "primitive"}]})
    assert codes(report) == ["INVALID_CONTENT"]


def test_incompatible_dependency_type():
    report = validate_semantic_ir({"nodes": [feature("f", []), primitive("p", ["f"])]})
    assert "TYPE_MISMATCH" in codes(report)


def test_cycle_is_reported_once():
    report = validate_semantic_ir({"nodes": [feature("a", ["b"]), feature("b", ["a"])]})
    assert codes(report).count("CIRCULAR_DEPENDENCY") == 1
    assert not report["valid"]


def test_non_positive_dimension():
    report = validate_semantic_ir({"nodes": [primitive("a", width=0, height=5)]})
    assert codes(report) == ["INVALID_PARAMETER"]
    assert "width" in report["errors"][0]["message"]


def test_constraint_on_unknown_node():
    report = validate_semantic_ir(
        {"nodes": [primitive("a")], "constraints": [{"id": "c1", "affected_nodes": ["a", "zz"]}]}
    )
    assert codes(report) == ["GRAPH_STRUCTURE"]


def test_small_features_reduce_manufacturability():
    report = validate_semantic_ir({"nodes": [primitive("a", width=0.2), feature("f", ["a"])]})
    analysis = report["manufacturing_analysis"]
    assert report["valid"]
    assert analysis["manufacturability_score"] == pytest.approx(75.0)
    assert analysis["constraint_violations"][0]["constraint_type"] == "MinFeatureSize"


def test_deep_chain_warns():
    nodes = [primitive("n0")] + [feature(f"n{i}", [f"n{i - 1}"]) for i in range(1, 13)]
    report = validate_semantic_ir({"nodes": nodes})
    assert report["valid"]
    assert report["warnings"][0]["warning_type"] == "performance"
    assert report["summary"] == "Validation passed with 1 warnings"


def test_generated_semantic_ir_validates():
    semantic = SemanticIRGenerator().generate(
        {
            "plate": {
                "type": "box",
                "dimensions": {"width": 100, "height": 10, "depth": 50},
                "features": [{"type": "hole", "parameters": {"diameter": 6, "depth": 10}}],
            }
        }
    )
    report = validate_semantic_ir(semantic)
    assert report["valid"], report["errors"]


@pytest.mark.parametrize(
    "dependency, dependent, ok",
    [
        ("primitive", "feature", True),
        ("feature", "boolean_op", True),
        ("feature", "primitive", False),
        ("constraint", "analysis", False),
        ("primitive", "analysis", True),
        ("analysis", "constraint", True),
    ],
)
def test_type_compatibility(dependency, dependent, ok):
    assert types_compatible(dependency, dependent) is ok


# ----------------------------
# Incremental edits
# ----------------------------

def test_add_enforces_integrity():
    graph = SemanticGraph()
    graph.add(primitive("a"))

    with pytest.raises(SemanticGraphError):
        graph.add(primitive("a"))
    with pytest.raises(SemanticGraphError):
        graph.add(feature("f", ["missing"]))
    with pytest.raises(SemanticGraphError):
        graph.add({"node_type": "primitive"})

    assert graph.add(feature("f", ["a"])) == "f"
    assert len(graph) == 2


def test_load_replaces_previous_graph():
    graph = SemanticGraph()
    graph.add(primitive("old"))
    graph.load({"nodes": [primitive("new")]})
    assert list(graph.nodes) == ["new"]


# ----------------------------
# Statistics
# ----------------------------

def test_stats():
    graph = SemanticGraph()
    graph.load(
        {
            "nodes": [
                primitive("a"),
                primitive("b"),
                feature("f1", ["a"]),
                {"id": "u", "node_type": "boolean_op", "dependencies": ["f1", "b"]},
            ]
        }
    )
    assert graph.stats() == {
        "node_count": 4,
        "edge_count": 3,
        "root_count": 2,
        "leaf_count": 1,
        "max_depth": 3,
        "avg_dependencies": 0.75,
    }


def test_stats_of_empty_graph():
    stats = SemanticGraph().stats()
    assert stats["node_count"] == 0
    assert stats["max_depth"] == 0
    assert stats["avg_dependencies"] == 0.0


def test_stats_survive_cycles():
    graph = SemanticGraph()
    graph.load({"nodes": [feature("a", ["b"]), feature("b", ["a"])]})
    assert graph.stats()["edge_count"] == 2
