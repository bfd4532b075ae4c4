import numpy as np
import pytest

from intentcad.boundary.payloads import PayloadError
from intentcad.errors import FallbackUnsupportedError
from intentcad.execution.fallback import FALLBACK_BUILDERS, LocalFallback
from intentcad.intent.model import PrimitiveKind


CREATE_PAYLOADS = {
    "CREATE_BOX": {"width": 20, "height": 10, "depth": 30},
    "CREATE_CYLINDER": {"radius": 5, "height": 12, "segments": 24},
    "CREATE_SPHERE": {"radius": 4, "segmentsLat": 12, "segmentsLon": 16},
    "CREATE_EXTRUSION": {"width": 10, "depth": 6, "height": 3},
    "CREATE_CONE": {"radius": 5, "height": 8, "segments": 16},
    "CREATE_TORUS": {"majorRadius": 10, "minorRadius": 2, "segmentsMajor": 24, "segmentsMinor": 12},
}


def test_every_primitive_has_a_fallback():
    assert set(FALLBACK_BUILDERS) == set(PrimitiveKind)


@pytest.mark.parametrize("operation, payload", list(CREATE_PAYLOADS.items()))
def test_create_operations(operation, payload):
    fallback = LocalFallback()

    result = fallback.execute(operation, payload)

    assert result["approximate"] is True
    assert result["geometryId"].startswith("local_")
    mesh = result["mesh"]
    assert mesh["vertices"].dtype == np.float32
    assert mesh["indices"].dtype == np.uint32
    assert len(mesh["indices"]) % 3 == 0
    assert len(mesh["normals"]) == len(mesh["vertices"])
    assert fallback.get(result["geometryId"]) is not None


def test_box_is_centred_with_requested_extents():
    fallback = LocalFallback()
    result = fallback.execute("CREATE_BOX", CREATE_PAYLOADS["CREATE_BOX"])

    mesh = fallback.get(result["geometryId"])

    np.testing.assert_allclose(mesh.extents, [20, 10, 30])
    np.testing.assert_allclose(mesh.bounds.mean(axis=0), [0, 0, 0], atol=1e-9)


def test_cone_is_centred_on_z():
    fallback = LocalFallback()
    result = fallback.execute("CREATE_CONE", CREATE_PAYLOADS["CREATE_CONE"])
    bounds = fallback.get(result["geometryId"]).bounds
    assert bounds[0][2] == pytest.approx(-4)
    assert bounds[1][2] == pytest.approx(4)


@pytest.mark.parametrize("operation", ["ADD_HOLE", "BOOLEAN_UNION", "EXPORT_STL", "ANALYZE_DFM", "MODIFY"])
def test_non_create_operations_are_unsupported(operation):
    fallback = LocalFallback()
    assert not fallback.supports(operation)
    with pytest.raises(FallbackUnsupportedError, match="not available in fallback mode"):
        fallback.execute(operation, {"geometryId": "local_1"})


def test_invalid_dimensions():
    with pytest.raises(PayloadError):
        LocalFallback().execute("CREATE_BOX", {"width": 0, "height": 1, "depth": 1})
    with pytest.raises(PayloadError):
        LocalFallback().execute("CREATE_TORUS", {"majorRadius": 1, "minorRadius": 2})


def test_ids_are_unique_and_clearable():
    fallback = LocalFallback()
    ids = {fallback.execute("CREATE_SPHERE", {"radius": 1})["geometryId"] for _ in range(5)}

    assert len(ids) == 5
    assert len(fallback) == 5

    fallback.clear()
    assert fallback.ids() == []
