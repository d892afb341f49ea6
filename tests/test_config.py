import json

import pytest

from tidemesh.config import FloodplainBounds, MeshParameters, load_case_definition
from tidemesh.exceptions import ConfigurationError


def test_from_dict_accepts_camel_case_names():
    params = MeshParameters.from_dict({
        "minEdgeLength": 0.01,
        "max_el": 0.1,
        "distParam": 0.3,
        "wlParam": 30,
        "num_p": 2,
        "minFeatureLen": 7,
        "bounds": [5.0, 0.2],
    })
    assert params.min_edge_length == 0.01
    assert params.max_edge_length == 0.1
    assert params.dist_param == 0.3
    assert params.num_workers == 2
    assert params.min_segment_points == 7
    assert params.bounds == FloodplainBounds(5.0, 0.2)


def test_unknown_and_missing_keys():
    with pytest.raises(ConfigurationError):
        MeshParameters.from_dict({"min_edge_length": 0.01, "max_edge_length": 0.1, "colour": "red"})
    with pytest.raises(ConfigurationError):
        MeshParameters.from_dict({"min_edge_length": 0.01})


@pytest.mark.parametrize("kwargs", [
    {"min_edge_length": 0.01, "max_edge_length": 0.0},
    {"min_edge_length": 0.2, "max_edge_length": 0.1},
    {"min_edge_length": -0.2, "max_edge_length": 0.1},
    {"min_edge_length": 0.0, "max_edge_length": 0.1},
    {"min_edge_length": 0.01, "max_edge_length": 0.1, "dist_param": -1},
])
def test_validate_rejects_bad_values(kwargs):
    with pytest.raises(ConfigurationError):
        MeshParameters(**kwargs)


def test_derived_defaults():
    params = MeshParameters(min_edge_length=0.01, max_edge_length=0.1, dist_param=0.4)
    assert params.gradient_limit == 0.4
    assert params.use_feature_size
    assert params.h0 == 0.01
    negative = MeshParameters(min_edge_length=-0.01, max_edge_length=0.1, grade=0.2)
    assert negative.gradient_limit == 0.2
    assert not negative.use_feature_size
    assert negative.h0 == 0.01


def test_floodplain_bounds_from_dict():
    assert FloodplainBounds.from_value({"max_elevation": 3, "max_distance": 0.1}) == FloodplainBounds(3.0, 0.1)
    with pytest.raises(ConfigurationError):
        FloodplainBounds.from_value([1.0])


def test_load_case_definition(tmp_path):
    path = tmp_path / "case_definition.json"
    path.write_text(json.dumps({"bbox": [0, 1, 0, 1]}), encoding="utf-8")
    assert load_case_definition(path)["bbox"] == [0, 1, 0, 1]
    with pytest.raises(ConfigurationError):
        load_case_definition(tmp_path / "missing.json")


def test_mesher_iteration_count_is_not_a_gradient_setting():
    # older case files carry the mesher's iteration count; no parameter here takes it
    with pytest.raises(ConfigurationError):
        MeshParameters.from_dict({"min_edge_length": 0.01, "max_edge_length": 0.1, "itmax": 100})
