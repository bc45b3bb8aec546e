import anndata as ad
import numpy as np
import pandas as pd
import pytest

from purinergic_sc.zonation import ZoneRule, assign_zones, rules_from_config, zonation_score


RULES = [
    {"label": "periportal", "group": "control", "lower": 1.0},
    {"label": "pericentral", "group": "control", "upper": -1.0},
    {"label": "periportal", "group": "treated", "lower": 0.5},
    {"label": "pericentral", "group": "treated", "upper": -0.5},
]


def _liver_adata():
    magic = np.array(
        [
            [3.0, 0.5, 1.0],
            [0.2, 2.0, 1.0],
            [1.0, 1.0, 1.0],
            [1.4, 0.6, 1.0],
            [0.0, 0.75, 1.0],
        ],
        dtype=np.float32,
    )
    obs = pd.DataFrame(
        {"group": pd.Categorical(["control", "control", "control", "treated", "treated"])},
        index=[f"c{i}" for i in range(5)],
    )
    adata = ad.AnnData(
        X=np.zeros_like(magic), obs=obs, var=pd.DataFrame(index=["Arg1", "Cyp2e1", "Alb"])
    )
    adata.layers["magic"] = magic
    return adata


def test_zonation_score_is_arg1_minus_cyp2e1():
    adata = _liver_adata()
    score = zonation_score(adata)
    magic = adata.layers["magic"].astype(np.float64)
    np.testing.assert_array_equal(score.to_numpy(), magic[:, 0] - magic[:, 1])
    assert score.index.tolist() == adata.obs_names.tolist()
    assert adata.obs["zonation"].equals(score)


def test_zonation_score_missing_inputs():
    adata = _liver_adata()
    with pytest.raises(KeyError, match="marker genes"):
        zonation_score(adata, positive="Hamp")
    with pytest.raises(KeyError, match="Layer"):
        zonation_score(adata, layer="imputed")


def test_assign_zones_first_match_with_default():
    adata = _liver_adata()
    zonation_score(adata)
    # scores: 2.5, -1.8, 0.0, 0.8, -0.75
    zones = assign_zones(adata, rules_from_config(RULES), default="mid")
    assert zones.tolist() == ["periportal", "pericentral", "mid", "periportal", "pericentral"]
    assert list(adata.obs["zone"].cat.categories) == ["periportal", "pericentral", "mid"]


def test_assign_zones_is_group_specific():
    adata = _liver_adata()
    adata.obs["zonation"] = [0.8, -0.75, 0.0, 0.8, -0.75]
    zones = assign_zones(adata, rules_from_config(RULES), default="mid")
    # 0.8 and -0.75 only pass the treated cutoffs
    assert zones.tolist() == ["mid", "mid", "mid", "periportal", "pericentral"]


def test_assign_zones_earlier_rule_wins():
    adata = _liver_adata()
    adata.obs["zonation"] = [5.0, 5.0, 5.0, 5.0, 5.0]
    rules = [ZoneRule("first", lower=1.0), ZoneRule("second", lower=0.0)]
    zones = assign_zones(adata, rules, default="none")
    assert set(zones) == {"first"}


def test_zone_rule_bounds():
    scores = pd.Series([0.5, 1.0, 1.5])
    groups = pd.Series(["a", "a", "b"])
    rule = ZoneRule("z", lower=0.5, upper=1.5)
    assert rule.matches(scores, groups).tolist() == [False, True, True]
    rule = ZoneRule("z", group="a", lower=0.0)
    assert rule.matches(scores, groups).tolist() == [True, True, False]


def test_rules_from_config_validation():
    with pytest.raises(ValueError, match="missing a label"):
        rules_from_config([{"group": "control"}])
    with pytest.raises(ValueError, match="Unknown zone rule fields"):
        rules_from_config([{"label": "x", "cutoff": 1}])


def test_assign_zones_rejects_unknown_rule_group():
    adata = _liver_adata()
    adata.obs["group"] = pd.Categorical(["CTRL1", "CTRL1", "CTRL1", "TREAT1", "TREAT1"])
    adata.obs["zonation"] = [5.0, -5.0, 5.0, -5.0, 5.0]
    with pytest.raises(ValueError, match=r"\['control', 'treated'\]"):
        assign_zones(adata, rules_from_config(RULES), default="mid")


def test_assign_zones_requires_columns():
    adata = _liver_adata()
    with pytest.raises(ValueError, match="zonation"):
        assign_zones(adata, [], default="mid")
