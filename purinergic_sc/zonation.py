"""
Liver lobule zonation score and zone labels.

The score contrasts a periportal marker (Arg1) with a pericentral marker
(Cyp2e1) on imputed expression. Zone labels come from an ordered list of
cutoff rules, evaluated first-match, with a default label for the rest.
"""

import numpy as np
import pandas as pd
from anndata import AnnData
from dataclasses import dataclass
from scipy import sparse
from typing import Optional, List, Sequence


@dataclass(frozen=True)
class ZoneRule:
    """
    One zone-labelling branch.

    A cell matches when its group equals ``group`` (any group if None) and
    ``lower < score <= upper`` for whichever bounds are set.
    """

    label: str
    group: Optional[str] = None
    lower: Optional[float] = None
    upper: Optional[float] = None

    def matches(self, scores: pd.Series, groups: pd.Series) -> pd.Series:
        mask = pd.Series(True, index=scores.index)
        if self.group is not None:
            mask &= groups.astype(str) == str(self.group)
        if self.lower is not None:
            mask &= scores > self.lower
        if self.upper is not None:
            mask &= scores <= self.upper
        return mask


def rules_from_config(entries: Sequence[dict]) -> List[ZoneRule]:
    """Build ZoneRule objects from config mappings (label, group, lower, upper)."""
    rules = []
    for entry in entries:
        if "label" not in entry:
            raise ValueError(f"Zone rule is missing a label: {entry}")
        unknown = set(entry) - {"label", "group", "lower", "upper"}
        if unknown:
            raise ValueError(f"Unknown zone rule fields {sorted(unknown)}: {entry}")
        rules.append(
            ZoneRule(
                label=str(entry["label"]),
                group=None if entry.get("group") is None else str(entry["group"]),
                lower=None if entry.get("lower") is None else float(entry["lower"]),
                upper=None if entry.get("upper") is None else float(entry["upper"]),
            )
        )
    return rules


def zonation_score(
    adata: AnnData,
    positive: str = "Arg1",
    negative: str = "Cyp2e1",
    layer: Optional[str] = "magic",
    key_added: str = "zonation",
) -> pd.Series:
    """
    Per-cell zonation score: ``positive`` minus ``negative`` expression.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix.
    positive : str
        Gene whose expression raises the score (periportal marker).
    negative : str
        Gene whose expression lowers the score (pericentral marker).
    layer : str, optional
        Layer holding imputed expression. If None, uses .X.
    key_added : str
        Column in .obs to store the score.

    Returns
    -------
    pd.Series
        Score indexed by cell name.
    """
    missing = [g for g in (positive, negative) if g not in adata.var_names]
    if missing:
        raise KeyError(f"Zonation marker genes not found in adata.var_names: {missing}")
    if layer is not None and layer not in adata.layers:
        raise KeyError(f"Layer '{layer}' not found in adata.layers")

    sub = adata[:, [positive, negative]]
    values = sub.layers[layer] if layer is not None else sub.X
    if sparse.issparse(values):
        values = values.toarray()
    values = np.asarray(values, dtype=np.float64)

    score = pd.Series(values[:, 0] - values[:, 1], index=adata.obs_names, name=key_added)
    adata.obs[key_added] = score
    return score


def assign_zones(
    adata: AnnData,
    rules: Sequence[ZoneRule],
    default: str = "mid",
    score_key: str = "zonation",
    group_key: str = "group",
    key_added: str = "zone",
) -> pd.Series:
    """
    Label cells by the first matching zone rule.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with a zonation score in .obs.
    rules : sequence of ZoneRule
        Ordered rules; earlier rules take precedence. Every group a rule
        names must occur in ``obs[group_key]``.
    default : str
        Label for cells that match no rule.
    score_key : str
        Column in .obs with the zonation score.
    group_key : str
        Column in .obs with the treatment group.
    key_added : str
        Column in .obs to store the zone label.

    Returns
    -------
    pd.Series
        Zone labels indexed by cell name.
    """
    for col in (score_key, group_key):
        if col not in adata.obs.columns:
            raise ValueError(f"Column '{col}' not found in adata.obs")

    scores = adata.obs[score_key].astype(float)
    groups = adata.obs[group_key]

    present = set(groups.astype(str))
    unknown = sorted({str(r.group) for r in rules if r.group is not None} - present)
    if unknown:
        raise ValueError(
            f"Zone rules reference groups {unknown} not found in "
            f"adata.obs['{group_key}']: {sorted(present)}"
        )

    labels = pd.Series(default, index=adata.obs_names, dtype=object)
    unassigned = pd.Series(True, index=adata.obs_names)
    for rule in rules:
        hit = rule.matches(scores, groups) & unassigned
        labels[hit] = rule.label
        unassigned &= ~hit

    categories = list(dict.fromkeys([r.label for r in rules] + [default]))
    adata.obs[key_added] = pd.Categorical(labels.to_numpy(), categories=categories)
    return adata.obs[key_added]
