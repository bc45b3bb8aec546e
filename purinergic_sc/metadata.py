"""
Per-cell metadata derived from cell identifiers.
"""

import pandas as pd
from anndata import AnnData
from typing import Dict


def assign_sample_groups(
    adata: AnnData,
    group_map: Dict[str, str],
    pattern: str = r"^([^_]+)_",
    sample_key: str = "sample",
    group_key: str = "group",
) -> None:
    """
    Derive sample and treatment group columns from cell names.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix whose obs_names carry a sample prefix
        (e.g. ``CTRL1_AAACCTGAG``).
    group_map : dict
        Mapping from sample identifier to treatment group.
    pattern : str
        Regular expression with one capture group extracting the sample
        identifier from a cell name.
    sample_key : str
        Column in .obs to store the sample identifier.
    group_key : str
        Column in .obs to store the treatment group.
    """
    samples = adata.obs_names.to_series().str.extract(pattern, expand=False)
    unmatched = samples[samples.isna()].index
    if len(unmatched) > 0:
        raise ValueError(
            f"{len(unmatched)} cell names do not match sample pattern {pattern!r}, "
            f"e.g. {unmatched[:5].tolist()}"
        )

    group_map = {str(k): str(v) for k, v in group_map.items()}
    unknown = sorted(set(samples) - set(group_map))
    if unknown:
        raise ValueError(f"Samples without a group mapping: {unknown}")

    adata.obs[sample_key] = pd.Categorical(samples.to_numpy())
    adata.obs[group_key] = pd.Categorical(samples.map(group_map).to_numpy())
