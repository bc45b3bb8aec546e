"""
Purinergic receptor gene panel: selection by name pattern and per-group summary.
"""

import numpy as np
import pandas as pd
from anndata import AnnData
from scipy import sparse
from typing import Optional, List, Sequence


PURINERGIC_PANEL = ("P2RX", "P2RY", "ADORA1", "ADORA2B", "ADORA3")


def select_panel_genes(
    adata: AnnData,
    patterns: Sequence[str] = PURINERGIC_PANEL,
    symbol_col: Optional[str] = None,
) -> List[str]:
    """
    Select genes whose name contains any of the panel patterns.

    Matching is a case-insensitive substring test, so ``P2RX`` picks up both
    human ``P2RX7`` and mouse ``P2rx7``.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix.
    patterns : sequence of str
        Name substrings to search for.
    symbol_col : str, optional
        Column in .var with gene symbols to match against instead of
        var_names (e.g. when var_names are Ensembl IDs).

    Returns
    -------
    list of str
        Matching var_names, each once, in gene-axis order.
    """
    if symbol_col is not None:
        if symbol_col not in adata.var.columns:
            raise ValueError(f"Symbol column '{symbol_col}' not found in adata.var")
        names = adata.var[symbol_col].astype(str)
    else:
        names = adata.var_names.to_series().astype(str)

    upper = names.str.upper()
    mask = np.zeros(adata.n_vars, dtype=bool)
    for pattern in patterns:
        mask |= upper.str.contains(pattern.upper(), regex=False).to_numpy()

    if not mask.any():
        raise ValueError(f"No genes match panel patterns {list(patterns)}")

    return adata.var_names[mask].tolist()


def summarize_panel_expression(
    adata: AnnData,
    genes: Sequence[str],
    groupby: str,
    layer: Optional[str] = None,
) -> pd.DataFrame:
    """
    Mean expression and fraction of expressing cells per group and gene.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix.
    genes : sequence of str
        var_names to summarize (see select_panel_genes).
    groupby : str
        Column in .obs with group labels (e.g. cluster or cell type).
    layer : str, optional
        Layer with expression values. Defaults to .X.

    Returns
    -------
    pd.DataFrame
        Long table indexed by gene with columns group, mean_expression,
        fraction_expressing and n_cells.
    """
    if groupby not in adata.obs.columns:
        raise ValueError(f"Group column '{groupby}' not found in adata.obs")

    sub = adata[:, list(genes)]
    values = sub.layers[layer] if layer is not None else sub.X
    if sparse.issparse(values):
        values = values.toarray()
    expr = pd.DataFrame(np.asarray(values), index=sub.obs_names, columns=sub.var_names)

    groups = adata.obs[groupby].astype(str)
    means = expr.groupby(groups).mean()
    fractions = (expr > 0).groupby(groups).mean()
    sizes = groups.value_counts()

    summary = (
        means.stack()
        .rename("mean_expression")
        .to_frame()
        .join(fractions.stack().rename("fraction_expressing"))
        .reset_index()
    )
    summary.columns = ["group", "gene", "mean_expression", "fraction_expressing"]
    summary["n_cells"] = summary["group"].map(sizes).astype(int)

    return summary.set_index("gene")
