"""
Two-group differential expression between clusters.
"""

import pandas as pd
import scanpy as sc
from anndata import AnnData
from typing import Optional


DE_COLUMNS = ["p_val", "avg_log2FC", "pct_1", "pct_2", "p_val_adj", "score"]


def differential_expression(
    adata: AnnData,
    groupby: str,
    ident_1: str,
    ident_2: str,
    min_pct: float = 0.0,
    logfc_threshold: float = 0.0,
    method: str = "wilcoxon",
    layer: Optional[str] = "lognorm",
) -> pd.DataFrame:
    """
    Compare expression of every gene between two groups of cells.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix.
    groupby : str
        Column in .obs with group labels (e.g. a Leiden clustering).
    ident_1 : str
        Group tested for up-regulation.
    ident_2 : str
        Reference group.
    min_pct : float
        Keep genes detected in at least this fraction of cells in either
        group. 0 disables the filter.
    logfc_threshold : float
        Keep genes with ``|avg_log2FC| >= logfc_threshold``. 0 disables the
        filter.
    method : str
        Test passed to scanpy.tl.rank_genes_groups ('wilcoxon', 't-test', ...).
    layer : str, optional
        Layer with log-normalized expression. If None, uses .X.

    Returns
    -------
    pd.DataFrame
        Indexed by gene, columns p_val, avg_log2FC, pct_1, pct_2, p_val_adj
        and score, sorted by p_val.
    """
    if groupby not in adata.obs.columns:
        raise ValueError(f"Group column '{groupby}' not found in adata.obs")

    ident_1, ident_2 = str(ident_1), str(ident_2)
    labels = adata.obs[groupby].astype(str)
    present = set(labels)
    missing = [g for g in (ident_1, ident_2) if g not in present]
    if missing:
        raise ValueError(f"Groups {missing} not found in adata.obs['{groupby}']: {sorted(present)}")

    # Only cells of the two compared groups
    sub = adata[labels.isin([ident_1, ident_2]).to_numpy()].copy()
    sub.obs[groupby] = sub.obs[groupby].astype(str).astype("category")

    key = f"de_{ident_1}_vs_{ident_2}"
    sc.tl.rank_genes_groups(
        sub,
        groupby=groupby,
        groups=[ident_1],
        reference=ident_2,
        method=method,
        n_genes=sub.n_vars,
        use_raw=False,
        layer=layer,
        pts=True,
        key_added=key,
    )
    result = sc.get.rank_genes_groups_df(sub, group=ident_1, key=key)
    genes = result["names"].astype(str).to_numpy()

    # Detection fractions for both groups, keyed by gene name
    pts = sub.uns[key]["pts"]
    pts.columns = pts.columns.astype(str)

    table = pd.DataFrame(
        {
            "p_val": result["pvals"].to_numpy(),
            "avg_log2FC": result["logfoldchanges"].to_numpy(),
            "pct_1": pts.loc[genes, ident_1].to_numpy(),
            "pct_2": pts.loc[genes, ident_2].to_numpy(),
            "p_val_adj": result["pvals_adj"].to_numpy(),
            "score": result["scores"].to_numpy(),
        },
        index=pd.Index(genes, name="gene"),
    )

    keep = pd.Series(True, index=table.index)
    if min_pct > 0:
        keep &= table[["pct_1", "pct_2"]].max(axis=1) >= min_pct
    if logfc_threshold > 0:
        keep &= table["avg_log2FC"].abs() >= logfc_threshold

    return table[keep].sort_values("p_val", kind="stable")
