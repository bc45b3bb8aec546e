"""
Clustering quality and composition summaries.
"""

import numpy as np
import pandas as pd
from anndata import AnnData
from typing import Optional
from sklearn.metrics import silhouette_score


def compute_cluster_silhouette(
    adata: AnnData,
    cluster_key: str,
    use_rep: str = "X_pca",
    n_dims: Optional[int] = None,
    sample_size: Optional[int] = None,
    random_state: int = 0,
) -> float:
    """
    Compute the silhouette score of a clustering in an embedding.

    Higher scores indicate clusters that are compact and well separated.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix.
    cluster_key : str
        Column in .obs with cluster assignments.
    use_rep : str
        Key in .obsm with embedding to evaluate.
    n_dims : int, optional
        Only use the first ``n_dims`` dimensions of the embedding.
    sample_size : int, optional
        If provided, subsample cells for faster computation.
    random_state : int
        Random seed for subsampling.

    Returns
    -------
    float
        Silhouette score (range -1 to 1), NaN when fewer than two clusters.
    """
    if use_rep not in adata.obsm:
        raise ValueError(f"Embedding '{use_rep}' not found in adata.obsm")
    if cluster_key not in adata.obs.columns:
        raise ValueError(f"Cluster key '{cluster_key}' not found in adata.obs")

    embedding = np.asarray(adata.obsm[use_rep])
    if n_dims is not None:
        embedding = embedding[:, :n_dims]
    labels = adata.obs[cluster_key].astype(str).to_numpy()

    n_labels = len(np.unique(labels))
    if n_labels < 2 or n_labels >= len(labels):
        return float("nan")

    if sample_size is not None and sample_size < len(labels):
        return float(
            silhouette_score(
                embedding, labels, sample_size=sample_size, random_state=random_state
            )
        )
    return float(silhouette_score(embedding, labels))


def summarize_cluster_composition(
    adata: AnnData,
    cluster_key: str,
    group_key: str,
    normalize: bool = False,
) -> pd.DataFrame:
    """
    Cross-tabulate cluster membership against a grouping (e.g. treatment).

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix.
    cluster_key : str
        Column in .obs with cluster assignments.
    group_key : str
        Column in .obs with group labels.
    normalize : bool
        If True, report per-cluster proportions instead of counts.

    Returns
    -------
    pd.DataFrame
        Clusters as rows (numeric order where possible), groups as columns.
    """
    for col in (cluster_key, group_key):
        if col not in adata.obs.columns:
            raise ValueError(f"Column '{col}' not found in adata.obs")

    ct = pd.crosstab(
        adata.obs[cluster_key],
        adata.obs[group_key],
        normalize="index" if normalize else False,
    )

    try:
        ct = ct.loc[sorted(ct.index, key=lambda x: int(x))]
    except (ValueError, TypeError):
        ct = ct.sort_index()

    return ct
