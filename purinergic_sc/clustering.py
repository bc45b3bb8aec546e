"""
Neighbor graph, Leiden clustering and 2-D embeddings (UMAP, t-SNE).
"""

import scanpy as sc
from anndata import AnnData
from typing import Optional, List, Sequence


def compute_neighbors_and_umap(
    adata: AnnData,
    n_pcs: Optional[int] = None,
    use_rep: str = "X_pca",
    n_neighbors: int = 20,
    metric: str = "euclidean",
    random_state: int = 0,
) -> None:
    """
    Build the cell neighbor graph and its UMAP embedding.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix.
    n_pcs : int, optional
        Number of leading dimensions of ``use_rep`` to use.
    use_rep : str
        Key in .obsm to use for neighbor computation.
    n_neighbors : int
        Number of neighbors for the graph, capped below the cell count.
    metric : str
        Distance metric ('euclidean', 'cosine', etc.).
    random_state : int
        Random seed.
    """
    if use_rep not in adata.obsm:
        raise ValueError(f"Embedding '{use_rep}' not found in adata.obsm")

    sc.pp.neighbors(
        adata,
        use_rep=use_rep,
        n_neighbors=min(n_neighbors, adata.n_obs - 1),
        metric=metric,
        n_pcs=n_pcs,
        random_state=random_state,
    )
    sc.tl.umap(adata, random_state=random_state)


def run_leiden_clustering(
    adata: AnnData,
    resolutions: Sequence[float] = (0.5,),
    key_prefix: str = "leiden",
    random_state: int = 0,
) -> List[str]:
    """
    Run Leiden clustering at one or more resolutions.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with neighbors computed.
    resolutions : sequence of float
        Resolution parameters.
    key_prefix : str
        Prefix for cluster column names in .obs.
    random_state : int
        Random seed.

    Returns
    -------
    list of str
        The .obs columns added, one per resolution.
    """
    if "neighbors" not in adata.uns:
        raise ValueError("Neighbor graph not found. Run compute_neighbors_and_umap() first.")

    keys = []
    for res in resolutions:
        key_added = f"{key_prefix}_{res}"
        sc.tl.leiden(
            adata,
            resolution=res,
            key_added=key_added,
            random_state=random_state,
            flavor="igraph",
            n_iterations=2,
            directed=False,
        )
        print(f"  Resolution {res}: {adata.obs[key_added].nunique()} clusters")
        keys.append(key_added)
    return keys


def run_tsne(
    adata: AnnData,
    n_pcs: Optional[int] = None,
    use_rep: str = "X_pca",
    perplexity: float = 30,
    random_state: int = 0,
) -> None:
    """
    Compute a t-SNE embedding into .obsm['X_tsne'].

    Perplexity is capped below a third of the cell count so that small
    datasets still embed.
    """
    if use_rep not in adata.obsm:
        raise ValueError(f"Embedding '{use_rep}' not found in adata.obsm")

    perplexity = min(perplexity, max(1.0, (adata.n_obs - 1) / 3))
    sc.tl.tsne(
        adata,
        n_pcs=n_pcs,
        use_rep=use_rep,
        perplexity=perplexity,
        random_state=random_state,
    )
