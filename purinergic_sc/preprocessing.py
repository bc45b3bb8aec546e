"""
Preprocessing utilities for single-cell expression matrices.

Quality control, normalization, variable-gene selection, scaling, PCA and
effective-dimensionality estimation following the standard scanpy workflow.
"""

import numpy as np
import scanpy as sc
from anndata import AnnData
from typing import Optional, List


def annotate_qc_metrics(adata: AnnData, mt_prefix: str = "mt-") -> None:
    """
    Flag mitochondrial genes and compute per-cell QC metrics.

    Adds ``var['mt']`` and the scanpy QC columns ``n_genes_by_counts``,
    ``total_counts`` and ``pct_counts_mt`` to ``.obs``.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with raw counts in .X.
    mt_prefix : str
        Gene-name prefix of mitochondrial genes, matched case-insensitively
        (``MT-`` in human, ``mt-`` in mouse).
    """
    adata.var["mt"] = np.asarray(adata.var_names.str.upper().str.startswith(mt_prefix.upper()))
    sc.pp.calculate_qc_metrics(
        adata,
        qc_vars=["mt"],
        percent_top=None,
        log1p=False,
        inplace=True,
    )


def filter_cells_by_qc(
    adata: AnnData,
    min_genes: int = 200,
    max_genes: int = 2500,
    max_mt_pct: float = 5.0,
) -> AnnData:
    """
    Keep cells passing all QC thresholds.

    A cell is kept when ``min_genes <= n_genes_by_counts < max_genes`` and
    ``pct_counts_mt < max_mt_pct``.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with QC metrics (see annotate_qc_metrics).
    min_genes : int
        Minimum number of detected genes (inclusive).
    max_genes : int
        Maximum number of detected genes (exclusive).
    max_mt_pct : float
        Maximum mitochondrial read percentage (exclusive).

    Returns
    -------
    AnnData
        Filtered copy.
    """
    missing = [c for c in ["n_genes_by_counts", "pct_counts_mt"] if c not in adata.obs.columns]
    if missing:
        raise ValueError(f"QC metrics not found in adata.obs: {missing}. Run annotate_qc_metrics() first.")

    n_genes = adata.obs["n_genes_by_counts"]
    keep = (
        (n_genes >= min_genes)
        & (n_genes < max_genes)
        & (adata.obs["pct_counts_mt"] < max_mt_pct)
    )
    if not keep.any():
        raise ValueError(
            f"No cells pass QC (min_genes={min_genes}, max_genes={max_genes}, "
            f"max_mt_pct={max_mt_pct}) out of {adata.n_obs} cells"
        )

    return adata[keep.to_numpy()].copy()


def filter_genes_by_cells(adata: AnnData, min_cells: int = 3) -> None:
    """Drop genes detected in fewer than ``min_cells`` cells (in place)."""
    sc.pp.filter_genes(adata, min_cells=min_cells)


def store_raw_counts(adata: AnnData, layer_name: str = "counts") -> None:
    """Keep a copy of the unnormalized counts in ``adata.layers[layer_name]``."""
    adata.layers[layer_name] = adata.X.copy()


def normalize_and_log(
    adata: AnnData,
    target_sum: float = 1e4,
    layer_added: Optional[str] = "lognorm",
    copy: bool = False,
) -> Optional[AnnData]:
    """
    Normalize counts and apply log1p transformation.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with raw counts.
    target_sum : float
        Target sum for normalization (default: 10,000).
    layer_added : str, optional
        If set, also keep the log-normalized values in this layer so they
        survive scaling of .X.
    copy : bool
        If True, return a copy instead of modifying in place.

    Returns
    -------
    AnnData or None
        If copy=True, returns the modified AnnData object.
    """
    if copy:
        adata = adata.copy()

    sc.pp.normalize_total(adata, target_sum=target_sum)
    sc.pp.log1p(adata)

    if layer_added is not None:
        adata.layers[layer_added] = adata.X.copy()

    if copy:
        return adata


def find_hvgs(adata: AnnData, n_top_genes: int = 2000, flavor: str = "seurat") -> int:
    """
    Flag highly variable genes in ``var['highly_variable']``.

    Dispersion-based selection on log-normalized values; the requested count
    is capped at the number of genes. Returns the number of genes flagged.
    """
    sc.pp.highly_variable_genes(
        adata,
        n_top_genes=min(n_top_genes, adata.n_vars),
        flavor=flavor,
    )
    return int(adata.var["highly_variable"].sum())


def regress_and_scale(
    adata: AnnData,
    regress_vars: Optional[List[str]] = None,
    max_value: float = 10,
) -> None:
    """
    Center and scale every gene, clipping at ``max_value``.

    Covariates listed in ``regress_vars`` (columns of .obs such as
    ``total_counts``) are regressed out before scaling.
    """
    if regress_vars:
        missing = [v for v in regress_vars if v not in adata.obs.columns]
        if missing:
            raise ValueError(f"Regression covariates not found in adata.obs: {missing}")
        sc.pp.regress_out(adata, regress_vars)

    sc.pp.scale(adata, max_value=max_value)


def run_pca(
    adata: AnnData,
    n_comps: int = 50,
    use_highly_variable: bool = True,
    svd_solver: str = "arpack",
    random_state: int = 0,
) -> None:
    """
    Run PCA on the data.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix (scaled).
    n_comps : int
        Number of principal components to compute. Capped below the smaller
        matrix dimension.
    use_highly_variable : bool
        Whether to use only highly variable genes.
    svd_solver : str
        SVD solver to use ('arpack', 'randomized', 'auto').
    random_state : int
        Random seed for reproducibility.
    """
    mask_var = None
    n_features = adata.n_vars
    if use_highly_variable:
        if "highly_variable" not in adata.var.columns:
            raise ValueError("Run find_hvgs() first to identify highly variable genes.")
        mask_var = "highly_variable"
        n_features = int(adata.var["highly_variable"].sum())

    n_comps = min(n_comps, adata.n_obs - 1, n_features - 1)
    sc.tl.pca(
        adata,
        n_comps=n_comps,
        mask_var=mask_var,
        svd_solver=svd_solver,
        random_state=random_state,
    )


def estimate_elbow(
    adata: AnnData,
    max_pcs: Optional[int] = None,
    cumulative_cutoff: float = 90.0,
    single_pc_cutoff: float = 5.0,
    step_cutoff: float = 0.1,
) -> int:
    """
    Estimate the number of informative principal components.

    The explained variance of each considered PC is expressed as a percentage
    of the variance of all considered PCs. Two elbow criteria are evaluated on
    these percentages and the smaller answer wins:

    1. the first PC at which the cumulative percentage exceeds
       ``cumulative_cutoff`` while the PC itself explains less than
       ``single_pc_cutoff``;
    2. one past the last PC whose drop in percentage to the following PC is
       larger than ``step_cutoff`` points.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with PCA computed (see run_pca).
    max_pcs : int, optional
        Only consider the first ``max_pcs`` components.
    cumulative_cutoff : float
        Cumulative explained-variance threshold (percent).
    single_pc_cutoff : float
        Per-component explained-variance threshold (percent).
    step_cutoff : float
        Minimum drop between consecutive components (percentage points).

    Returns
    -------
    int
        Number of PCs to use downstream (at least 2).
    """
    if "pca" not in adata.uns or "variance_ratio" not in adata.uns["pca"]:
        raise ValueError("PCA not found in adata.uns. Run run_pca() first.")

    ratio = np.asarray(adata.uns["pca"]["variance_ratio"], dtype=float)
    if max_pcs is not None:
        ratio = ratio[:max_pcs]
    n_total = len(ratio)

    pct = ratio / ratio.sum() * 100
    cumulative = np.cumsum(pct)
    candidates = np.where((cumulative > cumulative_cutoff) & (pct < single_pc_cutoff))[0]
    by_cumulative = int(candidates[0]) + 1 if len(candidates) else n_total

    steps = pct[:-1] - pct[1:]
    large = np.where(steps > step_cutoff)[0]
    by_step = int(large[-1]) + 2 if len(large) else n_total

    return max(2, min(by_cumulative, by_step, n_total))


def standard_preprocess(
    adata: AnnData,
    n_hvgs: int = 2000,
    n_pcs: int = 50,
    target_sum: float = 1e4,
    regress_vars: Optional[List[str]] = None,
    counts_layer: Optional[str] = "counts",
    lognorm_layer: Optional[str] = "lognorm",
    max_scale_value: float = 10,
    random_state: int = 0,
) -> None:
    """
    Take QC-filtered counts through normalization, HVGs, scaling and PCA.

    Raw counts and log-normalized values are stored in layers before .X is
    scaled, so expression plots and differential expression can read
    unscaled values afterwards.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with raw counts in .X. Modified in place.
    n_hvgs : int
        Number of highly variable genes used for PCA.
    n_pcs : int
        Number of principal components to compute.
    target_sum : float
        Per-cell normalization scale factor.
    regress_vars : list of str, optional
        .obs covariates regressed out before scaling.
    counts_layer : str, optional
        Layer receiving the raw counts. None skips it.
    lognorm_layer : str, optional
        Layer receiving the log-normalized values. None skips it.
    max_scale_value : float
        Clip value after scaling.
    random_state : int
        Random seed for PCA.
    """
    if counts_layer is not None:
        store_raw_counts(adata, layer_name=counts_layer)
    normalize_and_log(adata, target_sum=target_sum, layer_added=lognorm_layer)

    n_selected = find_hvgs(adata, n_top_genes=n_hvgs)
    print(f"  HVGs: {n_selected}")

    regress_and_scale(adata, regress_vars=regress_vars, max_value=max_scale_value)
    run_pca(adata, n_comps=n_pcs, random_state=random_state)
    print(f"  PCs computed: {adata.obsm['X_pca'].shape[1]}")
