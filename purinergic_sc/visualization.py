"""
Visualization utilities for single-cell embeddings and gene panels.

Provides embedding grids, cluster plots, PCA elbow plots, QC violins and
group distribution bars. Figures are closed after saving.
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import scanpy as sc
from anndata import AnnData
from typing import Optional, List, Dict, Tuple, Union, Sequence
from pathlib import Path


def _save(fig: plt.Figure, save_path: Optional[Union[str, Path]], dpi: int) -> None:
    if save_path:
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=dpi, bbox_inches="tight")
        plt.close(fig)


def plot_embedding_grid(
    adata: AnnData,
    color_keys: Sequence[str],
    basis: Union[str, Sequence[str]] = "X_umap",
    ncols: int = 3,
    figsize: Optional[Tuple[float, float]] = None,
    titles: Optional[Sequence[str]] = None,
    layer: Optional[str] = None,
    save_path: Optional[Union[str, Path]] = None,
    palette: Optional[Dict[str, str]] = None,
    dpi: int = 150,
    **kwargs,
) -> plt.Figure:
    """
    Plot an embedding colored by multiple variables in a grid.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with the embedding in .obsm.
    color_keys : sequence of str
        Columns in .obs or var_names to color by.
    basis : str or sequence of str
        Key in .obsm for coordinates, either one for all panels or one per
        panel.
    ncols : int
        Number of columns in grid.
    figsize : tuple, optional
        Figure size. If None, auto-calculated.
    titles : sequence of str, optional
        Panel titles. Defaults to the color keys.
    layer : str, optional
        Layer used for gene expression colors.
    save_path : str, optional
        Path to save figure.
    palette : dict, optional
        Color palette mapping values to colors.
    dpi : int
        Resolution of the saved image.
    **kwargs
        Additional arguments passed to sc.pl.embedding.

    Returns
    -------
    matplotlib.figure.Figure
    """
    n_plots = len(color_keys)
    if n_plots == 0:
        raise ValueError("No color keys to plot")

    bases = [basis] * n_plots if isinstance(basis, str) else list(basis)
    if len(bases) != n_plots:
        raise ValueError("basis must be a single key or one key per color key")
    if titles is None:
        titles = list(color_keys)

    ncols = min(ncols, n_plots)
    nrows = int(np.ceil(n_plots / ncols))

    if figsize is None:
        figsize = (4 * ncols, 4 * nrows)

    fig, axes = plt.subplots(nrows, ncols, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for i, color in enumerate(color_keys):
        sc.pl.embedding(
            adata,
            basis=bases[i],
            color=color,
            layer=layer if color in adata.var_names else None,
            ax=axes[i],
            show=False,
            palette=palette,
            title=titles[i],
            **kwargs,
        )

    # Hide unused axes
    for i in range(n_plots, len(axes)):
        axes[i].axis("off")

    fig.tight_layout()
    _save(fig, save_path, dpi)

    return fig


def plot_cluster_embedding(
    adata: AnnData,
    cluster_key: str,
    basis: str = "X_umap",
    legend_loc: str = "right margin",
    figsize: Tuple[float, float] = (6, 6),
    save_path: Optional[Union[str, Path]] = None,
    dpi: int = 150,
) -> plt.Figure:
    """
    Plot an embedding colored by cluster labels.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix.
    cluster_key : str
        Column in .obs with cluster labels.
    basis : str
        Key in .obsm for coordinates.
    legend_loc : str
        'right margin' or 'on data' (labels drawn at cluster centroids).
    figsize : tuple
        Figure size.
    save_path : str, optional
        Path to save figure.
    dpi : int
        Resolution of the saved image.

    Returns
    -------
    matplotlib.figure.Figure
    """
    if cluster_key not in adata.obs.columns:
        raise ValueError(f"Cluster key '{cluster_key}' not found in adata.obs")

    fig, ax = plt.subplots(figsize=figsize)
    sc.pl.embedding(
        adata,
        basis=basis,
        color=cluster_key,
        legend_loc=legend_loc,
        legend_fontsize=8 if legend_loc == "on data" else None,
        ax=ax,
        show=False,
        title=cluster_key,
    )
    fig.tight_layout()
    _save(fig, save_path, dpi)

    return fig


def plot_elbow(
    adata: AnnData,
    n_pcs_selected: Optional[int] = None,
    figsize: Tuple[float, float] = (6, 4),
    save_path: Optional[Union[str, Path]] = None,
    dpi: int = 150,
) -> plt.Figure:
    """
    Plot explained variance per principal component.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with PCA computed.
    n_pcs_selected : int, optional
        If given, mark the chosen number of PCs.
    figsize : tuple
        Figure size.
    save_path : str, optional
        Path to save figure.
    dpi : int
        Resolution of the saved image.

    Returns
    -------
    matplotlib.figure.Figure
    """
    pct = np.asarray(adata.uns["pca"]["variance_ratio"]) * 100
    pcs = np.arange(1, len(pct) + 1)

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(pcs, pct, "o-", color="black", markersize=3)
    if n_pcs_selected is not None:
        ax.axvline(n_pcs_selected, color="#E41A1C", linestyle="--", label=f"{n_pcs_selected} PCs")
        ax.legend()
    ax.set_xlabel("PC")
    ax.set_ylabel("Variance explained (%)")
    ax.set_title("Elbow plot")

    fig.tight_layout()
    _save(fig, save_path, dpi)

    return fig


def plot_qc_violin(
    adata: AnnData,
    keys: Sequence[str] = ("n_genes_by_counts", "total_counts", "pct_counts_mt"),
    groupby: Optional[str] = None,
    figsize: Optional[Tuple[float, float]] = None,
    save_path: Optional[Union[str, Path]] = None,
    dpi: int = 150,
) -> plt.Figure:
    """
    Violin plots of per-cell QC metrics.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with QC metrics in .obs.
    keys : sequence of str
        QC columns to plot, one panel each.
    groupby : str, optional
        Column in .obs to split violins by.
    figsize : tuple, optional
        Figure size.
    save_path : str, optional
        Path to save figure.
    dpi : int
        Resolution of the saved image.

    Returns
    -------
    matplotlib.figure.Figure
    """
    missing = [k for k in keys if k not in adata.obs.columns]
    if missing:
        raise ValueError(f"QC metrics not found in adata.obs: {missing}")

    if figsize is None:
        figsize = (4 * len(keys), 4)

    fig, axes = plt.subplots(1, len(keys), figsize=figsize, squeeze=False)
    for ax, key in zip(axes[0], keys):
        sc.pl.violin(adata, key, groupby=groupby, jitter=0.4, ax=ax, show=False)
        ax.set_title(key)

    fig.tight_layout()
    _save(fig, save_path, dpi)

    return fig


def plot_group_distribution(
    composition: pd.DataFrame,
    cluster_key: str,
    group_key: str,
    normalize: bool = True,
    figsize: Tuple[float, float] = (10, 6),
    save_path: Optional[Union[str, Path]] = None,
    palette: Optional[Dict[str, str]] = None,
    dpi: int = 150,
) -> plt.Figure:
    """
    Plot group composition per cluster as stacked bar chart.

    Parameters
    ----------
    composition : pd.DataFrame
        Clusters x groups crosstab (see summarize_cluster_composition).
    cluster_key : str
        Name of the cluster column, used for labels.
    group_key : str
        Name of the group column, used for labels.
    normalize : bool
        If True, show proportions; else show counts.
    figsize : tuple
        Figure size.
    save_path : str, optional
        Path to save figure.
    palette : dict, optional
        Color palette for groups.
    dpi : int
        Resolution of the saved image.

    Returns
    -------
    matplotlib.figure.Figure
    """
    ct = composition
    if normalize:
        ct = ct.div(ct.sum(axis=1), axis=0)

    fig, ax = plt.subplots(figsize=figsize)

    if palette:
        colors = [palette.get(col, "#999999") for col in ct.columns]
        ct.plot(kind="bar", stacked=True, ax=ax, color=colors)
    else:
        ct.plot(kind="bar", stacked=True, ax=ax)

    ax.set_xlabel(cluster_key)
    ax.set_ylabel("Proportion" if normalize else "Count")
    ax.set_title(f"{group_key} composition per {cluster_key}")
    ax.legend(title=group_key, bbox_to_anchor=(1.02, 1), loc="upper left")

    fig.tight_layout()
    _save(fig, save_path, dpi)

    return fig
