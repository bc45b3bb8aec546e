"""
Input/output helpers: YAML configs, count matrices, datasets and tables.
"""

import numpy as np
import pandas as pd
import scanpy as sc
import yaml
from anndata import AnnData
from pathlib import Path
from scipy import sparse
from typing import Optional, Union


def load_config(config_path: Union[str, Path]) -> dict:
    """Load configuration from YAML file."""
    with open(config_path) as f:
        config = yaml.safe_load(f)
    if not isinstance(config, dict):
        raise ValueError(f"Config must be a YAML mapping (dict): {config_path}")
    return config


def read_count_matrix(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a whitespace-delimited genes x cells count matrix.

    The first column holds gene names and the header row holds cell
    identifiers (the header may be one field shorter than the data rows).

    Parameters
    ----------
    path : str or Path
        Path to the text matrix.

    Returns
    -------
    pd.DataFrame
        Genes as index, cells as columns.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Count matrix not found: {path}")

    counts = pd.read_csv(path, sep=r"\s+")
    # Header as long as the rows: gene names are an ordinary first column
    if isinstance(counts.index, pd.RangeIndex):
        counts = counts.set_index(counts.columns[0])
        counts.index.name = None
    counts.index = counts.index.astype(str)
    counts.columns = counts.columns.astype(str)

    if counts.index.has_duplicates:
        dups = counts.index[counts.index.duplicated()].unique().tolist()
        raise ValueError(f"Duplicate gene names in {path}: {dups[:10]}")
    if counts.columns.has_duplicates:
        dups = counts.columns[counts.columns.duplicated()].unique().tolist()
        raise ValueError(f"Duplicate cell names in {path}: {dups[:10]}")

    return counts


def build_annotated_matrix(
    counts: pd.DataFrame,
    imputed: Optional[pd.DataFrame] = None,
    imputed_layer: str = "magic",
) -> AnnData:
    """
    Build a cells x genes AnnData from a genes x cells count table.

    Parameters
    ----------
    counts : pd.DataFrame
        Raw counts, genes as index and cells as columns.
    imputed : pd.DataFrame, optional
        Imputed expression in the same orientation. Aligned to ``counts`` by
        cell and gene name and stored in ``.layers[imputed_layer]``.
    imputed_layer : str
        Layer name for the imputed values.

    Returns
    -------
    AnnData
        Raw counts in ``.X`` (sparse float32).
    """
    adata = AnnData(
        X=sparse.csr_matrix(counts.T.to_numpy(dtype=np.float32)),
        obs=pd.DataFrame(index=counts.columns.copy()),
        var=pd.DataFrame(index=counts.index.copy()),
    )

    if imputed is not None:
        missing_cells = adata.obs_names.difference(imputed.columns)
        if len(missing_cells) > 0:
            raise KeyError(
                f"{len(missing_cells)} cells missing from imputed matrix, "
                f"e.g. {missing_cells[:5].tolist()}"
            )
        shared = adata.var_names.isin(imputed.index)
        aligned = imputed.reindex(index=adata.var_names, columns=adata.obs_names, fill_value=0.0)
        adata.layers[imputed_layer] = aligned.T.to_numpy(dtype=np.float32)
        adata.var[f"in_{imputed_layer}"] = shared

    return adata


def load_dataset(path: Union[str, Path]) -> AnnData:
    """Load a serialized per-tissue dataset (.h5ad)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")
    return sc.read_h5ad(path)


def write_table(df: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write a tab-delimited table with row identifiers as the first column."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep="\t", index=True)
    return path
