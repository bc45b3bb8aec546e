import matplotlib

matplotlib.use("Agg")

import anndata as ad
import numpy as np
import pandas as pd
import pytest
from scipy import sparse


@pytest.fixture
def toy_qc_adata() -> ad.AnnData:
    """10 cells x 5 genes; cell c9 detects a single gene."""
    genes = ["Gene1", "Gene2", "Gene3", "Gene4", "mt-Co1"]
    x = np.zeros((10, 5), dtype=np.float32)
    x[:9, :3] = 5
    x[:9, 4] = 1
    x[9, 0] = 5
    obs = pd.DataFrame(index=[f"CTRL1_c{i}" for i in range(10)])
    var = pd.DataFrame(index=genes)
    return ad.AnnData(X=sparse.csr_matrix(x), obs=obs, var=var)


def make_two_population_counts(
    n_per_group: int = 40,
    n_background: int = 40,
    seed: int = 0,
) -> pd.DataFrame:
    """
    Genes x cells Poisson counts with two well separated populations.

    Cell names carry a CTRL1_/TREAT1_ sample prefix (half of each
    population), gene names include liver zonation markers, purinergic
    receptors and mitochondrial genes.
    """
    rng = np.random.default_rng(seed)
    marker_a = [f"MarkerA{i}" for i in range(15)]
    marker_b = [f"MarkerB{i}" for i in range(15)]
    special = ["Arg1", "Cyp2e1", "P2rx4", "P2rx7", "P2ry1", "Adora1", "Adora2a", "mt-Co1", "mt-Nd1"]
    background = [f"Gene{i}" for i in range(n_background)]
    genes = marker_a + marker_b + special + background

    n_cells = 2 * n_per_group
    means = np.full((len(genes), n_cells), 1.0)
    means[: len(marker_a), :n_per_group] = 12.0
    means[len(marker_a) : len(marker_a) + len(marker_b), n_per_group:] = 12.0
    counts = rng.poisson(means).astype(int)

    cells = []
    for i in range(n_cells):
        sample = "CTRL1" if i % 2 == 0 else "TREAT1"
        cells.append(f"{sample}_cell{i}")

    return pd.DataFrame(counts, index=genes, columns=cells)


@pytest.fixture
def two_population_counts() -> pd.DataFrame:
    return make_two_population_counts()


@pytest.fixture
def embedded_adata() -> ad.AnnData:
    """Two separated blobs with a PCA-like embedding and cluster labels."""
    rng = np.random.default_rng(1)
    n = 30
    pcs = np.vstack([rng.normal(0, 0.3, (n, 5)), rng.normal(5, 0.3, (n, 5))])
    genes = ["P2rx7", "P2ry1", "Adora3", "Gapdh"]
    x = rng.poisson(2, (2 * n, len(genes))).astype(np.float32)
    obs = pd.DataFrame(
        {
            "cell_type": pd.Categorical(["A"] * n + ["B"] * n),
            "group": pd.Categorical(["control", "treated"] * n),
        },
        index=[f"cell{i}" for i in range(2 * n)],
    )
    adata = ad.AnnData(X=x, obs=obs, var=pd.DataFrame(index=genes))
    adata.obsm["X_pca"] = pcs
    adata.obsm["X_umap"] = pcs[:, :2]
    return adata
