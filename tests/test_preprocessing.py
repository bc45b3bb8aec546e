import anndata as ad
import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from purinergic_sc.metadata import assign_sample_groups
from purinergic_sc.preprocessing import (
    annotate_qc_metrics,
    estimate_elbow,
    filter_cells_by_qc,
    normalize_and_log,
    standard_preprocess,
)
from purinergic_sc.io import build_annotated_matrix
from conftest import make_two_population_counts


def _qc_frame(n_genes, pct_mt):
    obs = pd.DataFrame(
        {"n_genes_by_counts": n_genes, "pct_counts_mt": pct_mt},
        index=[f"c{i}" for i in range(len(n_genes))],
    )
    return ad.AnnData(X=np.zeros((len(n_genes), 1), dtype=np.float32), obs=obs)


def test_annotate_qc_metrics_flags_mito_case_insensitive(toy_qc_adata):
    annotate_qc_metrics(toy_qc_adata, mt_prefix="MT-")
    assert toy_qc_adata.var["mt"].tolist() == [False, False, False, False, True]
    assert toy_qc_adata.obs["n_genes_by_counts"].tolist() == [4] * 9 + [1]
    assert toy_qc_adata.obs["pct_counts_mt"].iloc[0] == pytest.approx(100 / 16)
    assert toy_qc_adata.obs["pct_counts_mt"].iloc[9] == 0


def test_filter_cells_by_qc_boundaries():
    adata = _qc_frame(
        n_genes=[199, 200, 201, 2499, 2500, 2501, 1000, 1000],
        pct_mt=[0, 0, 0, 0, 0, 0, 4.99, 5.0],
    )
    filtered = filter_cells_by_qc(adata, min_genes=200, max_genes=2500, max_mt_pct=5)
    assert filtered.obs_names.tolist() == ["c1", "c2", "c3", "c6"]


def test_filter_cells_by_qc_drops_low_cell_from_downstream_metadata(toy_qc_adata):
    annotate_qc_metrics(toy_qc_adata)
    filtered = filter_cells_by_qc(toy_qc_adata, min_genes=2, max_genes=10, max_mt_pct=10)
    assert filtered.n_obs == 9
    assert "CTRL1_c9" not in filtered.obs_names

    assign_sample_groups(filtered, {"CTRL1": "control"})
    assert "CTRL1_c9" not in filtered.obs.index
    assert len(filtered.obs) == 9


def test_filter_cells_by_qc_errors():
    adata = _qc_frame(n_genes=[10, 20], pct_mt=[0, 0])
    with pytest.raises(ValueError, match="No cells pass QC"):
        filter_cells_by_qc(adata)

    bare = ad.AnnData(X=np.zeros((2, 1), dtype=np.float32))
    with pytest.raises(ValueError, match="QC metrics not found"):
        filter_cells_by_qc(bare)


def test_normalize_and_log_keeps_lognorm_layer(toy_qc_adata):
    normalize_and_log(toy_qc_adata, target_sum=1e4)
    assert "lognorm" in toy_qc_adata.layers
    row = toy_qc_adata.layers["lognorm"][0].toarray().ravel()
    assert row[0] == pytest.approx(np.log1p(1e4 * 5 / 16), rel=1e-5)


def test_estimate_elbow_combines_both_criteria():
    adata = ad.AnnData(X=np.zeros((3, 2), dtype=np.float32))
    adata.uns["pca"] = {
        "variance_ratio": np.array([0.4, 0.2, 0.1, 0.05, 0.03, 0.02, 0.01, 0.01, 0.01, 0.01])
    }
    # cumulative criterion -> 5, step criterion -> 7
    assert estimate_elbow(adata) == 5
    assert estimate_elbow(adata, max_pcs=3) == 3


def test_estimate_elbow_independent_of_variance_scale():
    ratios = np.array([0.4, 0.2, 0.1, 0.05, 0.03, 0.02, 0.01, 0.01, 0.01, 0.01])
    full = ad.AnnData(X=np.zeros((3, 2), dtype=np.float32))
    full.uns["pca"] = {"variance_ratio": ratios}
    # Same spectrum when the computed PCs hold only 5% of the total variance
    small = ad.AnnData(X=np.zeros((3, 2), dtype=np.float32))
    small.uns["pca"] = {"variance_ratio": ratios * 0.05}
    assert estimate_elbow(small) == estimate_elbow(full) == 5


def test_estimate_elbow_requires_pca():
    adata = ad.AnnData(X=np.zeros((3, 2), dtype=np.float32))
    with pytest.raises(ValueError, match="PCA not found"):
        estimate_elbow(adata)


def test_standard_preprocess_produces_pca():
    adata = build_annotated_matrix(make_two_population_counts(n_per_group=20))
    raw = adata.X.copy()
    standard_preprocess(adata, n_hvgs=30, n_pcs=10)
    assert adata.obsm["X_pca"].shape == (40, 10)
    assert adata.var["highly_variable"].sum() >= 10
    assert (adata.layers["counts"] != raw).nnz == 0
    # Scaled .X is centered, the lognorm layer is not
    lognorm = adata.layers["lognorm"].toarray()
    assert lognorm.min() >= 0
    scaled = adata.X.toarray() if sparse.issparse(adata.X) else np.asarray(adata.X)
    np.testing.assert_allclose(scaled.mean(axis=0), 0, atol=1e-4)


def test_standard_preprocess_rejects_unknown_covariate():
    adata = build_annotated_matrix(make_two_population_counts(n_per_group=20))
    with pytest.raises(ValueError, match="Regression covariates"):
        standard_preprocess(adata, n_hvgs=30, n_pcs=10, regress_vars=["total_counts"])
