import numpy as np
import pytest

from purinergic_sc.clustering import compute_neighbors_and_umap, run_leiden_clustering, run_tsne
from purinergic_sc.evaluation import compute_cluster_silhouette, summarize_cluster_composition


def test_neighbors_leiden_umap_tsne(embedded_adata):
    compute_neighbors_and_umap(embedded_adata, n_pcs=5, n_neighbors=10)
    keys = run_leiden_clustering(embedded_adata, resolutions=[0.5, 1.0])
    run_tsne(embedded_adata, n_pcs=5, perplexity=30)

    assert keys == ["leiden_0.5", "leiden_1.0"]
    assert embedded_adata.obs["leiden_0.5"].nunique() >= 2
    assert embedded_adata.obsm["X_umap"].shape == (60, 2)
    assert embedded_adata.obsm["X_tsne"].shape == (60, 2)

    # The two blobs never share a cluster
    ct = summarize_cluster_composition(embedded_adata, "leiden_0.5", "cell_type")
    assert ((ct > 0).sum(axis=1) == 1).all()


def test_leiden_requires_neighbor_graph(embedded_adata):
    with pytest.raises(ValueError, match="Neighbor graph not found"):
        run_leiden_clustering(embedded_adata)


def test_missing_representation_raises(embedded_adata):
    with pytest.raises(ValueError, match="not found in adata.obsm"):
        compute_neighbors_and_umap(embedded_adata, use_rep="X_scVI")
    with pytest.raises(ValueError, match="not found in adata.obsm"):
        run_tsne(embedded_adata, use_rep="X_scVI")


def test_cluster_silhouette(embedded_adata):
    score = compute_cluster_silhouette(embedded_adata, "cell_type")
    assert score > 0.8
    score = compute_cluster_silhouette(embedded_adata, "cell_type", n_dims=2, sample_size=40)
    assert score > 0.8

    embedded_adata.obs["single"] = "a"
    assert np.isnan(compute_cluster_silhouette(embedded_adata, "single"))

    with pytest.raises(ValueError, match="Cluster key"):
        compute_cluster_silhouette(embedded_adata, "leiden")


def test_cluster_composition_counts(embedded_adata):
    ct = summarize_cluster_composition(embedded_adata, "cell_type", "group")
    assert ct.loc["A", "control"] == 15
    assert ct.loc["B", "treated"] == 15

    prop = summarize_cluster_composition(embedded_adata, "cell_type", "group", normalize=True)
    np.testing.assert_allclose(prop.sum(axis=1).to_numpy(), 1.0)
