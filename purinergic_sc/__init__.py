"""
Purinergic receptor analysis of single-cell RNA-seq data.

Reusable steps for quality control, normalization, clustering, embedding,
zonation, gene-panel extraction, differential expression and plotting of
adipose and liver datasets.
"""

from .io import (
    load_config,
    read_count_matrix,
    build_annotated_matrix,
    load_dataset,
    write_table,
)

from .preprocessing import (
    annotate_qc_metrics,
    filter_cells_by_qc,
    filter_genes_by_cells,
    store_raw_counts,
    normalize_and_log,
    find_hvgs,
    regress_and_scale,
    run_pca,
    estimate_elbow,
    standard_preprocess,
)

from .panel import (
    PURINERGIC_PANEL,
    select_panel_genes,
    summarize_panel_expression,
)

from .metadata import assign_sample_groups

from .zonation import (
    ZoneRule,
    rules_from_config,
    zonation_score,
    assign_zones,
)

from .clustering import (
    compute_neighbors_and_umap,
    run_leiden_clustering,
    run_tsne,
)

from .differential import differential_expression

from .evaluation import (
    compute_cluster_silhouette,
    summarize_cluster_composition,
)

from .visualization import (
    plot_embedding_grid,
    plot_cluster_embedding,
    plot_elbow,
    plot_qc_violin,
    plot_group_distribution,
)

__all__ = [
    # IO
    "load_config",
    "read_count_matrix",
    "build_annotated_matrix",
    "load_dataset",
    "write_table",
    # Preprocessing
    "annotate_qc_metrics",
    "filter_cells_by_qc",
    "filter_genes_by_cells",
    "store_raw_counts",
    "normalize_and_log",
    "find_hvgs",
    "regress_and_scale",
    "run_pca",
    "estimate_elbow",
    "standard_preprocess",
    # Panel
    "PURINERGIC_PANEL",
    "select_panel_genes",
    "summarize_panel_expression",
    # Metadata
    "assign_sample_groups",
    # Zonation
    "ZoneRule",
    "rules_from_config",
    "zonation_score",
    "assign_zones",
    # Clustering
    "compute_neighbors_and_umap",
    "run_leiden_clustering",
    "run_tsne",
    # Differential expression
    "differential_expression",
    # Evaluation
    "compute_cluster_silhouette",
    "summarize_cluster_composition",
    # Visualization
    "plot_embedding_grid",
    "plot_cluster_embedding",
    "plot_elbow",
    "plot_qc_violin",
    "plot_group_distribution",
]
