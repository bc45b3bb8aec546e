#!/usr/bin/env python
"""
Liver single-cell pipeline: QC, clustering, zonation and differential expression.

Reads a raw and an imputed (MAGIC) count matrix, builds one annotated
matrix, runs the standard preprocessing chain, derives treatment groups and
a zonation score, clusters, embeds (UMAP, t-SNE), plots the purinergic panel
and tests two clusters against each other.

Usage:
    purinergic-liver --config configs/liver.yaml
    purinergic-liver --counts raw_counts.txt --imputed magic_counts.txt --output results/liver/ --groups CTRL1=control TREAT1=treated
"""

import argparse
import numpy as np
import scanpy as sc
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .io import build_annotated_matrix, load_config, read_count_matrix, write_table
from .preprocessing import (
    annotate_qc_metrics,
    estimate_elbow,
    filter_cells_by_qc,
    filter_genes_by_cells,
    standard_preprocess,
)
from .metadata import assign_sample_groups
from .zonation import ZoneRule, assign_zones, rules_from_config, zonation_score
from .clustering import compute_neighbors_and_umap, run_leiden_clustering, run_tsne
from .differential import differential_expression
from .evaluation import compute_cluster_silhouette, summarize_cluster_composition
from .panel import PURINERGIC_PANEL, select_panel_genes, summarize_panel_expression
from .visualization import (
    plot_elbow,
    plot_embedding_grid,
    plot_group_distribution,
    plot_qc_violin,
)


DEFAULT_ZONE_RULES = [
    {"label": "periportal", "group": "control", "lower": 1.0},
    {"label": "pericentral", "group": "control", "upper": -1.0},
    {"label": "periportal", "group": "treated", "lower": 0.5},
    {"label": "pericentral", "group": "treated", "upper": -0.5},
]


def run_liver_pipeline(
    counts_path: str,
    imputed_path: str,
    output_dir: str,
    group_map: Optional[Dict[str, str]] = None,
    sample_pattern: str = r"^([^_]+)_",
    mt_prefix: str = "mt-",
    min_genes: int = 200,
    max_genes: int = 2500,
    max_mt_pct: float = 5.0,
    min_cells_per_gene: int = 3,
    target_sum: float = 1e4,
    n_hvgs: int = 2000,
    regress_vars: Optional[List[str]] = None,
    n_pcs: int = 50,
    n_pcs_use: Optional[int] = None,
    n_neighbors: int = 20,
    resolution: float = 0.5,
    tsne_perplexity: float = 30,
    zonation_genes: Sequence[str] = ("Arg1", "Cyp2e1"),
    zone_rules: Optional[List[ZoneRule]] = None,
    zone_default: str = "mid",
    patterns: Sequence[str] = PURINERGIC_PANEL,
    de_ident_1: str = "0",
    de_ident_2: str = "1",
    de_min_pct: float = 0.0,
    de_logfc_threshold: float = 0.0,
    de_method: str = "wilcoxon",
    random_state: int = 0,
    dpi: int = 150,
    save_h5ad: bool = True,
):
    """
    Run the full liver pipeline on one dataset.

    Parameters
    ----------
    counts_path : str
        Whitespace-delimited raw count matrix (genes x cells).
    imputed_path : str
        Whitespace-delimited imputed matrix (genes x cells).
    output_dir : str
        Output directory.
    group_map : dict
        Sample identifier to treatment group (e.g. CTRL1 -> control). Must
        cover every sample and every group named by the zone rules.
    sample_pattern : str
        Regex with one capture group extracting the sample from a cell name.
    mt_prefix : str
        Mitochondrial gene prefix.
    min_genes, max_genes, max_mt_pct : int, int, float
        QC thresholds (inclusive minimum, exclusive maxima).
    min_cells_per_gene : int
        Drop genes detected in fewer cells.
    target_sum : float
        Normalization scale factor.
    n_hvgs : int
        Number of highly variable genes.
    regress_vars : list of str, optional
        .obs covariates regressed out before scaling.
    n_pcs : int
        Number of principal components computed.
    n_pcs_use : int, optional
        PCs used for neighbors and embeddings. If None, estimated from the
        elbow of the explained variance.
    n_neighbors : int
        Number of neighbors for the graph.
    resolution : float
        Leiden resolution.
    tsne_perplexity : float
        t-SNE perplexity.
    zonation_genes : (str, str)
        Periportal and pericentral marker genes.
    zone_rules : list of ZoneRule, optional
        Ordered zone rules. Defaults to DEFAULT_ZONE_RULES.
    zone_default : str
        Label for cells matching no zone rule.
    patterns : sequence of str
        Gene panel name patterns.
    de_ident_1, de_ident_2 : str
        Clusters compared in the differential-expression test.
    de_min_pct, de_logfc_threshold : float
        DE filters (0 disables).
    de_method : str
        DE test.
    random_state : int
        Random seed.
    dpi : int
        Image resolution.
    save_h5ad : bool
        Whether to write the processed AnnData.

    Returns
    -------
    AnnData
        Processed dataset.
    """
    if not group_map:
        raise ValueError(
            "A sample -> treatment group map is required (metadata.groups or --groups)"
        )
    if zone_rules is None:
        zone_rules = rules_from_config(DEFAULT_ZONE_RULES)

    np.random.seed(random_state)
    sc.settings.verbosity = 2

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    figures = output_path / "figures"
    figures.mkdir(exist_ok=True)

    # =========================================================================
    # Load
    # =========================================================================
    print("=" * 60)
    print("Loading count matrices")
    print("=" * 60)
    print(f"Loading {counts_path}...")
    counts = read_count_matrix(counts_path)
    print(f"  Shape (genes x cells): {counts.shape}")
    print(f"Loading {imputed_path}...")
    imputed = read_count_matrix(imputed_path)
    print(f"  Shape (genes x cells): {imputed.shape}")

    adata = build_annotated_matrix(counts, imputed=imputed, imputed_layer="magic")
    del counts, imputed
    print(f"Annotated matrix: {adata.n_obs} cells x {adata.n_vars} genes")

    # =========================================================================
    # QC
    # =========================================================================
    print("\n" + "=" * 60)
    print("Quality control")
    print("=" * 60)
    annotate_qc_metrics(adata, mt_prefix=mt_prefix)
    print(f"  Mitochondrial genes: {int(adata.var['mt'].sum())}")
    plot_qc_violin(adata, save_path=figures / "qc_violin.png", dpi=dpi)

    n_before = adata.n_obs
    adata = filter_cells_by_qc(
        adata, min_genes=min_genes, max_genes=max_genes, max_mt_pct=max_mt_pct
    )
    filter_genes_by_cells(adata, min_cells=min_cells_per_gene)
    print(
        f"  Cells: {n_before} -> {adata.n_obs} "
        f"(min_genes={min_genes}, max_genes={max_genes}, max_mt_pct={max_mt_pct})"
    )
    print(f"  Genes: {adata.n_vars} (min_cells={min_cells_per_gene})")

    # =========================================================================
    # Normalize, HVGs, scale, PCA
    # =========================================================================
    print("\n" + "=" * 60)
    print("Preprocessing")
    print("=" * 60)
    standard_preprocess(
        adata,
        n_hvgs=n_hvgs,
        n_pcs=n_pcs,
        target_sum=target_sum,
        regress_vars=regress_vars,
        counts_layer="counts",
        lognorm_layer="lognorm",
        random_state=random_state,
    )

    # =========================================================================
    # Metadata: groups and zonation
    # =========================================================================
    print("\n" + "=" * 60)
    print("Cell metadata")
    print("=" * 60)
    assign_sample_groups(adata, group_map, pattern=sample_pattern)
    for group, count in adata.obs["group"].value_counts().items():
        print(f"  {group}: {count} cells")

    positive, negative = zonation_genes
    zonation_score(adata, positive=positive, negative=negative, layer="magic")
    assign_zones(adata, zone_rules, default=zone_default)
    print(f"  Zonation = {positive} - {negative} (imputed)")
    for zone, count in adata.obs["zone"].value_counts().items():
        print(f"  {zone}: {count} cells")

    # =========================================================================
    # Dimensionality, clustering, embeddings
    # =========================================================================
    print("\n" + "=" * 60)
    print("Clustering and embeddings")
    print("=" * 60)
    elbow = estimate_elbow(adata)
    if n_pcs_use is None:
        n_pcs_use = elbow
    n_pcs_use = min(n_pcs_use, adata.obsm["X_pca"].shape[1])
    print(f"  Elbow estimate: {elbow} PCs, using {n_pcs_use}")
    plot_elbow(adata, n_pcs_selected=n_pcs_use, save_path=figures / "elbow.png", dpi=dpi)

    compute_neighbors_and_umap(
        adata, n_pcs=n_pcs_use, n_neighbors=n_neighbors, random_state=random_state
    )
    (cluster_key,) = run_leiden_clustering(
        adata, resolutions=[resolution], random_state=random_state
    )
    run_tsne(adata, n_pcs=n_pcs_use, perplexity=tsne_perplexity, random_state=random_state)

    silhouette = compute_cluster_silhouette(adata, cluster_key, n_dims=n_pcs_use)
    print(f"  Silhouette ({cluster_key}, {n_pcs_use} PCs): {silhouette:.3f}")

    composition = summarize_cluster_composition(adata, cluster_key, "group")
    write_table(composition, output_path / "cluster_composition.tsv")
    plot_group_distribution(
        composition, cluster_key, "group", save_path=figures / "cluster_composition.png", dpi=dpi
    )

    # =========================================================================
    # Gene panel
    # =========================================================================
    print("\n" + "=" * 60)
    print("Purinergic panel")
    print("=" * 60)
    genes = select_panel_genes(adata, patterns=patterns)
    print(f"  Panel genes ({len(genes)}): {', '.join(genes)}")

    overview = [cluster_key, "group", "zone", "zonation"]
    plot_embedding_grid(
        adata,
        color_keys=overview + [cluster_key] + genes,
        basis=["X_umap"] * len(overview) + ["X_tsne"] + ["X_umap"] * len(genes),
        titles=[f"UMAP {k}" for k in overview] + [f"t-SNE {cluster_key}"] + genes,
        ncols=4,
        layer="magic",
        save_path=figures / "embedding_panel.png",
        dpi=dpi,
        use_raw=False,
    )
    summary = summarize_panel_expression(adata, genes, groupby=cluster_key, layer="lognorm")
    write_table(summary, output_path / "panel_summary.tsv")

    # =========================================================================
    # Differential expression
    # =========================================================================
    print("\n" + "=" * 60)
    print(f"Differential expression: {de_ident_1} vs {de_ident_2}")
    print("=" * 60)
    de = differential_expression(
        adata,
        groupby=cluster_key,
        ident_1=de_ident_1,
        ident_2=de_ident_2,
        min_pct=de_min_pct,
        logfc_threshold=de_logfc_threshold,
        method=de_method,
        layer="lognorm",
    )
    de_path = write_table(de, output_path / f"de_{cluster_key}_{de_ident_1}_vs_{de_ident_2}.tsv")
    print(f"  Genes tested: {len(de)}")
    print(f"  Table: {de_path}")

    # =========================================================================
    # Save
    # =========================================================================
    print(f"\nSaving to {output_path}...")
    write_table(adata.obs, output_path / "cell_metadata.tsv")
    if save_h5ad:
        adata.write_h5ad(output_path / "liver_processed.h5ad")

    print("\nDone!")
    return adata


def parse_group_args(values: List[str]) -> Dict[str, str]:
    """Parse ``SAMPLE=GROUP`` CLI values into a sample -> group map."""
    group_map = {}
    for value in values:
        sample, sep, group = value.partition("=")
        if not sep or not sample or not group:
            raise ValueError(f"Expected SAMPLE=GROUP, got: {value}")
        group_map[sample] = group
    return group_map


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Liver scRNA-seq pipeline with zonation and purinergic panel"
    )
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("--counts", type=str, help="Raw count matrix (genes x cells)")
    parser.add_argument("--imputed", type=str, help="Imputed count matrix (genes x cells)")
    parser.add_argument(
        "--groups", nargs="+", type=str,
        help="Treatment group per sample as SAMPLE=GROUP (e.g. CTRL1=control)",
    )
    parser.add_argument(
        "--output", type=str, default="./results/liver/", help="Output directory"
    )
    parser.add_argument("--min-genes", type=int, default=200, help="Min detected genes per cell")
    parser.add_argument("--max-genes", type=int, default=2500, help="Max detected genes per cell")
    parser.add_argument("--max-mt-pct", type=float, default=5.0, help="Max mitochondrial percent")
    parser.add_argument("--n-hvgs", type=int, default=2000, help="Number of HVGs")
    parser.add_argument("--n-pcs", type=int, default=50, help="Number of PCs")
    parser.add_argument(
        "--n-pcs-use", type=int, default=None, help="PCs for clustering (default: elbow)"
    )
    parser.add_argument("--resolution", type=float, default=0.5, help="Leiden resolution")
    parser.add_argument("--ident-1", type=str, default="0", help="First cluster for DE")
    parser.add_argument("--ident-2", type=str, default="1", help="Second cluster for DE")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--no-h5ad", action="store_true", help="Don't save processed h5ad")

    args = parser.parse_args(argv)

    if args.config:
        config = load_config(args.config)
        qc = config.get("qc", {})
        pre = config.get("preprocessing", {})
        clus = config.get("clustering", {})
        meta = config.get("metadata", {})
        zon = config.get("zonation", {})
        de = config.get("differential", {})
        return run_liver_pipeline(
            counts_path=config["input"]["counts"],
            imputed_path=config["input"]["imputed"],
            output_dir=config["output"]["dir"],
            group_map=meta.get("groups"),
            sample_pattern=meta.get("sample_pattern", r"^([^_]+)_"),
            mt_prefix=qc.get("mt_prefix", "mt-"),
            min_genes=qc.get("min_genes", 200),
            max_genes=qc.get("max_genes", 2500),
            max_mt_pct=qc.get("max_mt_pct", 5.0),
            min_cells_per_gene=qc.get("min_cells_per_gene", 3),
            target_sum=pre.get("target_sum", 1e4),
            n_hvgs=pre.get("n_top_genes", 2000),
            regress_vars=pre.get("regress_vars"),
            n_pcs=pre.get("n_pcs", 50),
            n_pcs_use=clus.get("n_pcs_use"),
            n_neighbors=clus.get("n_neighbors", 20),
            resolution=clus.get("resolution", 0.5),
            tsne_perplexity=clus.get("tsne_perplexity", 30),
            zonation_genes=(zon.get("positive", "Arg1"), zon.get("negative", "Cyp2e1")),
            zone_rules=rules_from_config(zon.get("rules", DEFAULT_ZONE_RULES)),
            zone_default=zon.get("default", "mid"),
            patterns=config.get("panel", {}).get("patterns", list(PURINERGIC_PANEL)),
            de_ident_1=str(de.get("ident_1", "0")),
            de_ident_2=str(de.get("ident_2", "1")),
            de_min_pct=de.get("min_pct", 0.0),
            de_logfc_threshold=de.get("logfc_threshold", 0.0),
            de_method=de.get("method", "wilcoxon"),
            random_state=config.get("seed", 0),
            dpi=config.get("plotting", {}).get("dpi", 150),
            save_h5ad=config["output"].get("save_h5ad", True),
        )

    if not args.counts or not args.imputed:
        parser.error("Either --config or both --counts and --imputed required")
    if not args.groups:
        parser.error("--groups SAMPLE=GROUP ... required with --counts/--imputed")
    return run_liver_pipeline(
        counts_path=args.counts,
        imputed_path=args.imputed,
        output_dir=args.output,
        group_map=parse_group_args(args.groups),
        min_genes=args.min_genes,
        max_genes=args.max_genes,
        max_mt_pct=args.max_mt_pct,
        n_hvgs=args.n_hvgs,
        n_pcs=args.n_pcs,
        n_pcs_use=args.n_pcs_use,
        resolution=args.resolution,
        de_ident_1=args.ident_1,
        de_ident_2=args.ident_2,
        random_state=args.seed,
        save_h5ad=not args.no_h5ad,
    )


if __name__ == "__main__":
    main()
