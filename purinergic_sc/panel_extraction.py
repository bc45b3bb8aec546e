#!/usr/bin/env python
"""
Purinergic panel extraction across pre-clustered tissue datasets.

For each dataset: plot the stored embedding by cluster, select the purinergic
receptor panel, plot per-gene expression on the embedding and write a
per-cluster panel summary table. Datasets are loaded one at a time.

Usage:
    purinergic-panel --config configs/adipose_panel.yaml
    purinergic-panel --datasets human_adipocytes=data/human_adipocytes.h5ad --cluster-key cell_type --output results/panel/
"""

import argparse
import gc
import scanpy as sc
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .io import load_config, load_dataset, write_table
from .panel import PURINERGIC_PANEL, select_panel_genes, summarize_panel_expression
from .visualization import plot_cluster_embedding, plot_embedding_grid


def extract_panel_for_dataset(
    name: str,
    path: str,
    output_dir: Path,
    cluster_key: str,
    patterns: Sequence[str] = PURINERGIC_PANEL,
    basis: str = "X_umap",
    legend_loc: str = "right margin",
    symbol_col: Optional[str] = None,
    layer: Optional[str] = None,
    ncols: int = 4,
    dpi: int = 150,
) -> Dict[str, Path]:
    """
    Render the cluster embedding and the gene panel overlay for one dataset.

    Parameters
    ----------
    name : str
        Dataset identifier, used as the output file prefix.
    path : str
        Path to the dataset (.h5ad) with clusters and an embedding.
    output_dir : Path
        Output directory.
    cluster_key : str
        Column in .obs with cluster / cell type labels.
    patterns : sequence of str
        Gene panel name patterns.
    basis : str
        Key in .obsm with the stored 2-D embedding.
    legend_loc : str
        Legend layout for the cluster plot ('right margin' or 'on data').
    symbol_col : str, optional
        Column in .var with gene symbols used for matching and titles.
    layer : str, optional
        Layer with expression values for the overlays.
    ncols : int
        Columns in the panel overlay grid.
    dpi : int
        Image resolution.

    Returns
    -------
    dict
        Output file paths keyed by kind (clusters, panel, summary).
    """
    print(f"Loading {name} from {path}...")
    adata = load_dataset(path)
    print(f"  Shape: {adata.shape}")

    if basis not in adata.obsm and f"X_{basis}" not in adata.obsm:
        raise ValueError(f"Embedding '{basis}' not found in adata.obsm for {name}")

    outputs = {}

    outputs["clusters"] = output_dir / f"{name}_clusters.png"
    plot_cluster_embedding(
        adata,
        cluster_key=cluster_key,
        basis=basis,
        legend_loc=legend_loc,
        save_path=outputs["clusters"],
        dpi=dpi,
    )

    genes = select_panel_genes(adata, patterns=patterns, symbol_col=symbol_col)
    if symbol_col is not None:
        titles = adata.var.loc[genes, symbol_col].astype(str).tolist()
    else:
        titles = list(genes)
    print(f"  Panel genes ({len(genes)}): {', '.join(titles)}")

    outputs["panel"] = output_dir / f"{name}_panel.png"
    plot_embedding_grid(
        adata,
        color_keys=genes,
        basis=basis,
        ncols=ncols,
        titles=titles,
        layer=layer,
        save_path=outputs["panel"],
        dpi=dpi,
        color_map="viridis",
        use_raw=False,
    )

    summary = summarize_panel_expression(adata, genes, groupby=cluster_key, layer=layer)
    if symbol_col is not None:
        summary.insert(0, "symbol", adata.var.loc[summary.index, symbol_col].astype(str).to_numpy())
    outputs["summary"] = write_table(summary, output_dir / f"{name}_panel_summary.tsv")

    del adata
    gc.collect()

    return outputs


def run_panel_extraction(
    datasets: List[dict],
    output_dir: str,
    patterns: Sequence[str] = PURINERGIC_PANEL,
    basis: str = "X_umap",
    ncols: int = 4,
    dpi: int = 150,
) -> Dict[str, Dict[str, Path]]:
    """
    Run panel extraction over a list of datasets, one at a time.

    Parameters
    ----------
    datasets : list of dict
        Entries with keys name, path, cluster_key and optionally
        legend_loc, basis, symbol_col, layer.
    output_dir : str
        Output directory for images and tables.
    patterns : sequence of str
        Gene panel name patterns.
    basis : str
        Default embedding key when an entry does not set one.
    ncols : int
        Columns in the panel overlay grid.
    dpi : int
        Image resolution.

    Returns
    -------
    dict
        Output paths per dataset name.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    sc.settings.verbosity = 1

    results = {}
    for entry in datasets:
        missing = [k for k in ("name", "path", "cluster_key") if k not in entry]
        if missing:
            raise ValueError(f"Dataset entry missing {missing}: {entry}")

        print("=" * 60)
        print(f"Dataset: {entry['name']}")
        print("=" * 60)
        results[entry["name"]] = extract_panel_for_dataset(
            name=entry["name"],
            path=entry["path"],
            output_dir=output_path,
            cluster_key=entry["cluster_key"],
            patterns=patterns,
            basis=entry.get("basis", basis),
            legend_loc=entry.get("legend_loc", "right margin"),
            symbol_col=entry.get("symbol_col"),
            layer=entry.get("layer"),
            ncols=ncols,
            dpi=dpi,
        )
        for kind, path in results[entry["name"]].items():
            print(f"  {kind}: {path}")

    print("\nDone!")
    return results


def parse_dataset_args(values: List[str], cluster_key: str) -> List[dict]:
    """Parse ``name=path`` CLI values into dataset entries."""
    datasets = []
    for value in values:
        name, sep, path = value.partition("=")
        if not sep or not name or not path:
            raise ValueError(f"Expected NAME=PATH, got: {value}")
        datasets.append({"name": name, "path": path, "cluster_key": cluster_key})
    return datasets


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Plot the purinergic receptor panel on pre-clustered datasets"
    )
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument(
        "--datasets", nargs="+", type=str, help="Datasets as NAME=PATH (h5ad)"
    )
    parser.add_argument(
        "--cluster-key", type=str, default="cell_type", help="Cluster column in obs"
    )
    parser.add_argument("--basis", type=str, default="X_umap", help="Embedding key in obsm")
    parser.add_argument(
        "--patterns", nargs="+", type=str, default=list(PURINERGIC_PANEL),
        help="Gene name patterns (case-insensitive substrings)",
    )
    parser.add_argument(
        "--output", type=str, default="./results/panel/", help="Output directory"
    )
    parser.add_argument("--dpi", type=int, default=150, help="Image resolution")

    args = parser.parse_args(argv)

    if args.config:
        config = load_config(args.config)
        return run_panel_extraction(
            datasets=config["input"]["datasets"],
            output_dir=config["output"]["dir"],
            patterns=config.get("panel", {}).get("patterns", list(PURINERGIC_PANEL)),
            basis=config.get("plotting", {}).get("basis", "X_umap"),
            ncols=config.get("plotting", {}).get("ncols", 4),
            dpi=config.get("plotting", {}).get("dpi", 150),
        )

    if not args.datasets:
        parser.error("Either --config or --datasets required")
    return run_panel_extraction(
        datasets=parse_dataset_args(args.datasets, args.cluster_key),
        output_dir=args.output,
        patterns=args.patterns,
        basis=args.basis,
        dpi=args.dpi,
    )


if __name__ == "__main__":
    main()
