import anndata as ad
import numpy as np
import pandas as pd
import pytest

from purinergic_sc.panel import PURINERGIC_PANEL, select_panel_genes, summarize_panel_expression


def _adata(genes, var=None):
    if var is None:
        var = pd.DataFrame(index=genes)
    return ad.AnnData(X=np.zeros((2, len(var)), dtype=np.float32), var=var)


def test_select_panel_genes_union_case_insensitive():
    genes = ["Gapdh", "P2ry1", "P2RX7", "Adora2a", "ADORA1", "Adora2b", "p2rx4", "Adora3", "Alb"]
    selected = select_panel_genes(_adata(genes))
    assert selected == ["P2ry1", "P2RX7", "ADORA1", "Adora2b", "p2rx4", "Adora3"]


def test_select_panel_genes_no_duplicates_for_overlapping_patterns():
    selected = select_panel_genes(_adata(["P2RX7", "P2RX4"]), patterns=["P2RX", "P2RX7", "p2rx"])
    assert selected == ["P2RX7", "P2RX4"]


def test_select_panel_genes_by_symbol_column():
    var = pd.DataFrame(
        {"symbol": ["P2RY12", "ACTB", "ADORA3"]},
        index=["ENSG1", "ENSG2", "ENSG3"],
    )
    selected = select_panel_genes(_adata(None, var=var), symbol_col="symbol")
    assert selected == ["ENSG1", "ENSG3"]

    with pytest.raises(ValueError, match="Symbol column"):
        select_panel_genes(_adata(None, var=var), symbol_col="gene_name")


def test_select_panel_genes_without_match_raises():
    with pytest.raises(ValueError, match="No genes match"):
        select_panel_genes(_adata(["Alb", "Apoa1"]), patterns=PURINERGIC_PANEL)


def test_summarize_panel_expression():
    x = np.array([[0, 2], [2, 0], [4, 0], [0, 0]], dtype=np.float32)
    obs = pd.DataFrame({"cell_type": ["A", "A", "B", "B"]}, index=list("abcd"))
    adata = ad.AnnData(X=x, obs=obs, var=pd.DataFrame(index=["P2rx7", "Adora1"]))

    summary = summarize_panel_expression(adata, ["P2rx7", "Adora1"], groupby="cell_type")
    row = summary[summary["group"] == "A"].loc["P2rx7"]
    assert row["mean_expression"] == pytest.approx(1.0)
    assert row["fraction_expressing"] == pytest.approx(0.5)
    assert row["n_cells"] == 2
    row = summary[summary["group"] == "B"].loc["Adora1"]
    assert row["fraction_expressing"] == 0
    assert len(summary) == 4

    with pytest.raises(ValueError, match="not found"):
        summarize_panel_expression(adata, ["P2rx7"], groupby="cluster")
