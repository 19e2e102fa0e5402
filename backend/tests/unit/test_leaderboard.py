import csv
import io

import pytest

from enst.models.domain import TsvRecord, WorkUnitsMode
from enst.services.leaderboard import CSV_COLUMNS, EnstLeaderboard, summary_stats

T0 = 1_700_000_100_000_000
W = 300_000_000


def _rec(site, energy, work, i=0, **kw):
    return TsvRecord(
        ts_start=T0 + i * W,
        ts_end=T0 + (i + 1) * W,
        site_id=site,
        energy_j=energy,
        work_units=work,
        work_units_mode=WorkUnitsMode.INFRA,
        **kw,
    )


def _board(*records, **kw):
    board = EnstLeaderboard(**kw)
    for r in records:
        board.add_record(r)
    return board


def test_ranking_descending_by_enst():
    board = _board(_rec("slow", 1000.0, 100.0), _rec("fast", 1000.0, 500.0))
    entries = board.get_leaderboard()
    assert [e.site_id for e in entries] == ["fast", "slow"]
    assert entries[0].enst_units_per_j == pytest.approx(0.5)
    assert entries[1].enst_units_per_j == pytest.approx(0.1)


def test_ties_keep_insertion_order():
    board = _board(_rec("first", 1000.0, 100.0), _rec("second", 2000.0, 200.0), _rec("third", 10.0, 1.0))
    assert [e.site_id for e in board.get_leaderboard()] == ["first", "second", "third"]


def test_entry_aggregates_per_site_and_cluster():
    board = _board(
        _rec("a", 1000.0, 100.0, 0, pue=1.1, thermal_headroom_w=100.0, price_usd_per_mwh=40.0, data_source="x"),
        _rec("a", 3000.0, 300.0, 1, pue=1.3, grid_stress_index=0.5, price_usd_per_mwh=60.0, data_source="y"),
        _rec("a", 1000.0, 100.0, 0, cluster_id="c2"),
    )
    entries = {(e.site_id, e.cluster_id): e for e in board.get_leaderboard()}
    assert set(entries) == {("a", "default"), ("a", "c2")}

    e = entries[("a", "default")]
    assert e.energy_j == pytest.approx(4000.0)
    assert e.work_units == pytest.approx(400.0)
    assert e.window_start == T0
    assert e.window_end == T0 + 2 * W
    assert e.pue == pytest.approx(1.2)
    assert e.thermal_headroom_w == pytest.approx(100.0)
    assert e.grid_stress_index == pytest.approx(0.5)
    assert e.price_usd_per_mwh == pytest.approx(55.0)
    assert e.cost_usd == pytest.approx(4000.0 / 3.6e9 * 55.0)
    assert e.notes == "data_source=x,y"
    assert e.work_units_mode == "infra"

    c2 = entries[("a", "c2")]
    assert c2.pue is None
    assert c2.price_usd_per_mwh == pytest.approx(50.0)
    assert c2.notes == "missing_price_defaulted"


def test_no_energy_ranks_as_zero():
    board = _board(_rec("dark", None, 100.0), _rec("lit", 100.0, 1.0))
    entries = board.get_leaderboard()
    assert entries[-1].site_id == "dark"
    assert entries[-1].enst_units_per_j == 0.0
    assert entries[-1].price_usd_per_mwh == pytest.approx(50.0)


def test_to_csv_format():
    board = _board(
        _rec("a", 1234.5678, 100.0, pue=1.23456, grid_stress_index=0.123456, price_usd_per_mwh=45.0),
        _rec("b", 1000.0, 10.0, data_source="synthetic"),
        default_price_usd_per_mwh=50.0,
    )
    text = board.to_csv()
    lines = text.split("\n")
    assert lines[0] == ",".join(CSV_COLUMNS)
    assert len(lines) == 3

    rows = list(csv.DictReader(io.StringIO(text)))
    first = rows[0]
    assert first["site_id"] == "a"
    assert first["cluster_id"] == "default"
    assert first["energy_j"] == "1234.57"
    assert first["work_units"] == "100.00"
    assert first["enst_units_per_j"] == f"{100.0 / 1234.5678:.6f}"
    assert first["pue"] == "1.235"
    assert first["thermal_headroom_w"] == ""
    assert first["grid_stress_index"] == "0.1235"
    assert first["price_usd_per_mwh"] == "45.00"
    assert first["notes"] == ""

    assert rows[1]["notes"] == "missing_price_defaulted;data_source=synthetic"


def test_summary_stats():
    board = _board(
        _rec("a", 1000.0, 100.0),
        _rec("b", 1000.0, 500.0),
        _rec("c", 1000.0, 300.0),
        _rec("d", 0.0, 10.0),
    )
    s = summary_stats(board)
    assert s.site_count == 4
    assert s.total_energy_j == pytest.approx(3000.0)
    assert s.total_work_units == pytest.approx(910.0)
    assert s.global_enst == pytest.approx(910.0 / 3000.0)
    assert s.min_enst == pytest.approx(0.1)
    assert s.max_enst == pytest.approx(0.5)
    assert s.median_enst == pytest.approx(0.3)
    assert s.p90_enst == pytest.approx(0.5)

    assert summary_stats(board.get_leaderboard()) == s


def test_summary_stats_empty():
    s = summary_stats(EnstLeaderboard())
    assert s.site_count == 0
    assert s.global_enst == 0.0
