import pytest

from aqt_sim.core.network import construct_path
from aqt_sim.core.protocols import GreedyFIFO
from aqt_sim.core.recorders import BufferLoadRecorder
from aqt_sim.core.simulator import Simulation
from aqt_sim.core.thresholds import TimedThreshold
from aqt_sim.traffic.adversaries import SDPathRandomBurstyAdversary
from aqt_sim.utils.metrics import (
    buffer_load_matrix,
    load_csv_rows,
    max_window_excess,
    save_metrics_to_json,
    summarize_buffer_loads,
)
from aqt_sim.utils.visualization import plot_buffer_loads, plot_total_load


@pytest.mark.parametrize(
    "counts, rate, expected",
    [
        ([], 1, 0.0),
        ([1, 1, 1], 1, 0.0),
        ([3, 0, 0], 1, 2.0),
        ([0, 2, 2, 0, 3], 1, 3.0),
        ([2, 2], 0.5, 3.0),
    ],
)
def test_max_window_excess(counts, rate, expected):
    assert max_window_excess(counts, rate) == pytest.approx(expected)


def test_buffer_load_summary():
    rows = [(1, 0, 2), (1, 1, 0), (2, 0, 1), (2, 1, 3)]
    assert buffer_load_matrix(rows).tolist() == [[2, 0], [1, 3]]
    assert summarize_buffer_loads(rows) == {
        "rounds": 2,
        "max_load": 3,
        "max_total_load": 4,
        "mean_total_load": 3.0,
        "per_buffer_max": [2, 3],
    }
    assert summarize_buffer_loads([])["rounds"] == 0


def test_csv_rows_match_memory_rows(tmp_path):
    in_memory = BufferLoadRecorder()
    on_disk = BufferLoadRecorder()
    for recorder, out in ((in_memory, None), (on_disk, str(tmp_path))):
        Simulation(
            construct_path(5),
            GreedyFIFO(),
            SDPathRandomBurstyAdversary(2, seed=8),
            TimedThreshold(12),
            [recorder],
            out,
        ).run()

    rows = load_csv_rows(str(tmp_path / "buffer_load.csv"))
    assert rows[0] == {"rd": 1, "buffer": 0, "load": in_memory.rows[0][2]}
    assert summarize_buffer_loads(rows) == summarize_buffer_loads(in_memory.rows)


def test_save_metrics_to_json(tmp_path):
    target = tmp_path / "nested" / "metrics.json"
    save_metrics_to_json({"rounds": 3}, str(target))
    assert target.read_text().strip().startswith("{")


def test_plots_written(tmp_path):
    rows = [(rd, b, (rd + b) % 3) for rd in range(1, 21) for b in range(4)]
    plot_buffer_loads(rows, filename=str(tmp_path / "plots" / "loads.png"))
    plot_total_load(rows, filename=str(tmp_path / "plots" / "total.png"))
    assert (tmp_path / "plots" / "loads.png").stat().st_size > 0
    assert (tmp_path / "plots" / "total.png").stat().st_size > 0
