import json

import main


def write_config(tmp_path, simulations, **top):
    config = {"parallel": False, "simulations": simulations}
    config.update(top)
    path = tmp_path / "config.json"
    path.write_text("// generated for the test\n" + json.dumps(config, indent=2))
    return str(path)


def simulation(output_path, **adversary):
    return {
        "graph_adjacency": {"path": 4},
        "protocol": {"protocol_name": "greedy_lis"},
        "adversary": {"adversary_name": "sd_path_random_bursty", "sigma": 1, "seed": 3, **adversary},
        "threshold": {"threshold_name": "timed", "max_rds": 15},
        "recorders": [{"recorder_name": "buffer_load"}, {"recorder_name": "absorption"}],
        "output_path": output_path,
    }


def test_cli_success_with_plots_and_summary(tmp_path, capsys):
    out = tmp_path / "run"
    summary = tmp_path / "summary.csv"
    config = write_config(tmp_path, [simulation(str(out))])

    assert main.main([config, "--plot", "--summary", str(summary), "--log-level", "WARNING"]) == 0

    assert (out / "sim_config.json").exists()
    assert (out / "buffer_load.csv").exists()
    assert (out / "buffer_load.png").exists()
    assert (out / "total_load.png").exists()
    assert summary.read_text().splitlines()[0].startswith("Run,Status")
    assert "[0] succeeded" in capsys.readouterr().out


def test_cli_reports_failed_run(tmp_path, capsys):
    config = write_config(
        tmp_path,
        [simulation(str(tmp_path / "ok")), simulation(str(tmp_path / "bad"), sigma=-3)],
    )
    assert main.main([config, "--sequential"]) == 1
    out = capsys.readouterr().out
    assert "[0] succeeded" in out
    assert "[1] failed" in out


def test_cli_parallel_threads(tmp_path):
    config = write_config(
        tmp_path,
        [simulation(str(tmp_path / "a")), simulation(str(tmp_path / "a"))],
        use_processes=False,
    )
    assert main.main([config, "--parallel", "--workers", "2"]) == 0
    assert (tmp_path / "a" / "buffer_load.csv").exists()
    assert (tmp_path / "a_1" / "buffer_load.csv").exists()


def test_cli_missing_config(tmp_path):
    assert main.main([str(tmp_path / "missing.json")]) == 2


def test_cli_malformed_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"simulations": [{}]}')
    assert main.main([str(path)]) == 2
