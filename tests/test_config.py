import json

import pytest

from aqt_sim.config import Config, SimConfig, build_simulation, load_config, parse_config, strip_comments
from aqt_sim.core.errors import ConfigMismatch, InvalidParameter
from aqt_sim.core.protocols import OEDWithSwap
from aqt_sim.core.simulator import Simulation


def sim_mapping(**overrides):
    mapping = {
        "graph_adjacency": {"path": 5},
        "protocol": {"protocol_name": "oed_swap"},
        "adversary": {"adversary_name": "sd_path_random", "seed": 32},
        "threshold": {"threshold_name": "timed", "max_rds": 10},
        "recorders": [{"recorder_name": "buffer_load"}],
    }
    mapping.update(overrides)
    return mapping


def test_strip_comments():
    text = '// header\n{\n  # inline note\n  "a": 1\n    // indented\n}\n'
    assert json.loads(strip_comments(text)) == {"a": 1}


def test_parse_config_with_comments():
    text = "\n".join(
        [
            "// two runs",
            "{",
            '  "parallel": true,',
            '  "workers": 2,',
            "  # first",
            '  "simulations": [' + json.dumps(sim_mapping()) + "]",
            "}",
        ]
    )
    config = parse_config(text)
    assert config.parallel is True
    assert config.workers == 2
    assert config.use_processes is True
    assert len(config.simulations) == 1
    assert config.simulations[0].protocol == {"protocol_name": "oed_swap"}
    assert config.simulations[0].output_path is None


def test_load_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"simulations": [sim_mapping(output_path="out")]}))
    config = load_config(str(path))
    assert config.parallel is False
    assert config.simulations[0].output_path == "out"


@pytest.mark.parametrize(
    "text",
    [
        "{not json",
        "[]",
        '{"parallel": true}',
        '{"simulations": {}}',
        '{"simulations": [], "workers": 0}',
        '{"simulations": [{"protocol": {"protocol_name": "greedy_fifo"}}]}',
    ],
)
def test_parse_config_rejects_malformed(text):
    with pytest.raises(ConfigMismatch):
        parse_config(text)


def test_sim_config_round_trip():
    sim_config = SimConfig.from_mapping(sim_mapping(output_path="results/a"))
    assert SimConfig.from_mapping(sim_config.to_mapping()) == sim_config

    config = Config(simulations=[sim_config], parallel=True, workers=3)
    assert Config.from_mapping(config.to_mapping()) == config


def test_build_simulation(tmp_path):
    sim = build_simulation(sim_mapping(), output_path=str(tmp_path / "run"))
    assert isinstance(sim, Simulation)
    assert isinstance(sim.protocol, OEDWithSwap)
    assert sim.network.num_buffers == 5
    assert (tmp_path / "run" / "sim_config.json").exists()
    assert sim.run()["rounds"] == 10


def test_build_simulation_errors():
    with pytest.raises(ConfigMismatch):
        build_simulation(sim_mapping(protocol={"protocol_name": "sis"}))
    with pytest.raises(ConfigMismatch):
        build_simulation(sim_mapping(graph_adjacency=[[1, 2], [2], []]))
    with pytest.raises(InvalidParameter):
        build_simulation(
            sim_mapping(adversary={"adversary_name": "sd_path_random_bursty", "sigma": -1})
        )
