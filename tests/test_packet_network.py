import pytest

from aqt_sim.core.buffer import Buffer
from aqt_sim.core.errors import ConfigMismatch, ForwardingConflict, InvalidIndex
from aqt_sim.core.network import Network, construct_path, network_from_config, path_adjacency
from aqt_sim.core.packet import Packet


def test_packet_route_validation():
    with pytest.raises(ValueError):
        Packet(0, (1,), 1)
    with pytest.raises(ValueError):
        Packet(0, (0, 1, 2), 1, route_idx=2)


def test_packet_moves_along_route(factory):
    packet = factory.create_packet([0, 1, 2], injection_rd=3)
    assert packet.id == 0
    assert packet.current_buffer == 0
    assert packet.next_buffer == 1
    assert packet.previous_buffer is None
    assert packet.dist_to_go() == 2
    assert packet.age(5) == 2

    packet.advance()
    assert packet.should_be_absorbed()
    packet.advance()
    assert packet.is_absorbed()
    assert packet.current_buffer is None
    with pytest.raises(ValueError):
        packet.advance()


def test_packet_factory_ids_increase(factory):
    ids = [factory.create_packet([0, 1], 1).id for _ in range(4)]
    assert ids == [0, 1, 2, 3]
    assert factory.created == 4


def test_packet_equality_by_id(factory):
    packet = factory.create_packet([0, 1, 2], 1)
    same = Packet(packet.id, (0, 1, 2), 1, route_idx=1)
    assert packet == same
    assert len({packet, same}) == 1


def test_buffer_oldest_and_youngest(factory):
    buffer = Buffer(0)
    late = factory.create_packet([0, 1], 4)
    early = factory.create_packet([0, 1], 2)
    tie = factory.create_packet([0, 1], 2)
    for p in (late, early, tie):
        buffer.add_packet(p)

    assert buffer.load == 3
    assert buffer.oldest() is early
    assert buffer.youngest() is late
    assert buffer.remove_packet(early.id) is early
    assert buffer.oldest() is tie
    with pytest.raises(KeyError):
        buffer.remove_packet(early.id)


def test_construct_path():
    network = construct_path(4)
    assert network.num_buffers == 4
    assert network.is_path()
    assert [(l.index, l.source, l.target) for l in network.links()] == [(0, 0, 1), (1, 1, 2), (2, 2, 3)]
    assert network.sinks() == [3]
    assert network.sources() == [0]
    assert network.is_terminal(3)
    assert not network.is_terminal(2)
    assert network.to_config() == path_adjacency(4)

    with pytest.raises(ConfigMismatch):
        construct_path(1)


def test_network_from_config():
    assert network_from_config({"path": 5}).num_buffers == 5

    dag = network_from_config([[1, 2], [3], [3], []])
    assert not dag.is_path()
    assert dag.neighbors(0) == [1, 2]
    assert dag.route(0, 3) in ([0, 1, 3], [0, 2, 3])

    with pytest.raises(ConfigMismatch):
        network_from_config({"ring": 4})
    with pytest.raises(ConfigMismatch):
        network_from_config("path")


def test_add_link_rejects_bad_links():
    network = Network.from_adjacency([[1], []])
    with pytest.raises(ConfigMismatch):
        network.add_link(0, 1)
    with pytest.raises(ConfigMismatch):
        network.add_link(1, 1)
    with pytest.raises(InvalidIndex):
        network.add_link(0, 2)


def test_route_errors(path3):
    assert path3.route(0, 2) == [0, 1, 2]
    with pytest.raises(InvalidIndex):
        path3.route(2, 0)
    with pytest.raises(InvalidIndex):
        path3.route(1, 1)
    with pytest.raises(InvalidIndex):
        path3.route(0, 7)


def test_injection_route_covers_whole_path(path3):
    assert path3.injection_route(1, 2) == ([0, 1, 2], 1)
    assert path3.injection_route(0, 1) == ([0, 1], 0)
    with pytest.raises(InvalidIndex):
        path3.injection_route(2, 0)


def test_injection_route_off_path_is_shortest():
    network = network_from_config([[1, 2], [3], [3], []])
    assert network.injection_route(1, 3) == ([1, 3], 0)


def test_inject_checks_position(path3, factory):
    packet = factory.create_packet([0, 1, 2], 1)
    with pytest.raises(InvalidIndex):
        path3.inject(1, packet)
    path3.inject(0, packet)
    assert path3.loads() == [1, 0, 0]


def test_forward_and_absorb(path3, factory):
    packet = factory.create_packet([0, 1, 2], 1)
    path3.inject(0, packet)

    path3.begin_round()
    assert path3.forward(0, 1, packet.id) is None
    assert path3.loads() == [0, 1, 0]

    path3.begin_round()
    assert path3.forward(1, 2, packet.id) is packet
    assert packet.is_absorbed()
    assert path3.total_load() == 0


def test_forward_twice_in_one_round_conflicts(path3, factory):
    packet = factory.create_packet([0, 1, 2], 1)
    path3.inject(0, packet)
    path3.begin_round()
    path3.forward(0, 1, packet.id)
    with pytest.raises(ForwardingConflict):
        path3.forward(1, 2, packet.id)


def test_forward_errors(path3, factory):
    packet = factory.create_packet([0, 1, 2], 1)
    path3.inject(0, packet)
    path3.begin_round()

    with pytest.raises(ForwardingConflict):
        path3.forward(1, 2, packet.id)
    with pytest.raises(InvalidIndex):
        path3.forward(0, 2, packet.id)
    with pytest.raises(InvalidIndex):
        path3.forward(0, 5, packet.id)
    assert path3.loads() == [1, 0, 0]


def test_forward_backwards_one_step(factory):
    network = construct_path(4)
    packet = factory.create_packet([0, 1, 2, 3], 1, route_idx=1)
    network.inject(1, packet)
    network.begin_round()
    assert network.forward(1, 0, packet.id) is None
    assert packet.current_buffer == 0
    assert network.loads() == [1, 0, 0, 0]


def test_network_str_lists_packets(path3, factory):
    path3.inject(0, factory.create_packet([0, 1, 2], 1))
    lines = str(path3).splitlines()
    assert len(lines) == 3
    assert lines[0].startswith("0 -> 1: [Packet(id=0")
    assert lines[2] == "2 -> -: []"


def test_buffer_select_by_next_hop(factory):
    buffer = Buffer(0)
    up = factory.create_packet([0, 1, 3], 1)
    down = factory.create_packet([0, 2, 3], 2)
    buffer.add_packet(up)
    buffer.add_packet(down)
    assert buffer.packets_for(2) == [down]
    assert buffer.select(lambda p: p.injection_rd, next_hop=2) is down
    assert buffer.select(lambda p: p.injection_rd, next_hop=3) is None
