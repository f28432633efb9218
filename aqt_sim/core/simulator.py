"""Simulation driver for AQT simulation.

This module defines the Simulation class, which owns one network, adversary,
protocol, threshold and set of recorders and runs them round by round.
"""

import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional

import simpy

from aqt_sim.core.enums import SimulationState
from aqt_sim.core.errors import RecorderIOFailure
from aqt_sim.core.network import Network
from aqt_sim.core.packet import Packet, PacketFactory
from aqt_sim.core.protocols import Protocol
from aqt_sim.core.recorders import Recorder, RoundEvents
from aqt_sim.core.thresholds import Threshold
from aqt_sim.traffic.adversaries import Adversary

logger = logging.getLogger(__name__)

SIM_CONFIG_FILENAME = "sim_config.json"


class Simulation:
    """A single round-based AQT simulation run.

    The round loop is one SimPy process that advances the clock by one unit per
    round, so ``env.now`` is the round counter. Each round runs, in order:
    injection, pre-forward observation, scheduling and forwarding, end-of-round
    observation, ``round_end`` hooks. The threshold is checked before every
    round with the number of rounds completed so far.

    Attributes:
        env: SimPy environment providing the round clock.
        network: Network whose buffers hold the packets.
        protocol: Forwarding protocol.
        adversary: Injection adversary.
        threshold: Stopping condition.
        recorders: Observers of every round.
        output_path: Directory for the config echo and recorder tables, or None.
        state: Lifecycle state.
        factory: Source of packet ids for this run.
        metrics: Summary filled in when the run stops.
    """

    def __init__(
        self,
        network: Network,
        protocol: Protocol,
        adversary: Adversary,
        threshold: Threshold,
        recorders: Optional[List[Recorder]] = None,
        output_path: Optional[str] = None,
    ):
        """Initialize the simulation.

        Args:
            network: Network to simulate on.
            protocol: Forwarding protocol.
            adversary: Injection adversary.
            threshold: Stopping condition.
            recorders: Observers of every round.
            output_path: Directory for output files, or None to keep everything in memory.

        Raises:
            ConfigMismatch: If the protocol or adversary cannot run on the network.
            RecorderIOFailure: If the configuration echo cannot be written.
        """
        protocol.check_network(network)
        adversary.check_network(network)

        self.env = simpy.Environment()
        self.network = network
        self.protocol = protocol
        self.adversary = adversary
        self.threshold = threshold
        self.recorders: List[Recorder] = list(recorders or [])
        self.output_path = output_path
        self.state = SimulationState.INITIALIZED
        self.factory = PacketFactory()

        self.injected_count = 0
        self.absorbed_count = 0
        self.max_total_load = 0
        self.max_buffer_load = 0
        self.recorder_failures: Dict[str, str] = {}
        self._failed_recorders: List[Recorder] = []
        self.metrics: Dict[str, Any] = {}

        self.hooks: Dict[str, List[Callable[..., Any]]] = {
            "packet_injected": [],  # packet enters the network
            "packet_absorbed": [],  # packet reaches its destination
            "round_end": [],  # every recorder has observed the round
            "sim_end": [],  # the simulation stops
        }

        if output_path is not None:
            self.save_config()
        for recorder in self.recorders:
            recorder.set_output_path(output_path)

    @property
    def round(self) -> int:
        """Number of the current (or last completed) round."""
        return int(self.env.now)

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        """Register a callback function for a specific event type.

        Args:
            event_type: The type of event to register for.
            callback: The function to call when the event occurs.
        """
        if event_type not in self.hooks:
            raise ValueError(f"Unknown hook type: {event_type}")
        self.hooks[event_type].append(callback)

    def call_hooks(self, event_type: str, *args: Any, **kwargs: Any) -> None:
        """Call all registered callbacks for the given event type."""
        for callback in self.hooks[event_type]:
            callback(*args, **kwargs)

    def to_config(self) -> Dict[str, Any]:
        """Resolved configuration of this run."""
        return {
            "graph_adjacency": self.network.to_config(),
            "protocol": self.protocol.to_config(),
            "adversary": self.adversary.to_config(),
            "threshold": self.threshold.to_config(),
            "recorders": [r.to_config() for r in self.recorders],
            "output_path": self.output_path,
        }

    def save_config(self) -> None:
        """Write the resolved configuration to ``sim_config.json`` in the output path."""
        file_path = os.path.join(self.output_path, SIM_CONFIG_FILENAME)
        try:
            os.makedirs(self.output_path, exist_ok=True)
            with open(file_path, "w") as f:
                json.dump(self.to_config(), f, indent=2)
        except OSError as e:
            raise RecorderIOFailure(f"Failed to save simulation config to {file_path}: {e}") from e

    def inject(self, rd: int) -> List[Packet]:
        """Turn the adversary's injections for round ``rd`` into packets.

        Args:
            rd: Current round.

        Returns:
            The injected packets in id order.
        """
        injected = []
        for injection in self.adversary.get_injections(rd, self.network):
            route, route_idx = self.network.injection_route(injection.buffer_index, injection.destination)
            packet = self.factory.create_packet(route, rd, route_idx=route_idx, tag=injection.tag)
            self.network.inject(injection.buffer_index, packet)
            injected.append(packet)
            self.call_hooks("packet_injected", packet, rd)
        self.injected_count += len(injected)
        return injected

    def _active_recorders(self) -> List[Recorder]:
        return [r for r in self.recorders if not any(r is f for f in self._failed_recorders)]

    def _recorder_failed(self, recorder: Recorder, error: RecorderIOFailure) -> None:
        logger.warning("Recorder %s failed, dropping its output: %s", recorder.name, error)
        self._failed_recorders.append(recorder)
        self.recorder_failures[recorder.name] = str(error)

    def _observe(self, method: str, *args: Any) -> None:
        for recorder in self._active_recorders():
            try:
                getattr(recorder, method)(*args)
            except RecorderIOFailure as e:
                self._recorder_failed(recorder, e)

    def step(self, rd: int) -> RoundEvents:
        """Execute the body of round ``rd``.

        Args:
            rd: Round to execute.

        Returns:
            The events of the round.
        """
        self.network.begin_round()
        injected = self.inject(rd)
        self._observe("observe_injection", rd, self.network, injected)

        decisions, absorbed = self.protocol.forward_packets(self.network, rd)
        self.absorbed_count += len(absorbed)
        for packet in absorbed:
            self.call_hooks("packet_absorbed", packet, rd)

        events = RoundEvents(injected, decisions, absorbed)
        self._observe("observe", rd, self.network, events)

        loads = self.network.loads()
        self.max_total_load = max(self.max_total_load, sum(loads))
        self.max_buffer_load = max([self.max_buffer_load] + loads)
        logger.debug(
            "Round %d: injected %d, absorbed %d, queued %d",
            rd, len(injected), len(absorbed), sum(loads),
        )
        self.call_hooks("round_end", rd, self.network, events)
        return events

    def _round_loop(self):
        while not self.threshold.should_stop(self.round, self.network):
            yield self.env.timeout(1)
            self.step(self.round)

    def _close_recorders(self) -> None:
        self._observe("close")

    def calculate_metrics(self) -> Dict[str, Any]:
        """Summarize the run.

        Returns:
            Dictionary of run metrics.
        """
        self.metrics = {
            "rounds": self.round,
            "injected": self.injected_count,
            "absorbed": self.absorbed_count,
            "queued": self.network.total_load(),
            "max_total_load": self.max_total_load,
            "max_buffer_load": self.max_buffer_load,
            "protocol": self.protocol.config_name,
            "adversary": self.adversary.name,
            "recorder_failures": dict(self.recorder_failures),
        }
        return self.metrics

    def run(self) -> Dict[str, Any]:
        """Run rounds until the threshold stops the simulation.

        Returns:
            Dictionary of run metrics.

        Raises:
            RuntimeError: If the simulation has already been run.
            SimulationError: If a round violates the network contract.
        """
        if self.state is not SimulationState.INITIALIZED:
            raise RuntimeError("Simulation has already been run.")
        self.state = SimulationState.RUNNING
        logger.info(
            "Running %s against %s on %r (output: %s)",
            self.protocol, self.adversary, self.network, self.output_path,
        )

        try:
            self.env.process(self._round_loop())
            self.env.run()
        finally:
            self._close_recorders()

        self.state = SimulationState.STOPPED
        self.calculate_metrics()
        logger.info(
            "Stopped after %d rounds: %d injected, %d absorbed, %d queued",
            self.metrics["rounds"], self.injected_count, self.absorbed_count, self.metrics["queued"],
        )
        self.call_hooks("sim_end", self.metrics)
        return self.metrics
