"""
Tiny bias-free feedforward controller evolved by the genetic algorithm.
"""

import logging
from typing import NamedTuple

import torch

from .config import MUTATION_AMOUNT, MUTATION_CHANCE
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_device = torch.device("cpu")


def setup_device(name=None):
    """Pick the torch device networks are created on (CUDA when available)."""
    global _device
    if name is None:
        name = "cuda" if torch.cuda.is_available() else "cpu"
    _device = torch.device(name)
    logger.info("Networks run on %s", _device)
    return _device


def get_device():
    return _device


class NetworkStructure(NamedTuple):
    num_inputs: int
    num_hidden_nodes: int
    num_outputs: int

    @property
    def num_input_weights(self):
        return self.num_inputs * self.num_hidden_nodes

    @property
    def num_hidden_weights(self):
        return self.num_hidden_nodes * self.num_outputs


def _random_weights(count):
    return torch.rand(count, device=_device) * 2 - 1


def _pad(weights, count):
    padded = torch.zeros(count, device=_device)
    n = min(len(weights), count)
    padded[:n] = weights[:n]
    return padded


def _breed_layer(count, w0, w1, mutation_chance, mutation_amount):
    index = torch.arange(count, device=_device)
    r = torch.rand(count, device=_device)
    has0 = index < len(w0)
    has1 = index < len(w1)

    take0 = has0 & ((r < 0.5) | ~has1)
    take1 = ~take0 & has1 & (r >= 0.5)
    child = torch.where(
        take0, _pad(w0, count), torch.where(take1, _pad(w1, count), _random_weights(count))
    )

    mutate = torch.rand(count, device=_device) < mutation_chance
    delta = (torch.rand(count, device=_device) - 0.5) * mutation_amount
    return torch.where(mutate, torch.clamp(child + delta, -1, 1), child)


class Network:
    """
    Weights are two flat vectors, row-major by receiving unit:
    input_layer_weights[i * num_inputs + j] connects input j to hidden node i,
    hidden_layer_weights[i * num_hidden_nodes + j] connects hidden node j to
    output i. A network is never modified after construction.
    """

    def __init__(self, structure, input_layer_weights=None, hidden_layer_weights=None):
        self.structure = NetworkStructure(*structure)

        if input_layer_weights is None and hidden_layer_weights is None:
            input_layer_weights = _random_weights(self.structure.num_input_weights)
            hidden_layer_weights = _random_weights(self.structure.num_hidden_weights)
        elif input_layer_weights is None or hidden_layer_weights is None:
            raise ConfigurationError("Both weight layers must be provided together")

        input_layer_weights = torch.as_tensor(input_layer_weights, dtype=torch.float32, device=_device)
        hidden_layer_weights = torch.as_tensor(hidden_layer_weights, dtype=torch.float32, device=_device)
        if (
            input_layer_weights.numel() != self.structure.num_input_weights
            or hidden_layer_weights.numel() != self.structure.num_hidden_weights
        ):
            raise ConfigurationError(
                "Invalid network values provided - number of values doesn't match structure"
            )

        self._input_layer_weights = input_layer_weights.flatten().clone()
        self._hidden_layer_weights = hidden_layer_weights.flatten().clone()

    @property
    def input_layer_weights(self):
        return self._input_layer_weights.clone()

    @property
    def hidden_layer_weights(self):
        return self._hidden_layer_weights.clone()

    @property
    def num_inputs(self):
        return self.structure.num_inputs

    @property
    def num_outputs(self):
        return self.structure.num_outputs

    def weight_matrices(self):
        """(hidden x inputs, outputs x hidden) views for drawing."""
        s = self.structure
        return (
            self._input_layer_weights.view(s.num_hidden_nodes, s.num_inputs),
            self._hidden_layer_weights.view(s.num_outputs, s.num_hidden_nodes),
        )

    @torch.no_grad()
    def evaluate(self, inputs):
        """
        Return (hidden_layer, outputs) for one sensor reading.

        Outputs are |sum| clamped to [0, 1]: a negative raw sum maps to its
        magnitude, so 0 only comes out of an exact cancellation.
        """
        x = torch.as_tensor(inputs, dtype=torch.float32, device=_device)
        if x.numel() != self.structure.num_inputs:
            raise ConfigurationError(
                f"Expected {self.structure.num_inputs} inputs, got {x.numel()}"
            )
        w_in, w_hidden = self.weight_matrices()
        hidden = w_in @ x
        outputs = torch.clamp((w_hidden @ hidden).abs(), 0, 1)
        return hidden, outputs

    @classmethod
    def reshape(cls, structure, network):
        """Fit a network to a new structure, keeping the weight prefix."""
        structure = NetworkStructure(*structure)
        if structure == network.structure:
            return network

        def fit(weights, count):
            weights = weights[:count]
            return torch.cat([weights, _random_weights(count - len(weights))])

        return cls(
            structure,
            fit(network._input_layer_weights, structure.num_input_weights),
            fit(network._hidden_layer_weights, structure.num_hidden_weights),
        )

    @classmethod
    def from_parents(cls, structure, parents, mutation_chance=MUTATION_CHANCE,
                     mutation_amount=MUTATION_AMOUNT):
        """
        Uniform crossover of two parents followed by clamped mutation.

        Weight i comes from parent 0 or parent 1 with equal odds; when only one
        parent is long enough it is used, when neither is the weight is fresh.
        Each weight then mutates with probability mutation_chance by a uniform
        step in [-mutation_amount / 2, mutation_amount / 2], clamped to [-1, 1].
        """
        structure = NetworkStructure(*structure)
        p0, p1 = parents
        return cls(
            structure,
            _breed_layer(structure.num_input_weights, p0._input_layer_weights,
                         p1._input_layer_weights, mutation_chance, mutation_amount),
            _breed_layer(structure.num_hidden_weights, p0._hidden_layer_weights,
                         p1._hidden_layer_weights, mutation_chance, mutation_amount),
        )

    def __repr__(self):
        s = self.structure
        return f"Network({s.num_inputs}-{s.num_hidden_nodes}-{s.num_outputs})"
