"""
network.py
~~~~~~~~~~

Fully-connected feedforward network trained one example at a time with
backpropagation and plain stochastic gradient descent.

Weights and biases live in two flat contiguous buffers. Each stage (the
connections between two adjacent layers) is exposed as a numpy view
into the buffer, so ``weights[i][j, k]`` is the weight from neuron ``k``
of layer ``i`` to neuron ``j`` of layer ``i + 1``.
"""

import logging
import math
import numbers
import threading
from collections import deque
from typing import Any, Dict, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from nnsim.activations import Activation
from nnsim.errors import (
    InputSizeMismatch,
    InvalidLearningRate,
    InvalidState,
    InvalidTopology,
    NetworkError,
    TargetSizeMismatch,
)

logger = logging.getLogger(__name__)

DEFAULT_LEARNING_RATE = 0.1
TRAINING_POINT_CAPACITY = 100
GRADIENT_EPSILON = 1e-7

STATE_FIELDS = ('layers', 'weights', 'biases', 'activation', 'learningRate')


class TrainingPoint(NamedTuple):
    inputs: List[float]
    target: float


class TrainingPointLog:
    """
    Fixed-capacity ring buffer of the most recent training examples.

    Appending to a full log evicts the oldest point.
    """

    def __init__(self, capacity: int = TRAINING_POINT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._points: deque = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._points.maxlen

    def append(self, inputs: Sequence[float], target: float) -> None:
        self._points.append(TrainingPoint(list(inputs), float(target)))

    def clear(self) -> None:
        self._points.clear()

    def points(self) -> List[TrainingPoint]:
        """Return the logged points, oldest first."""
        return list(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[TrainingPoint]:
        return iter(list(self._points))


class _ParsedState(NamedTuple):
    layers: List[int]
    weights: List[np.ndarray]
    biases: List[np.ndarray]
    activation: Activation
    learning_rate: float


def _validate_topology(layers: Any) -> List[int]:
    if isinstance(layers, (str, bytes)) or not isinstance(layers, Sequence):
        raise InvalidTopology(f"layers must be a sequence of ints, got {layers!r}")
    if len(layers) < 2:
        raise InvalidTopology(
            f"Network needs at least 2 layers (input and output), got {len(layers)}"
        )
    for width in layers:
        if isinstance(width, bool) or not isinstance(width, numbers.Integral) or width < 1:
            raise InvalidTopology(f"Layer widths must be integers >= 1, got {list(layers)}")
    return [int(width) for width in layers]


def _validate_learning_rate(learning_rate: Any) -> float:
    if (isinstance(learning_rate, bool)
            or not isinstance(learning_rate, numbers.Real)
            or not math.isfinite(learning_rate)
            or learning_rate <= 0):
        raise InvalidLearningRate(
            f"Learning rate must be a finite positive number, got {learning_rate!r}"
        )
    return float(learning_rate)


def _as_vector(values: Any, expected: int, error_cls: type, label: str) -> np.ndarray:
    try:
        raw = np.asarray(values)
    except (TypeError, ValueError) as e:
        raise error_cls(f"{label} must be a sequence of numbers: {e}") from e
    if raw.dtype.kind not in 'iuf':
        raise error_cls(f"{label} must be a sequence of numbers, got dtype {raw.dtype}")
    vector = raw.astype(np.float64)
    if vector.ndim != 1 or vector.size != expected:
        raise error_cls(
            f"{label} size {vector.size if vector.ndim == 1 else vector.shape} "
            f"does not match network architecture (expected {expected})"
        )
    return vector


def _as_matrix(values: Any, shape: Tuple[int, ...], label: str) -> np.ndarray:
    try:
        raw = np.asarray(values)
    except (TypeError, ValueError) as e:
        raise InvalidState(f"{label} is not a regular numeric array: {e}") from e
    if raw.dtype.kind not in 'iuf' or raw.shape != shape:
        raise InvalidState(
            f"{label} must be a numeric array of shape {shape}, "
            f"got dtype {raw.dtype} and shape {raw.shape}"
        )
    matrix = raw.astype(np.float64)
    if not np.all(np.isfinite(matrix)):
        raise InvalidState(f"{label} contains non-finite values")
    return matrix


def _grid_axis(low: float, high: float, resolution: int) -> List[float]:
    return [low + (high - low) * step / resolution for step in range(resolution + 1)]


def _validate_resolution(resolution: Any) -> int:
    if isinstance(resolution, bool) or not isinstance(resolution, numbers.Integral) or resolution < 1:
        raise ValueError(f"resolution must be an integer >= 1, got {resolution!r}")
    return int(resolution)


class NeuralNetwork:
    """
    Dense multilayer perceptron.

    Example:
        >>> net = NeuralNetwork([2, 4, 3, 1], learning_rate=0.3)
        >>> error = net.train([0, 1], [1])
        >>> output = net.forward([0, 1])

    All public operations hold a per-instance lock, so a ``train`` call
    never interleaves with another call on the same network.
    """

    def __init__(
        self,
        layers: Sequence[int],
        learning_rate: float = DEFAULT_LEARNING_RATE,
        activation: Union[str, Activation] = Activation.SIGMOID,
        rng: Union[None, int, np.random.Generator] = None
    ):
        """
        Build a network and initialize its weights.

        Args:
            layers: Layer widths, input first and output last
            learning_rate: Gradient descent step size
            activation: Nonlinearity applied by every neuron
            rng: Seed or numpy Generator used for weight initialization

        Raises:
            InvalidTopology: If fewer than 2 layers or a width below 1
            InvalidLearningRate: If the learning rate is not positive
            UnsupportedActivation: If the activation is unknown
        """
        self.layers = _validate_topology(layers)
        self.learning_rate = _validate_learning_rate(learning_rate)
        self._activation = Activation.parse(activation)
        self._rng = np.random.default_rng(rng)
        self._lock = threading.RLock()
        self._training_points = TrainingPointLog()
        self._allocate()
        self._initialize()
        logger.debug(
            f"Created network {self.layers} with activation "
            f"{self._activation.value}, learning rate {self.learning_rate}"
        )

    def __repr__(self) -> str:
        return (
            f"NeuralNetwork(layers={self.layers}, "
            f"activation={self._activation.value!r}, "
            f"learning_rate={self.learning_rate})"
        )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _allocate(self) -> None:
        """Allocate flat weight and bias buffers and the per-stage views."""
        shapes = [
            (self.layers[i + 1], self.layers[i])
            for i in range(len(self.layers) - 1)
        ]
        self._weight_offsets = [0]
        self._bias_offsets = [0]
        for rows, cols in shapes:
            self._weight_offsets.append(self._weight_offsets[-1] + rows * cols)
            self._bias_offsets.append(self._bias_offsets[-1] + rows)

        self._weight_buffer = np.zeros(self._weight_offsets[-1], dtype=np.float64)
        self._bias_buffer = np.zeros(self._bias_offsets[-1], dtype=np.float64)

        self.weights: List[np.ndarray] = [
            self._weight_buffer[self._weight_offsets[i]:self._weight_offsets[i + 1]].reshape(shape)
            for i, shape in enumerate(shapes)
        ]
        self.biases: List[np.ndarray] = [
            self._bias_buffer[self._bias_offsets[i]:self._bias_offsets[i + 1]]
            for i in range(len(shapes))
        ]

    def _gaussian(self, shape: Tuple[int, int]) -> np.ndarray:
        """Standard normal samples via the Box-Muller transform."""
        # random() draws from [0, 1); flip it to (0, 1] so log() stays finite
        u1 = 1.0 - self._rng.random(shape)
        u2 = 1.0 - self._rng.random(shape)
        return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)

    def _initialize(self) -> None:
        for i, stage in enumerate(self.weights):
            std = math.sqrt(2.0 / (self.layers[i] + self.layers[i + 1]))
            stage[...] = self._gaussian(stage.shape) * std
        self._bias_buffer[...] = 0.0

    @property
    def num_stages(self) -> int:
        return len(self.layers) - 1

    @property
    def activation(self) -> Activation:
        return self._activation

    def weight(self, stage: int, dest: int, source: int) -> float:
        """Weight from ``source`` in layer ``stage`` to ``dest`` in layer ``stage + 1``."""
        with self._lock:
            return float(self.weights[stage][dest, source])

    def set_weight(self, stage: int, dest: int, source: int, value: float) -> None:
        with self._lock:
            self.weights[stage][dest, source] = value

    def bias(self, stage: int, dest: int) -> float:
        with self._lock:
            return float(self.biases[stage][dest])

    def set_bias(self, stage: int, dest: int, value: float) -> None:
        with self._lock:
            self.biases[stage][dest] = value

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_activation(self, kind: Union[str, Activation]) -> None:
        """
        Switch the activation used by subsequent forward and train calls.

        Weights are kept as they are.

        Raises:
            UnsupportedActivation: If ``kind`` is not sigmoid, tanh or relu
        """
        activation = Activation.parse(kind)
        with self._lock:
            self._activation = activation
        logger.debug(f"Activation set to {activation.value}")

    def set_learning_rate(self, learning_rate: float) -> None:
        learning_rate = _validate_learning_rate(learning_rate)
        with self._lock:
            self.learning_rate = learning_rate

    def reset(self) -> None:
        """Re-initialize weights and biases and clear the training-point log."""
        with self._lock:
            self._initialize()
            self._training_points.clear()
        logger.info(f"Reset network {self.layers}")

    # ------------------------------------------------------------------
    # Forward and backward passes
    # ------------------------------------------------------------------

    def _propagate(
        self, inputs: np.ndarray
    ) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        """
        Run every stage, keeping what backpropagation needs.

        Returns:
            tuple: (activations, derivatives) where activations[0] is the
            input and derivatives[i] is f'(z) of stage i
        """
        activations = [inputs]
        derivatives = []
        current = inputs
        for stage_weights, stage_biases in zip(self.weights, self.biases):
            z = stage_biases + stage_weights @ current
            current, derivative = self._activation.evaluate(z)
            activations.append(current)
            derivatives.append(derivative)
        return activations, derivatives

    def forward(self, inputs: Sequence[float]) -> List[float]:
        """
        Compute the network output for ``inputs`` without changing state.

        Raises:
            InputSizeMismatch: If ``len(inputs) != layers[0]``
        """
        with self._lock:
            x = _as_vector(inputs, self.layers[0], InputSizeMismatch, 'Input')
            activations, _ = self._propagate(x)
        return activations[-1].tolist()

    def train(self, inputs: Sequence[float], targets: Sequence[float]) -> float:
        """
        Apply one backpropagation and gradient descent step.

        Args:
            inputs: One input example, ``layers[0]`` values
            targets: Expected output, ``layers[-1]`` values

        Returns:
            float: Mean squared error between the outputs of this call's
            forward pass (before the update) and ``targets``

        Raises:
            InputSizeMismatch: If the input length is wrong
            TargetSizeMismatch: If the target length is wrong
        """
        with self._lock:
            x = _as_vector(inputs, self.layers[0], InputSizeMismatch, 'Input')
            t = _as_vector(targets, self.layers[-1], TargetSizeMismatch, 'Target')

            activations, derivatives = self._propagate(x)
            output_error = activations[-1] - t

            deltas: List[Optional[np.ndarray]] = [None] * self.num_stages
            deltas[-1] = output_error * derivatives[-1]
            for i in range(self.num_stages - 2, -1, -1):
                deltas[i] = derivatives[i] * (self.weights[i + 1].T @ deltas[i + 1])

            for i in range(self.num_stages):
                self.weights[i] -= self.learning_rate * np.outer(deltas[i], activations[i])
                self.biases[i] -= self.learning_rate * deltas[i]

            self._training_points.append(x.tolist(), t[0])

        return float(np.mean(output_error ** 2))

    def get_training_points(self) -> List[TrainingPoint]:
        """Most recent training examples (up to 100), oldest first."""
        with self._lock:
            return self._training_points.points()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def get_state(self) -> Dict[str, Any]:
        """
        Snapshot the network as plain JSON-ready data.

        The returned structure shares nothing with the live network.
        """
        with self._lock:
            return {
                'layers': list(self.layers),
                'weights': [stage.tolist() for stage in self.weights],
                'biases': [stage.tolist() for stage in self.biases],
                'activation': self._activation.value,
                'learningRate': self.learning_rate,
            }

    @staticmethod
    def _parse_state(state: Any) -> _ParsedState:
        if not isinstance(state, Mapping):
            raise InvalidState(f"State must be a mapping, got {type(state).__name__}")

        missing = [field for field in STATE_FIELDS if field not in state]
        if missing:
            raise InvalidState(f"State is missing field(s): {', '.join(missing)}")

        try:
            layers = _validate_topology(state['layers'])
            learning_rate = _validate_learning_rate(state['learningRate'])
            activation = Activation.parse(state['activation'])
        except NetworkError as e:
            raise InvalidState(str(e)) from e

        raw_weights, raw_biases = state['weights'], state['biases']
        stages = len(layers) - 1
        for label, raw in (('weights', raw_weights), ('biases', raw_biases)):
            if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)) or len(raw) != stages:
                raise InvalidState(f"{label} must be a list with {stages} stage(s)")

        weights = [
            _as_matrix(raw_weights[i], (layers[i + 1], layers[i]), f"weights[{i}]")
            for i in range(stages)
        ]
        biases = [
            _as_matrix(raw_biases[i], (layers[i + 1],), f"biases[{i}]")
            for i in range(stages)
        ]
        return _ParsedState(layers, weights, biases, activation, learning_rate)

    def _apply_state(self, parsed: _ParsedState) -> None:
        self.layers = list(parsed.layers)
        self._allocate()
        for stage, matrix in zip(self.weights, parsed.weights):
            stage[...] = matrix
        for stage, vector in zip(self.biases, parsed.biases):
            stage[...] = vector
        self.learning_rate = parsed.learning_rate
        self.set_activation(parsed.activation)
        self._training_points.clear()

    def load_state(self, state: Mapping[str, Any]) -> None:
        """
        Replace the whole network with a serialized state.

        The state is fully validated before anything is touched; a
        rejected state leaves the network as it was.

        Raises:
            InvalidState: If a field is missing or malformed
        """
        parsed = self._parse_state(state)
        with self._lock:
            self._apply_state(parsed)
        logger.info(
            f"Loaded state: layers={self.layers}, "
            f"activation={self._activation.value}, lr={self.learning_rate}"
        )

    @classmethod
    def from_state(cls, state: Mapping[str, Any]) -> 'NeuralNetwork':
        """Build a new network from a serialized state."""
        parsed = cls._parse_state(state)
        network = cls(parsed.layers, parsed.learning_rate, parsed.activation)
        network._apply_state(parsed)
        return network

    # ------------------------------------------------------------------
    # Sampling for visualization
    # ------------------------------------------------------------------

    def predict_point(self, x: float, y: float) -> float:
        """First output for the 2-D input ``(x, y)``; needs an input width of 2."""
        return self.forward([x, y])[0]

    def get_decision_boundary(
        self,
        x_min: float,
        x_max: float,
        y_min: float,
        y_max: float,
        resolution: int
    ) -> List[Tuple[float, float, float]]:
        """
        Sample ``predict_point`` on a ``(resolution + 1)^2`` regular grid.

        Returns:
            list: ``(x, y, value)`` triples, x outer and y inner
        """
        resolution = _validate_resolution(resolution)
        xs = _grid_axis(x_min, x_max, resolution)
        ys = _grid_axis(y_min, y_max, resolution)
        with self._lock:
            return [(x, y, self.predict_point(x, y)) for x in xs for y in ys]

    def compute_gradient(self, x: float, y: float) -> Tuple[float, float]:
        """
        Forward-difference estimate of d(output)/dx and d(output)/dy.

        Uses a step of 1e-7; this is a numerical estimate, not the
        analytic input gradient.
        """
        with self._lock:
            base = self.predict_point(x, y)
            dx = (self.predict_point(x + GRADIENT_EPSILON, y) - base) / GRADIENT_EPSILON
            dy = (self.predict_point(x, y + GRADIENT_EPSILON) - base) / GRADIENT_EPSILON
        return dx, dy

    def get_gradient_field(
        self,
        x_min: float,
        x_max: float,
        y_min: float,
        y_max: float,
        resolution: int
    ) -> List[Tuple[float, float, float, float]]:
        """Same grid as ``get_decision_boundary`` with ``(x, y, dx, dy)`` per node."""
        resolution = _validate_resolution(resolution)
        xs = _grid_axis(x_min, x_max, resolution)
        ys = _grid_axis(y_min, y_max, resolution)
        with self._lock:
            return [(x, y) + self.compute_gradient(x, y) for x in xs for y in ys]
