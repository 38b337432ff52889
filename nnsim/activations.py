"""
activations.py
~~~~~~~~~~~~~~

Activation functions supported by the network.

An activation is a closed set of three variants. Each variant computes
its value and its derivative in one dispatch, so the forward function
and the derivative used by backpropagation always belong together.
"""

from enum import Enum
from typing import Tuple, Union

import numpy as np

from nnsim.errors import UnsupportedActivation

# exp() overflows float64 past ~709
_SIGMOID_CLIP = 500.0


class Activation(Enum):
    """Network-wide nonlinearity."""

    SIGMOID = 'sigmoid'
    TANH = 'tanh'
    RELU = 'relu'

    @classmethod
    def parse(cls, kind: Union[str, 'Activation']) -> 'Activation':
        """
        Resolve an activation identifier.

        Args:
            kind: An ``Activation`` member or its name ('sigmoid', 'tanh',
                'relu'), case-insensitive

        Returns:
            Activation: The matching variant

        Raises:
            UnsupportedActivation: If the identifier is unknown
        """
        if isinstance(kind, cls):
            return kind
        if isinstance(kind, str):
            try:
                return cls(kind.strip().lower())
            except ValueError:
                pass
        raise UnsupportedActivation(
            f"Unsupported activation {kind!r}; expected one of "
            f"{', '.join(a.value for a in cls)}"
        )

    def evaluate(self, z: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Compute activation value and derivative for pre-activations ``z``.

        Args:
            z: Weighted sums (any shape)

        Returns:
            tuple: (f(z), f'(z)) with the same shape as ``z``
        """
        z = np.asarray(z, dtype=np.float64)
        if self is Activation.SIGMOID:
            s = 1.0 / (1.0 + np.exp(-np.clip(z, -_SIGMOID_CLIP, _SIGMOID_CLIP)))
            return s, s * (1.0 - s)
        if self is Activation.TANH:
            t = np.tanh(z)
            return t, 1.0 - t * t
        # ReLU: derivative is 0 at exactly 0
        return np.maximum(0.0, z), (z > 0).astype(np.float64)

    def apply(self, z: np.ndarray) -> np.ndarray:
        return self.evaluate(z)[0]

    def gradient(self, z: np.ndarray) -> np.ndarray:
        return self.evaluate(z)[1]
