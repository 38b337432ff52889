"""
nnsim package
~~~~~~~~~~~~~

Neural network training simulator. Contains the network engine, training
presets and driver, model persistence, visualization previews and the
API server.
"""

from nnsim.activations import Activation
from nnsim.errors import (
    InputSizeMismatch,
    InvalidLearningRate,
    InvalidState,
    InvalidTopology,
    NetworkError,
    TargetSizeMismatch,
    UnsupportedActivation,
)
from nnsim.network import NeuralNetwork

__version__ = "1.0.0"
