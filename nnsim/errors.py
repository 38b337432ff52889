"""
errors.py
~~~~~~~~~

Exceptions raised by the network engine.

Every error is a local validation failure raised synchronously at the
call that breaks the contract. A call that raises never mutates the
network.
"""


class NetworkError(ValueError):
    """Base class for all network engine errors."""


class InvalidTopology(NetworkError):
    """Layer list is too short or contains a non-positive width."""


class InvalidLearningRate(NetworkError):
    """Learning rate is not a finite positive number."""


class UnsupportedActivation(NetworkError):
    """Activation identifier is not one of sigmoid, tanh or relu."""


class InputSizeMismatch(NetworkError):
    """Input vector length differs from the input layer width."""


class TargetSizeMismatch(NetworkError):
    """Target vector length differs from the output layer width."""


class InvalidState(NetworkError):
    """Serialized network state is missing fields or is malformed."""
