"""
trainer.py
~~~~~~~~~~

Training loop driver.

Runs many single-example ``train`` calls in batches. Between batches it
records the batch error, reports progress through a callback and hands
control back to the caller through ``yield_func`` so a server can keep
answering requests while a network trains.
"""

import logging
import numbers
import time
from collections import deque
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from nnsim.network import NeuralNetwork

logger = logging.getLogger(__name__)

Example = Tuple[Sequence[float], Union[float, Sequence[float]]]


class TrainingHistory:
    """Bounded record of training errors, one entry per batch."""

    def __init__(self, max_length: int = 1000):
        self._errors: deque = deque(maxlen=max_length)

    def append(self, error: float) -> None:
        self._errors.append(float(error))

    def values(self) -> List[float]:
        return list(self._errors)

    @property
    def latest(self) -> Optional[float]:
        return self._errors[-1] if self._errors else None

    def moving_average(self, window: int) -> List[float]:
        """
        Trailing mean over ``window`` entries.

        The first ``window - 1`` values average over what is available.
        """
        if window < 1:
            raise ValueError(f"window must be positive, got {window}")
        errors = self.values()
        averages = []
        running = 0.0
        for i, error in enumerate(errors):
            running += error
            if i >= window:
                running -= errors[i - window]
            averages.append(running / min(i + 1, window))
        return averages

    def clear(self) -> None:
        self._errors.clear()

    def __len__(self) -> int:
        return len(self._errors)


def _as_target(target: Union[float, Sequence[float]]) -> List[float]:
    if isinstance(target, numbers.Real):
        return [float(target)]
    return [float(value) for value in target]


def train_examples(
    network: NeuralNetwork,
    examples: Iterable[Example],
    iterations: int,
    batch_size: int = 10,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    yield_func: Optional[Callable[[], None]] = None,
    history: Optional[TrainingHistory] = None,
    should_stop: Optional[Callable[[], bool]] = None
) -> TrainingHistory:
    """
    Train ``network`` by cycling through ``examples``.

    Args:
        network: Network to train in place
        examples: ``(inputs, target)`` pairs; target may be a scalar
        iterations: Total number of ``train`` calls
        batch_size: ``train`` calls between progress reports
        callback: Called after every batch with a progress dict
        yield_func: Called after every batch for cooperative multitasking
        history: History to append batch errors to; a new one by default
        should_stop: Checked between batches; training ends when it
            returns True

    Returns:
        TrainingHistory: The history with one mean error per batch

    Raises:
        ValueError: If ``examples`` is empty or a count is not positive
    """
    if not isinstance(iterations, int) or iterations < 1:
        raise ValueError(f"iterations must be a positive integer, got {iterations!r}")
    if not isinstance(batch_size, int) or batch_size < 1:
        raise ValueError(f"batch_size must be a positive integer, got {batch_size!r}")

    samples = [(list(inputs), _as_target(target)) for inputs, target in examples]
    if not samples:
        raise ValueError("examples must not be empty")

    if history is None:
        history = TrainingHistory()

    start = time.time()
    done = 0
    while done < iterations:
        if should_stop is not None and should_stop():
            logger.info(f"Training stopped after {done}/{iterations} iterations")
            break

        batch_end = min(done + batch_size, iterations)
        batch_errors = []
        for step in range(done, batch_end):
            inputs, target = samples[step % len(samples)]
            batch_errors.append(network.train(inputs, target))
        done = batch_end

        batch_error = sum(batch_errors) / len(batch_errors)
        history.append(batch_error)

        if callback is not None:
            callback({
                'iteration': done,
                'total_iterations': iterations,
                'batch_error': batch_error,
                'progress': done / iterations * 100,
                'elapsed_time': time.time() - start
            })
        if yield_func is not None:
            yield_func()

    logger.debug(
        f"Trained {done} iteration(s) in {time.time() - start:.3f}s, "
        f"last batch error {history.latest}"
    )
    return history


def evaluate_examples(
    network: NeuralNetwork,
    examples: Iterable[Example],
    threshold: float = 0.5
) -> float:
    """
    Fraction of examples whose first output lands on the target's side of
    ``threshold``.
    """
    samples = list(examples)
    if not samples:
        return 0.0
    correct = 0
    for inputs, target in samples:
        predicted = network.forward(inputs)[0] >= threshold
        expected = _as_target(target)[0] >= threshold
        correct += int(predicted == expected)
    return correct / len(samples)
