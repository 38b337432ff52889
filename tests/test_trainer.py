"""
test_trainer.py
~~~~~~~~~~~~~~~

Tests for the batched training driver, the error history and the
built-in presets.
"""

import pytest

from nnsim.datasets import TRAINING_PRESETS, get_preset, list_presets
from nnsim.errors import TargetSizeMismatch
from nnsim.network import NeuralNetwork
from nnsim.trainer import TrainingHistory, evaluate_examples, train_examples


@pytest.fixture
def xor_examples():
    return get_preset('xor').examples


@pytest.mark.unit
class TestTrainingHistory:

    def test_bounded(self):
        history = TrainingHistory(max_length=3)
        for error in [0.4, 0.3, 0.2, 0.1]:
            history.append(error)

        assert history.values() == [0.3, 0.2, 0.1]
        assert history.latest == 0.1
        assert len(history) == 3

    def test_empty_latest(self):
        assert TrainingHistory().latest is None

    def test_moving_average(self):
        history = TrainingHistory()
        for error in [4.0, 2.0, 6.0, 0.0]:
            history.append(error)

        assert history.moving_average(2) == [4.0, 3.0, 4.0, 3.0]
        assert history.moving_average(1) == [4.0, 2.0, 6.0, 0.0]

    def test_moving_average_rejects_bad_window(self):
        with pytest.raises(ValueError):
            TrainingHistory().moving_average(0)

    def test_clear(self):
        history = TrainingHistory()
        history.append(1.0)
        history.clear()
        assert history.values() == []


@pytest.mark.unit
class TestTrainExamples:

    def test_batches_and_callbacks(self, xor_examples):
        """Test one callback, one yield and one history entry per batch."""
        net = NeuralNetwork([2, 3, 1], rng=0)
        updates = []
        yields = []

        history = train_examples(
            net, xor_examples, iterations=25, batch_size=10,
            callback=updates.append, yield_func=lambda: yields.append(1)
        )

        assert [u['iteration'] for u in updates] == [10, 20, 25]
        assert updates[-1]['progress'] == 100
        assert updates[0]['total_iterations'] == 25
        assert len(yields) == 3
        assert len(history) == 3
        assert history.latest == updates[-1]['batch_error']

    def test_cycles_through_examples(self, xor_examples):
        net = NeuralNetwork([2, 1], rng=0)
        train_examples(net, xor_examples, iterations=6, batch_size=4)

        points = net.get_training_points()
        assert [p.inputs for p in points] == [
            [0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0], [0.0, 0.0], [0.0, 1.0]
        ]

    def test_appends_to_given_history(self, xor_examples):
        net = NeuralNetwork([2, 1], rng=0)
        history = TrainingHistory()
        history.append(9.0)

        result = train_examples(net, xor_examples, 4, 2, history=history)

        assert result is history
        assert len(history) == 3

    def test_should_stop_between_batches(self, xor_examples):
        net = NeuralNetwork([2, 1], rng=0)
        updates = []

        train_examples(
            net, xor_examples, iterations=100, batch_size=10,
            callback=updates.append,
            should_stop=lambda: len(updates) >= 2
        )

        assert len(updates) == 2
        assert len(net.get_training_points()) == 20

    def test_list_targets(self):
        net = NeuralNetwork([1, 2], rng=0)
        history = train_examples(net, [([0.5], [1.0, 0.0])], iterations=3, batch_size=3)
        assert len(history) == 1

    def test_target_size_errors_propagate(self, xor_examples):
        net = NeuralNetwork([2, 2], rng=0)
        with pytest.raises(TargetSizeMismatch):
            train_examples(net, xor_examples, iterations=4)

    @pytest.mark.parametrize('iterations,batch_size', [(0, 10), (10, 0), (-1, 1), (5, 2.5)])
    def test_invalid_counts(self, xor_examples, iterations, batch_size):
        net = NeuralNetwork([2, 1])
        with pytest.raises(ValueError):
            train_examples(net, xor_examples, iterations, batch_size)

    def test_empty_examples(self):
        with pytest.raises(ValueError):
            train_examples(NeuralNetwork([2, 1]), [], 10)


@pytest.mark.integration
class TestPresetTraining:

    def test_and_gate_is_learned_without_hidden_layer(self):
        net = NeuralNetwork([2, 1], learning_rate=0.5, rng=1)
        examples = get_preset('AND').examples

        history = train_examples(net, examples, iterations=8000, batch_size=100)

        assert evaluate_examples(net, examples) == 1.0
        assert history.values()[-1] < history.values()[0]

    def test_evaluate_single_layer_on_xor_is_imperfect(self, xor_examples):
        net = NeuralNetwork([2, 1], learning_rate=0.5, rng=1)
        train_examples(net, xor_examples, iterations=4000, batch_size=100)
        assert evaluate_examples(net, xor_examples) < 1.0

    def test_evaluate_empty(self):
        assert evaluate_examples(NeuralNetwork([2, 1]), []) == 0.0


@pytest.mark.unit
class TestPresets:

    def test_gate_tables(self):
        assert [t for _, t in TRAINING_PRESETS['xor'].examples] == [0, 1, 1, 0]
        assert [t for _, t in TRAINING_PRESETS['and'].examples] == [0, 0, 0, 1]
        assert [t for _, t in TRAINING_PRESETS['or'].examples] == [0, 1, 1, 1]

    def test_get_preset_ignores_case(self):
        assert get_preset(' Xor ').name == 'XOR Gate'

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            get_preset('nand')

    def test_list_presets(self):
        presets = list_presets()
        assert [p['key'] for p in presets] == ['xor', 'and', 'or']
        assert presets[0]['examples'][1] == {'inputs': [0, 1], 'target': 1}
