"""
test_visualization.py
~~~~~~~~~~~~~~~~~~~~~

Tests for decision boundary and gradient field previews.
"""

import base64

import numpy as np
import pytest

from nnsim.network import NeuralNetwork
from nnsim.visualization import (
    boundary_to_grid,
    render_decision_boundary,
    render_gradient_field,
)

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'


@pytest.fixture
def network():
    net = NeuralNetwork([2, 4, 1], learning_rate=0.5, rng=3)
    for inputs, target in [([0, 0], [0]), ([1, 1], [1])] * 20:
        net.train(inputs, target)
    return net


@pytest.mark.unit
class TestBoundaryToGrid:

    def test_rows_follow_y(self, network):
        points = network.get_decision_boundary(0, 2, 10, 14, 2)
        X, Y, Z = boundary_to_grid(points, 2)

        assert X.shape == Y.shape == Z.shape == (3, 3)
        np.testing.assert_array_equal(X[0], [0.0, 1.0, 2.0])
        np.testing.assert_array_equal(Y[:, 0], [10.0, 12.0, 14.0])
        assert Z[2, 1] == network.predict_point(1.0, 14.0)

    def test_rejects_wrong_point_count(self):
        with pytest.raises(ValueError):
            boundary_to_grid([(0.0, 0.0, 0.5)] * 5, 2)


@pytest.mark.integration
class TestRendering:

    def test_decision_boundary_png(self, network):
        image = render_decision_boundary(network, resolution=10)
        assert base64.b64decode(image).startswith(PNG_SIGNATURE)

    def test_decision_boundary_without_training_points(self):
        image = render_decision_boundary(NeuralNetwork([2, 1], rng=0), (-1, 1, -1, 1), 5)
        assert base64.b64decode(image).startswith(PNG_SIGNATURE)

    def test_gradient_field_png(self, network):
        image = render_gradient_field(network, resolution=4)
        assert base64.b64decode(image).startswith(PNG_SIGNATURE)

    def test_rendering_is_read_only(self, network):
        before = network.get_state()
        render_decision_boundary(network, resolution=5)
        render_gradient_field(network, resolution=3)
        assert network.get_state() == before
