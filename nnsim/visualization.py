"""
visualization.py
~~~~~~~~~~~~~~~~

PNG previews of a network's decision boundary and gradient field.

Images are returned as base64 strings so they can travel inside JSON
responses.
"""

import base64
from io import BytesIO
from typing import List, Sequence, Tuple

import numpy as np

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from nnsim.network import NeuralNetwork

Bounds = Tuple[float, float, float, float]


def boundary_to_grid(
    points: Sequence[Tuple[float, ...]],
    resolution: int
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Reshape sampled ``(x, y, value)`` triples into plotting matrices.

    Returns:
        tuple: (X, Y, Z) each of shape ``(resolution + 1, resolution + 1)``
        indexed ``[y_step][x_step]``
    """
    side = resolution + 1
    data = np.asarray(points, dtype=np.float64)
    if data.shape[0] != side * side:
        raise ValueError(
            f"Expected {side * side} points for resolution {resolution}, "
            f"got {data.shape[0]}"
        )
    # samples are x-major; transpose so rows follow y
    grid = data.reshape(side, side, data.shape[1]).transpose(1, 0, 2)
    return grid[..., 0], grid[..., 1], grid[..., 2]


def _figure_to_base64() -> str:
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()
    return img_base64


def _plot_training_points(network: NeuralNetwork) -> None:
    points = network.get_training_points()
    if not points or len(points[0].inputs) != 2:
        return
    xs = [p.inputs[0] for p in points]
    ys = [p.inputs[1] for p in points]
    targets: List[float] = [p.target for p in points]
    plt.scatter(xs, ys, c=targets, cmap='coolwarm', vmin=0, vmax=1,
                edgecolors='white', s=60, zorder=3)


def render_decision_boundary(
    network: NeuralNetwork,
    bounds: Bounds = (0.0, 1.0, 0.0, 1.0),
    resolution: int = 50
) -> str:
    """
    Render the network output over a 2-D input rectangle.

    The 0.5 contour is drawn as the decision boundary and the most recent
    training points are overlaid.

    Returns:
        Base64-encoded PNG image string
    """
    points = network.get_decision_boundary(*bounds, resolution)
    X, Y, Z = boundary_to_grid(points, resolution)

    plt.figure(figsize=(4, 4))
    plt.contourf(X, Y, Z, levels=20, cmap='coolwarm', vmin=0, vmax=1)
    if Z.min() < 0.5 < Z.max():
        plt.contour(X, Y, Z, levels=[0.5], colors='black', linewidths=1.5)
    _plot_training_points(network)
    plt.xlim(bounds[0], bounds[1])
    plt.ylim(bounds[2], bounds[3])
    plt.title(f"Decision boundary ({network.activation.value})")
    return _figure_to_base64()


def render_gradient_field(
    network: NeuralNetwork,
    bounds: Bounds = (0.0, 1.0, 0.0, 1.0),
    resolution: int = 10
) -> str:
    """Render numerically estimated output gradients as arrows."""
    field = np.asarray(network.get_gradient_field(*bounds, resolution))

    plt.figure(figsize=(4, 4))
    plt.quiver(field[:, 0], field[:, 1], field[:, 2], field[:, 3],
               np.hypot(field[:, 2], field[:, 3]), cmap='viridis')
    _plot_training_points(network)
    plt.xlim(bounds[0], bounds[1])
    plt.ylim(bounds[2], bounds[3])
    plt.title("Gradient field")
    return _figure_to_base64()
