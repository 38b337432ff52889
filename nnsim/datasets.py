"""
datasets.py
~~~~~~~~~~~

Built-in training presets: the two-input logic gates used to demonstrate
what a network can and cannot learn.
"""

from typing import Dict, List, NamedTuple, Tuple


class TrainingPreset(NamedTuple):
    name: str
    description: str
    examples: List[Tuple[List[float], float]]


TRAINING_PRESETS: Dict[str, TrainingPreset] = {
    'xor': TrainingPreset(
        name='XOR Gate',
        description=(
            'Learn the XOR logic function: output 1 when inputs are '
            'different, 0 when same'
        ),
        examples=[([0, 0], 0), ([0, 1], 1), ([1, 0], 1), ([1, 1], 0)],
    ),
    'and': TrainingPreset(
        name='AND Gate',
        description=(
            'Learn the AND logic function: output 1 only when both '
            'inputs are 1'
        ),
        examples=[([0, 0], 0), ([0, 1], 0), ([1, 0], 0), ([1, 1], 1)],
    ),
    'or': TrainingPreset(
        name='OR Gate',
        description=(
            'Learn the OR logic function: output 1 when at least one '
            'input is 1'
        ),
        examples=[([0, 0], 0), ([0, 1], 1), ([1, 0], 1), ([1, 1], 1)],
    ),
}


def get_preset(key: str) -> TrainingPreset:
    """
    Look up a preset by key ('xor', 'and', 'or'), ignoring case.

    Raises:
        KeyError: If no preset has that key
    """
    try:
        return TRAINING_PRESETS[key.strip().lower()]
    except KeyError:
        raise KeyError(
            f"Unknown preset {key!r}; available: {', '.join(TRAINING_PRESETS)}"
        ) from None


def list_presets() -> List[Dict[str, object]]:
    """Describe every preset in a JSON-ready form."""
    return [
        {
            'key': key,
            'name': preset.name,
            'description': preset.description,
            'examples': [
                {'inputs': list(inputs), 'target': target}
                for inputs, target in preset.examples
            ],
        }
        for key, preset in TRAINING_PRESETS.items()
    ]
