#!/usr/bin/env python3
"""
Train a network on a built-in preset and save its state as JSON.

The saved file can be uploaded through the API (POST /api/networks/load)
or loaded with NeuralNetwork.from_state.

Usage:
    python scripts/train_preset.py xor --layers 2 4 3 1 --iterations 8000

The script will:
1. Build a network with the requested topology and activation
2. Train it on the preset, printing the error as it goes
3. Print the network output for every preset example
4. Write the serialized state to the output file
"""

import argparse
import json
import sys

from nnsim.datasets import TRAINING_PRESETS, get_preset
from nnsim.errors import NetworkError
from nnsim.network import NeuralNetwork
from nnsim.trainer import evaluate_examples, train_examples


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('preset', choices=sorted(TRAINING_PRESETS))
    parser.add_argument('--layers', type=int, nargs='+', default=[2, 4, 3, 1])
    parser.add_argument('--activation', default='sigmoid',
                        choices=['sigmoid', 'tanh', 'relu'])
    parser.add_argument('--learning-rate', type=float, default=0.5)
    parser.add_argument('--iterations', type=int, default=8000)
    parser.add_argument('--batch-size', type=int, default=100)
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--output', default='network-state.json')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    preset = get_preset(args.preset)

    try:
        net = NeuralNetwork(args.layers, args.learning_rate,
                            args.activation, rng=args.seed)
    except NetworkError as e:
        print(f"❌ {e}")
        return 1

    print(f"🧠 Training {net} on {preset.name}")

    report_every = max(1, args.iterations // args.batch_size // 10)
    batches = [0]

    def report(progress):
        batches[0] += 1
        if batches[0] % report_every == 0:
            print(f"   - iteration {progress['iteration']:>6}: "
                  f"error {progress['batch_error']:.5f}")

    train_examples(net, preset.examples, args.iterations,
                   args.batch_size, callback=report)

    print("✅ Results:")
    for inputs, target in preset.examples:
        print(f"   - {inputs} → {net.forward(inputs)[0]:.4f} (target {target})")
    print(f"   Accuracy: {evaluate_examples(net, preset.examples):.0%}")

    with open(args.output, 'w') as f:
        json.dump(net.get_state(), f)
    print(f"💾 Saved state to {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
