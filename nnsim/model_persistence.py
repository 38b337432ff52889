"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

Storage for saved networks, their custom training data and application
settings.

Networks are stored as their serialized state (JSON), never as pickled
objects, so every load goes through ``NeuralNetwork.from_state`` and its
validation. Two stores share one interface: ``ModelDatabase`` (SQLite)
and ``InMemoryModelStore`` (tests, ephemeral servers). Callers receive a
store explicitly; there is no global instance.
"""

import copy
import json
import logging
import math
import numbers
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Optional, Union

import numpy as np

from nnsim.errors import InvalidState
from nnsim.network import NeuralNetwork

# Configure module logger
logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

DEFAULT_SETTINGS: Dict[str, Any] = {
    'theme': 'dark',
    'autoSave': True,
    'offlineMode': False
}

# Kept in the settings table; get_settings() only returns DEFAULT_SETTINGS keys
CURRENT_NETWORK_KEY = 'currentNetwork'


class NetworkEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles numpy arrays and scalars."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        return super().default(obj)


def validate_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge ``settings`` over the defaults and check every value.

    Raises:
        ValueError: On an unknown key or a value of the wrong type
    """
    unknown = set(settings) - set(DEFAULT_SETTINGS)
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    merged = dict(DEFAULT_SETTINGS)
    merged.update(settings)
    if merged['theme'] not in ('light', 'dark'):
        raise ValueError(f"theme must be 'light' or 'dark', got {merged['theme']!r}")
    for key in ('autoSave', 'offlineMode'):
        if not isinstance(merged[key], bool):
            raise ValueError(f"{key} must be a boolean, got {merged[key]!r}")
    return merged


def _number_list(values: Any, label: str) -> List[float]:
    if (not isinstance(values, list) or not values
            or any(isinstance(v, bool) or not isinstance(v, numbers.Real)
                   or not math.isfinite(v) for v in values)):
        raise ValueError(f"{label} must be a non-empty list of finite numbers, got {values!r}")
    return [float(v) for v in values]


def validate_training_data(examples: Any) -> List[Dict[str, List[float]]]:
    """
    Normalize custom training examples to ``{'inputs': [...], 'target': [...]}``.

    A scalar target becomes a one-element list. Every example must have
    the same input and target widths.

    Raises:
        ValueError: If the list is empty or an example is malformed
    """
    if not isinstance(examples, list) or not examples:
        raise ValueError("Training data must be a non-empty list of examples")

    normalized = []
    for i, example in enumerate(examples):
        if not isinstance(example, dict) or 'inputs' not in example or 'target' not in example:
            raise ValueError(f"Example {i} needs 'inputs' and 'target'")
        target = example['target']
        normalized.append({
            'inputs': _number_list(example['inputs'], f"Example {i} inputs"),
            'target': _number_list(target if isinstance(target, list) else [target],
                                   f"Example {i} target")
        })

    widths = {(len(ex['inputs']), len(ex['target'])) for ex in normalized}
    if len(widths) > 1:
        raise ValueError(f"Examples have mixed input/target widths: {sorted(widths)}")
    return normalized


def _validate_accuracy(accuracy: Optional[float]) -> None:
    if accuracy is not None and not 0.0 <= accuracy <= 1.0:
        raise ValueError(
            f"Accuracy must be between 0.0 and 1.0, got {accuracy}"
        )


def _validate_days(days: float) -> None:
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")


def _shapes(architecture: List[int]) -> Dict[str, List[List[int]]]:
    """Weight and bias shapes implied by an architecture."""
    return {
        'weights_shape': [
            [architecture[i + 1], architecture[i]]
            for i in range(len(architecture) - 1)
        ],
        'biases_shape': [
            [architecture[i + 1]]
            for i in range(len(architecture) - 1)
        ]
    }


class ModelDatabase:
    """
    Manages SQLite database for neural network persistence.

    The database stores:
    - Network metadata (name, architecture, activation, training status)
    - Serialized network state as JSON
    - Custom training examples per network
    - Application settings and the current network id as JSON values
      keyed by name
    """

    def __init__(self, db_path: str = 'models/networks.db'):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    name TEXT,
                    architecture TEXT NOT NULL,
                    activation TEXT NOT NULL,
                    state TEXT NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    accuracy REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS training_data (
                    network_id TEXT PRIMARY KEY,
                    examples TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

    def _row_to_metadata(self, row: sqlite3.Row) -> Dict[str, Any]:
        architecture = json.loads(row['architecture'])
        metadata = {
            'network_id': row['network_id'],
            'name': row['name'],
            'architecture': architecture,
            'activation': row['activation'],
            'trained': bool(row['trained']),
            'accuracy': row['accuracy'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }
        metadata.update(_shapes(architecture))
        return metadata

    def save_network_to_db(
        self,
        network: NeuralNetwork,
        network_id: str,
        name: Optional[str] = None,
        trained: bool = False,
        accuracy: Optional[float] = None
    ) -> bool:
        """
        Save a network's state, replacing any earlier save with the same id.

        The original creation time is kept on replacement.

        Raises:
            ValueError: If accuracy is out of valid range
        """
        _validate_accuracy(accuracy)

        state = network.get_state()
        state_json = json.dumps(state, cls=NetworkEncoder)
        architecture_json = json.dumps(state['layers'])

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, name, architecture, activation, state,
                 trained, accuracy)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    name = excluded.name,
                    architecture = excluded.architecture,
                    activation = excluded.activation,
                    state = excluded.state,
                    trained = excluded.trained,
                    accuracy = excluded.accuracy,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                name,
                architecture_json,
                state['activation'],
                state_json,
                1 if trained else 0,
                accuracy
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{state['layers']}, trained={trained}, accuracy={accuracy}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[NeuralNetwork]:
        """
        Load a network from the database.

        Returns:
            NeuralNetwork or None if not found

        Raises:
            InvalidState: If the stored state is corrupt
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT state FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

        if row is None:
            logger.warning(f"Network '{network_id}' not found")
            return None

        network = NeuralNetwork.from_state(json.loads(row['state']))
        logger.info(f"Loaded network '{network_id}'")
        return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """List all networks with metadata, newest first."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id, name, architecture, activation,
                    trained, accuracy, created_at, updated_at
                FROM networks
                ORDER BY created_at DESC, rowid DESC
            ''')
            networks = [self._row_to_metadata(row) for row in cursor.fetchall()]

        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """Get network metadata without loading the state."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id, name, architecture, activation,
                    trained, accuracy, created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))
            row = cursor.fetchone()

        if row is None:
            logger.warning(f"Metadata for network '{network_id}' not found")
            return None
        return self._row_to_metadata(row)

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )
            deleted = cursor.rowcount > 0
            cursor.execute(
                'DELETE FROM training_data WHERE network_id = ?',
                (network_id,)
            )

        if deleted:
            logger.info(f"Deleted network '{network_id}'")
        else:
            logger.warning(f"Could not delete network '{network_id}': not found")
        return deleted

    def delete_old_networks_from_db(self, days: float) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Returns:
            int: Number of deleted networks

        Raises:
            ValueError: If days is negative
        """
        _validate_days(days)
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                DELETE FROM training_data
                WHERE network_id IN (
                    SELECT network_id FROM networks
                    WHERE julianday('now') - julianday(created_at) > ?
                )
            ''', (days,))
            cursor.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted

    def save_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and store settings; returns the merged settings."""
        merged = validate_settings(settings)
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.executemany(
                'INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)',
                [(key, json.dumps(value)) for key, value in merged.items()]
            )
        logger.info(f"Saved settings {merged}")
        return merged

    def get_settings(self) -> Dict[str, Any]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT key, value FROM settings')
            stored = {row['key']: json.loads(row['value']) for row in cursor.fetchall()}

        settings = dict(DEFAULT_SETTINGS)
        settings.update({k: v for k, v in stored.items() if k in DEFAULT_SETTINGS})
        return settings

    def save_training_data(
        self,
        network_id: str,
        examples: List[Dict[str, Any]]
    ) -> List[Dict[str, List[float]]]:
        """
        Store custom training examples for a network, replacing earlier ones.

        Returns:
            The normalized examples

        Raises:
            ValueError: If the examples are malformed
        """
        normalized = validate_training_data(examples)
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT OR REPLACE INTO training_data (network_id, examples, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
            ''', (network_id, json.dumps(normalized)))
        logger.info(f"Saved {len(normalized)} training example(s) for network '{network_id}'")
        return normalized

    def get_training_data(self, network_id: str) -> Optional[List[Dict[str, List[float]]]]:
        """Custom training examples for a network, or None if none were saved."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT examples FROM training_data WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()
        return json.loads(row['examples']) if row is not None else None

    def set_current_network(self, network_id: Optional[str]) -> None:
        """Remember which network the user last worked on (None forgets it)."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            if network_id is None:
                cursor.execute('DELETE FROM settings WHERE key = ?', (CURRENT_NETWORK_KEY,))
            else:
                cursor.execute(
                    'INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)',
                    (CURRENT_NETWORK_KEY, json.dumps(network_id))
                )

    def get_current_network(self) -> Optional[str]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT value FROM settings WHERE key = ?', (CURRENT_NETWORK_KEY,))
            row = cursor.fetchone()
        return json.loads(row['value']) if row is not None else None

    def clear(self) -> None:
        """Delete every saved network, training set and setting."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM networks')
            cursor.execute('DELETE FROM training_data')
            cursor.execute('DELETE FROM settings')
        logger.info("Cleared all stored networks, training data and settings")


class InMemoryModelStore:
    """Dictionary-backed store with the same interface as ``ModelDatabase``."""

    def __init__(self):
        self._networks: Dict[str, Dict[str, Any]] = {}
        self._training_data: Dict[str, List[Dict[str, List[float]]]] = {}
        self._settings: Dict[str, Any] = {}
        self._current_network: Optional[str] = None
        self._lock = threading.Lock()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)

    @staticmethod
    def _metadata(record: Dict[str, Any]) -> Dict[str, Any]:
        metadata = {k: v for k, v in record.items() if k != 'state'}
        metadata['architecture'] = list(metadata['architecture'])
        metadata.update(_shapes(metadata['architecture']))
        return metadata

    def save_network_to_db(
        self,
        network: NeuralNetwork,
        network_id: str,
        name: Optional[str] = None,
        trained: bool = False,
        accuracy: Optional[float] = None
    ) -> bool:
        _validate_accuracy(accuracy)
        state = network.get_state()
        now = self._now()
        with self._lock:
            previous = self._networks.get(network_id)
            self._networks[network_id] = {
                'network_id': network_id,
                'name': name,
                'architecture': state['layers'],
                'activation': state['activation'],
                'state': state,
                'trained': bool(trained),
                'accuracy': accuracy,
                'created_at': previous['created_at'] if previous else now,
                'updated_at': now
            }
        logger.info(f"Saved network '{network_id}' in memory")
        return True

    def load_network_from_db(self, network_id: str) -> Optional[NeuralNetwork]:
        with self._lock:
            record = self._networks.get(network_id)
        if record is None:
            logger.warning(f"Network '{network_id}' not found")
            return None
        return NeuralNetwork.from_state(record['state'])

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        with self._lock:
            records = list(self._networks.values())
        # dict order is insertion order; newest first
        records.reverse()
        records.sort(key=lambda record: record['created_at'], reverse=True)
        return [self._metadata(record) for record in records]

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._networks.get(network_id)
        return self._metadata(record) if record is not None else None

    def delete_network_from_db(self, network_id: str) -> bool:
        with self._lock:
            self._training_data.pop(network_id, None)
            return self._networks.pop(network_id, None) is not None

    def delete_old_networks_from_db(self, days: float) -> int:
        _validate_days(days)
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        with self._lock:
            old_ids = [
                network_id for network_id, record in self._networks.items()
                if datetime.strptime(record['created_at'], TIMESTAMP_FORMAT)
                .replace(tzinfo=timezone.utc) < cutoff
            ]
            for network_id in old_ids:
                del self._networks[network_id]
                self._training_data.pop(network_id, None)
        return len(old_ids)

    def save_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        merged = validate_settings(settings)
        with self._lock:
            self._settings = merged
        return dict(merged)

    def get_settings(self) -> Dict[str, Any]:
        with self._lock:
            stored = copy.deepcopy(self._settings)
        settings = dict(DEFAULT_SETTINGS)
        settings.update(stored)
        return settings

    def save_training_data(
        self,
        network_id: str,
        examples: List[Dict[str, Any]]
    ) -> List[Dict[str, List[float]]]:
        normalized = validate_training_data(examples)
        with self._lock:
            self._training_data[network_id] = normalized
        return copy.deepcopy(normalized)

    def get_training_data(self, network_id: str) -> Optional[List[Dict[str, List[float]]]]:
        with self._lock:
            return copy.deepcopy(self._training_data.get(network_id))

    def set_current_network(self, network_id: Optional[str]) -> None:
        with self._lock:
            self._current_network = network_id

    def get_current_network(self) -> Optional[str]:
        with self._lock:
            return self._current_network

    def clear(self) -> None:
        with self._lock:
            self._networks.clear()
            self._training_data.clear()
            self._settings = {}
            self._current_network = None


ModelStore = Union[ModelDatabase, InMemoryModelStore]


# ============================================================================
# Convenience functions: log storage errors and return sentinels
# ============================================================================

def save_network(
    store: ModelStore,
    network: NeuralNetwork,
    network_id: str,
    name: Optional[str] = None,
    trained: bool = False,
    accuracy: Optional[float] = None
) -> bool:
    """
    Save a network to ``store``.

    Args:
        store: Storage service to write to
        network: The network to save
        network_id: A unique identifier for the network
        name: Optional display name
        trained: Whether the network has been trained
        accuracy: Accuracy on its training preset (0.0 to 1.0)

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> store = InMemoryModelStore()
        >>> save_network(store, NeuralNetwork([2, 4, 1]), "xor-net")
        True
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False

    try:
        return store.save_network_to_db(network, network_id, name, trained, accuracy)
    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False


def load_network(store: ModelStore, network_id: str) -> Optional[NeuralNetwork]:
    """
    Load a network from ``store``.

    Returns:
        The loaded network, or None if missing or unreadable
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return None

    try:
        return store.load_network_from_db(network_id)
    except (InvalidState, json.JSONDecodeError) as e:
        logger.error(f"Stored state for network '{network_id}' is invalid: {e}")
        return None
    except sqlite3.Error as e:
        logger.error(f"Database error loading network '{network_id}': {e}")
        return None


def list_saved_networks(store: ModelStore) -> List[Dict[str, Any]]:
    """List all saved networks with their metadata, or [] on error."""
    try:
        return store.list_networks_from_db()
    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []


def delete_network(store: ModelStore, network_id: str) -> bool:
    """Delete a saved network. Returns False if missing or on error."""
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False

    try:
        return store.delete_network_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False


def get_network_metadata(
    store: ModelStore,
    network_id: str
) -> Optional[Dict[str, Any]]:
    """Metadata for one saved network, or None."""
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return None

    try:
        return store.get_network_metadata_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error getting metadata for '{network_id}': {e}")
        return None
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error getting metadata for '{network_id}': {e}")
        return None


def delete_old_networks(store: ModelStore, days: float = 2) -> int:
    """
    Delete saved networks older than ``days`` days.

    Returns:
        int: Number deleted, or -1 on a storage error

    Raises:
        ValueError: If days is negative
    """
    try:
        return store.delete_old_networks_from_db(days)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1
