"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for the network
training simulator.

This module provides endpoints for:
- Creating networks and running forward passes and single training steps
- Training networks on presets in the background with real-time
  progress updates via WebSockets
- Sampling decision boundaries and gradient fields for visualization
- Saving, loading and deleting networks, their custom training data
  and application settings

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background tasks
- An injected store (SQLite by default) for persistence
"""

import logging
import numbers
import sys
import uuid
from typing import Any, Dict, List, Optional, Tuple

import gevent
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO

from nnsim.config import Settings
from nnsim.datasets import get_preset, list_presets
from nnsim.errors import NetworkError, TargetSizeMismatch
from nnsim.model_persistence import (
    ModelDatabase,
    ModelStore,
    delete_network,
    delete_old_networks,
    list_saved_networks,
    load_network,
    save_network,
    validate_training_data,
)
from nnsim.network import NeuralNetwork
from nnsim.trainer import TrainingHistory, evaluate_examples, train_examples
from nnsim.visualization import render_decision_boundary, render_gradient_field

logger = logging.getLogger(__name__)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging(settings: Settings) -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level = getattr(logging, settings.log_level, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if settings.production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('nnsim').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO()

api = Blueprint('api', __name__, url_prefix='/api')


# ============================================================================
# SERVER STATE
# ============================================================================

class ServerState:
    """
    Networks loaded in memory and the training jobs tracked for them.

    One instance lives in ``app.extensions['nnsim']``.
    """

    def __init__(self, settings: Settings, store: ModelStore):
        self.settings = settings
        self.store = store
        # {network_id: {'network', 'history', 'name', 'trained', 'accuracy'}}
        self.active_networks: Dict[str, Dict[str, Any]] = {}
        # {job_id: {'network_id', 'status', 'progress', ...}}
        self.training_jobs: Dict[str, Dict[str, Any]] = {}

    def add_network(
        self,
        network: NeuralNetwork,
        network_id: Optional[str] = None,
        name: Optional[str] = None,
        trained: bool = False,
        accuracy: Optional[float] = None,
        saved: bool = False
    ) -> str:
        network_id = network_id or str(uuid.uuid4())
        self.active_networks[network_id] = {
            'network': network,
            'history': TrainingHistory(),
            'name': name,
            'trained': trained,
            'accuracy': accuracy,
            'saved': saved
        }
        return network_id

    def drop_purged_networks(self) -> None:
        """Forget in-memory copies of saved networks no longer in the store."""
        saved_ids = {net['network_id'] for net in list_saved_networks(self.store)}
        purged = [
            nid for nid, info in self.active_networks.items()
            if info['saved'] and nid not in saved_ids
        ]
        for nid in purged:
            del self.active_networks[nid]
            logger.info(f"Removed network {nid} from memory (deleted from store)")

    def reload_saved_networks(self) -> None:
        """
        Load every saved network into memory.

        Keeps active_networks in sync with the store after a restart.
        """
        saved_networks = list_saved_networks(self.store)
        if not saved_networks:
            logger.info("No saved networks to reload")
            return

        loaded_count = 0
        for net_info in saved_networks:
            network_id = net_info['network_id']
            net = load_network(self.store, network_id)
            if net is None:
                logger.warning(f"Failed to load network {network_id}")
                continue
            self.add_network(
                net, network_id,
                name=net_info['name'],
                trained=net_info['trained'],
                accuracy=net_info['accuracy'],
                saved=True
            )
            loaded_count += 1

        logger.info(f"Reloaded {loaded_count} network(s) from store")


def _state() -> ServerState:
    return current_app.extensions['nnsim']


class NotFound(Exception):
    pass


class BadRequest(Exception):
    pass


def _get_entry(network_id: str) -> Dict[str, Any]:
    entry = _state().active_networks.get(network_id)
    if entry is None:
        logger.warning(f"Request for non-existent network: {network_id}")
        raise NotFound('Network not found')
    return entry


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@api.errorhandler(NetworkError)
def handle_network_error(e: NetworkError):
    logger.warning(f"Rejected request: {type(e).__name__}: {e}")
    return jsonify({'error': str(e), 'type': type(e).__name__}), 400


@api.errorhandler(NotFound)
def handle_not_found(e: NotFound):
    return jsonify({'error': str(e)}), 404


@api.errorhandler(BadRequest)
def handle_bad_request(e: BadRequest):
    return jsonify({'error': str(e)}), 400


# ============================================================================
# NETWORK ENDPOINTS
# ============================================================================

@api.route('/status', methods=['GET'])
def get_status():
    """Return server status and counts of networks and active jobs."""
    state = _state()
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in state.training_jobs.values()
        if job.get('status') in active_statuses
    )
    return jsonify({
        'status': 'online',
        'active_networks': len(state.active_networks),
        'training_jobs': active_training
    }), 200


@api.route('/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body (all optional):
        {'layers': [2, 4, 3, 1], 'learningRate': 0.1, 'activation': 'sigmoid'}
    """
    state = _state()
    data = _json_body()
    layers = data.get('layers', state.settings.default_layers)
    learning_rate = data.get('learningRate', state.settings.default_learning_rate)
    activation = data.get('activation', 'sigmoid')

    net = NeuralNetwork(layers, learning_rate, activation)
    network_id = state.add_network(net, name=data.get('name'))
    logger.info(f"Created network {network_id} with architecture {net.layers}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.layers,
        'activation': net.activation.value,
        'learningRate': net.learning_rate,
        'status': 'created'
    }), 201


@api.route('/networks/load', methods=['POST'])
def load_network_state():
    """Create an in-memory network from an uploaded serialized state."""
    net = NeuralNetwork.from_state(_json_body())
    network_id = _state().add_network(net)
    logger.info(f"Loaded uploaded state as network {network_id}")
    return jsonify({
        'network_id': network_id,
        'architecture': net.layers,
        'status': 'loaded'
    }), 201


@api.route('/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved)."""
    state = _state()
    in_memory = [
        {
            'network_id': nid,
            'name': info['name'],
            'architecture': info['network'].layers,
            'activation': info['network'].activation.value,
            'trained': info['trained'],
            'accuracy': info['accuracy'],
            'status': 'in_memory'
        }
        for nid, info in state.active_networks.items()
    ]

    saved_only = []
    for net in list_saved_networks(state.store):
        if net['network_id'] not in state.active_networks:
            net['status'] = 'saved'
            saved_only.append(net)

    return jsonify({'networks': in_memory + saved_only}), 200


@api.route('/networks/<network_id>', methods=['GET'])
def get_network_state(network_id: str):
    """Return the serialized state of a network."""
    entry = _get_entry(network_id)
    return jsonify(entry['network'].get_state()), 200


@api.route('/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and the store."""
    state = _state()
    deleted_from_memory = state.active_networks.pop(network_id, None) is not None
    deleted_from_store = delete_network(state.store, network_id)

    if not deleted_from_memory and not deleted_from_store:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if state.store.get_current_network() == network_id:
        state.store.set_current_network(None)

    logger.info(
        f"Deleted network {network_id}: memory={deleted_from_memory}, "
        f"store={deleted_from_store}"
    )
    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_store': deleted_from_store
    }), 200


@api.route('/networks/<network_id>/forward', methods=['POST'])
def forward(network_id: str):
    """Run a forward pass. Body: {'inputs': [...]}"""
    entry = _get_entry(network_id)
    output = entry['network'].forward(_json_body().get('inputs'))
    return jsonify({'network_id': network_id, 'output': output}), 200


@api.route('/networks/<network_id>/train_step', methods=['POST'])
def train_step(network_id: str):
    """Apply one training step. Body: {'inputs': [...], 'targets': [...]}"""
    entry = _get_entry(network_id)
    data = _json_body()
    net = entry['network']
    error = net.train(data.get('inputs'), data.get('targets'))
    entry['history'].append(error)
    return jsonify({
        'network_id': network_id,
        'error': error,
        'output': net.forward(data['inputs'])
    }), 200


@api.route('/networks/<network_id>/activation', methods=['PUT'])
def set_activation(network_id: str):
    """
    Change the activation function. Body: {'activation': 'tanh'}

    Weights are kept; the training history is cleared since errors from
    the previous activation are no longer comparable.
    """
    entry = _get_entry(network_id)
    entry['network'].set_activation(_json_body().get('activation'))
    entry['history'].clear()
    return jsonify({
        'network_id': network_id,
        'activation': entry['network'].activation.value
    }), 200


@api.route('/networks/<network_id>/reset', methods=['POST'])
def reset_network(network_id: str):
    """Re-initialize weights and clear history and training points."""
    entry = _get_entry(network_id)
    entry['network'].reset()
    entry['history'].clear()
    entry['trained'] = False
    entry['accuracy'] = None
    return jsonify({'network_id': network_id, 'status': 'reset'}), 200


@api.route('/networks/<network_id>/save', methods=['POST'])
def save_network_endpoint(network_id: str):
    """Persist a network to the store. Body (optional): {'name': '...'}"""
    state = _state()
    entry = _get_entry(network_id)
    name = _json_body().get('name', entry['name'])
    entry['name'] = name

    if not save_network(state.store, entry['network'], network_id, name,
                        entry['trained'], entry['accuracy']):
        return jsonify({'error': 'Failed to save network'}), 500

    entry['saved'] = True
    return jsonify({'network_id': network_id, 'name': name, 'status': 'saved'}), 200


# ============================================================================
# VISUALIZATION ENDPOINTS
# ============================================================================

def _grid_args(default_resolution: int) -> Tuple[Tuple[float, float, float, float], int]:
    """Parse xMin/xMax/yMin/yMax/resolution query arguments."""
    args = request.args
    try:
        bounds = (
            float(args.get('xMin', 0.0)),
            float(args.get('xMax', 1.0)),
            float(args.get('yMin', 0.0)),
            float(args.get('yMax', 1.0))
        )
        resolution = int(args.get('resolution', default_resolution))
    except ValueError as e:
        raise BadRequest(f'Invalid grid arguments: {e}') from e

    max_resolution = _state().settings.max_resolution
    if not 1 <= resolution <= max_resolution:
        raise BadRequest(f'resolution must be between 1 and {max_resolution}')
    return bounds, resolution


@api.route('/networks/<network_id>/decision_boundary', methods=['GET'])
def decision_boundary(network_id: str):
    entry = _get_entry(network_id)
    bounds, resolution = _grid_args(20)
    points = entry['network'].get_decision_boundary(*bounds, resolution)
    return jsonify({
        'network_id': network_id,
        'resolution': resolution,
        'points': [{'x': x, 'y': y, 'value': v} for x, y, v in points]
    }), 200


@api.route('/networks/<network_id>/gradient_field', methods=['GET'])
def gradient_field(network_id: str):
    entry = _get_entry(network_id)
    bounds, resolution = _grid_args(10)
    field = entry['network'].get_gradient_field(*bounds, resolution)
    return jsonify({
        'network_id': network_id,
        'resolution': resolution,
        'vectors': [{'x': x, 'y': y, 'dx': dx, 'dy': dy} for x, y, dx, dy in field]
    }), 200


@api.route('/networks/<network_id>/training_points', methods=['GET'])
def training_points(network_id: str):
    entry = _get_entry(network_id)
    points = [
        {'inputs': p.inputs, 'target': p.target}
        for p in entry['network'].get_training_points()
    ]
    return jsonify({'network_id': network_id, 'points': points}), 200


@api.route('/networks/<network_id>/history', methods=['GET'])
def training_history(network_id: str):
    entry = _get_entry(network_id)
    return jsonify({
        'network_id': network_id,
        'errors': entry['history'].values()
    }), 200


@api.route('/networks/<network_id>/decision_boundary.png', methods=['GET'])
def decision_boundary_image(network_id: str):
    """Decision boundary preview as a base64-encoded PNG."""
    entry = _get_entry(network_id)
    bounds, resolution = _grid_args(50)
    return jsonify({
        'network_id': network_id,
        'image_data': render_decision_boundary(entry['network'], bounds, resolution)
    }), 200


@api.route('/networks/<network_id>/gradient_field.png', methods=['GET'])
def gradient_field_image(network_id: str):
    entry = _get_entry(network_id)
    bounds, resolution = _grid_args(10)
    return jsonify({
        'network_id': network_id,
        'image_data': render_gradient_field(entry['network'], bounds, resolution)
    }), 200


# ============================================================================
# TRAINING JOBS
# ============================================================================

def _parse_examples(data: Dict[str, Any], network_id: str) -> List[Tuple[List[float], Any]]:
    """Examples from a preset, the request body, or the network's saved data."""
    if 'preset' in data:
        try:
            return list(get_preset(str(data['preset'])).examples)
        except KeyError as e:
            raise BadRequest(e.args[0]) from e

    examples = data.get('examples')
    if examples is None:
        examples = _state().store.get_training_data(network_id)
    if not isinstance(examples, list) or not examples:
        raise BadRequest(
            "Provide a 'preset' name or a non-empty 'examples' list, "
            "or save training data for this network first"
        )
    try:
        return [(ex['inputs'], ex['target']) for ex in examples]
    except (KeyError, TypeError) as e:
        raise BadRequest("Each example needs 'inputs' and 'target'") from e


def _check_example_widths(
    network: NeuralNetwork,
    examples: List[Tuple[List[float], Any]]
) -> None:
    """Reject shape errors now rather than inside a background task."""
    output_width = network.layers[-1]
    for inputs, target in examples:
        network.forward(inputs)
        try:
            width = 1 if isinstance(target, numbers.Real) else len(target)
        except TypeError as e:
            raise BadRequest("Each target must be a number or a list of numbers") from e
        if width != output_width:
            raise TargetSizeMismatch(
                f"Target size {width} does not match network architecture "
                f"(expected {output_width})"
            )


@api.route('/networks/<network_id>/training_data', methods=['PUT'])
def save_training_data(network_id: str):
    """
    Store custom training examples for a network.

    Request body:
        {'examples': [{'inputs': [0, 1], 'target': 1}, ...]}
    """
    state = _state()
    entry = _get_entry(network_id)
    try:
        examples = validate_training_data(_json_body().get('examples'))
    except ValueError as e:
        raise BadRequest(str(e)) from e
    _check_example_widths(
        entry['network'], [(ex['inputs'], ex['target']) for ex in examples]
    )

    saved = state.store.save_training_data(network_id, examples)
    return jsonify({'network_id': network_id, 'examples': saved}), 200


@api.route('/networks/<network_id>/training_data', methods=['GET'])
def get_training_data(network_id: str):
    examples = _state().store.get_training_data(network_id)
    if examples is None:
        raise NotFound('No training data saved for this network')
    return jsonify({'network_id': network_id, 'examples': examples}), 200


@api.route('/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'preset': 'xor',          # or 'examples': [{'inputs', 'target'}]
            'iterations': 1000,
            'batchSize': 10
        }

    Without 'preset' or 'examples' the network's saved training data is
    used.

    Returns:
        JSON with job_id, network_id, and status
    """
    state = _state()
    entry = _get_entry(network_id)
    data = _json_body()
    examples = _parse_examples(data, network_id)
    iterations = data.get('iterations', 1000)
    batch_size = data.get('batchSize', 10)

    if not isinstance(iterations, int) or iterations < 1:
        return jsonify({'error': 'iterations must be a positive integer'}), 400
    if not isinstance(batch_size, int) or batch_size < 1:
        return jsonify({'error': 'batchSize must be a positive integer'}), 400

    _check_example_widths(entry['network'], examples)

    job_id = str(uuid.uuid4())
    state.training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'iterations': iterations,
        'stop_requested': False
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"iterations={iterations}, batch_size={batch_size}"
    )

    socketio.start_background_task(
        run_training_job,
        state, network_id, job_id, examples, iterations, batch_size
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def run_training_job(
    state: ServerState,
    network_id: str,
    job_id: str,
    examples: List[Tuple[List[float], Any]],
    iterations: int,
    batch_size: int
) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket after every batch.
    """
    entry = state.active_networks[network_id]
    job = state.training_jobs[job_id]

    def on_batch_complete(data: Dict[str, Any]) -> None:
        job['status'] = 'training'
        job['progress'] = data['progress']
        job['error'] = data['batch_error']

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'iteration': data['iteration'],
            'total_iterations': data['total_iterations'],
            'error': data['batch_error'],
            'progress': data['progress'],
            'elapsed_time': data['elapsed_time']
        })

    try:
        logger.info(f"Starting training for job {job_id}")

        train_examples(
            entry['network'],
            examples,
            iterations,
            batch_size,
            callback=on_batch_complete,
            yield_func=lambda: socketio.sleep(0),
            history=entry['history'],
            should_stop=lambda: job['stop_requested']
        )

        accuracy = evaluate_examples(entry['network'], examples)
        entry['trained'] = True
        entry['accuracy'] = accuracy

        job['status'] = 'stopped' if job['stop_requested'] else 'completed'
        job['accuracy'] = accuracy
        job['final_error'] = entry['history'].latest

        logger.info(f"Training {job['status']} for job {job_id}: accuracy {accuracy:.2%}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': job['status'],
            'accuracy': accuracy,
            'error': job['final_error'],
            'progress': job['progress']
        })

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        job['status'] = 'failed'
        job['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })


@api.route('/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    job = _state().training_jobs.get(job_id)
    if job is None:
        logger.warning(f"Status requested for non-existent job: {job_id}")
        return jsonify({'error': 'Training job not found'}), 404
    return jsonify(job), 200


@api.route('/training/<job_id>/stop', methods=['POST'])
def stop_training(job_id: str):
    """Ask a running job to stop after its current batch."""
    job = _state().training_jobs.get(job_id)
    if job is None:
        return jsonify({'error': 'Training job not found'}), 404
    job['stop_requested'] = True
    return jsonify({'job_id': job_id, 'status': 'stop_requested'}), 200


# ============================================================================
# PRESETS, SETTINGS, MAINTENANCE
# ============================================================================

@api.route('/presets', methods=['GET'])
def get_presets():
    return jsonify({'presets': list_presets()}), 200


@api.route('/settings', methods=['GET'])
def get_settings():
    return jsonify(_state().store.get_settings()), 200


@api.route('/settings', methods=['PUT'])
def update_settings():
    try:
        settings = _state().store.save_settings(_json_body())
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(settings), 200


@api.route('/current_network', methods=['GET'])
def get_current_network():
    """The network the user last selected, or null."""
    return jsonify({'network_id': _state().store.get_current_network()}), 200


@api.route('/current_network', methods=['PUT'])
def set_current_network():
    """Select a network. Body: {'network_id': '...'}; null clears it."""
    state = _state()
    network_id = _json_body().get('network_id')
    if network_id is not None:
        _get_entry(network_id)
    state.store.set_current_network(network_id)
    return jsonify({'network_id': network_id}), 200


@api.route('/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of saved networks older than ``days``.

    Request body (optional):
        {'days': 2}
    """
    state = _state()
    days = _json_body().get('days', state.settings.cleanup_days)

    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = delete_old_networks(state.store, days=days)
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    state.drop_purged_networks()

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")
    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200


def cleanup_finished_training_jobs(state: ServerState) -> int:
    """Remove completed, stopped or failed training jobs from memory."""
    finished_statuses = {'completed', 'stopped', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job in state.training_jobs.items()
        if job.get('status') in finished_statuses
    ]
    for job_id in jobs_to_remove:
        del state.training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")
    return len(jobs_to_remove)


def cleanup_task(state: ServerState, interval: float = 86400) -> None:
    """
    Purge old saved networks and finished jobs, then sleep ``interval``
    seconds and repeat.
    """
    while True:
        try:
            deleted_count = delete_old_networks(state.store, days=state.settings.cleanup_days)
            logger.info(f"Cleanup deleted {deleted_count} old network(s)")
            if deleted_count > 0:
                state.drop_purged_networks()
            cleanup_finished_training_jobs(state)
            gevent.sleep(interval)
        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


# ============================================================================
# APP FACTORY AND STARTUP
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ModelStore] = None
) -> Flask:
    """
    Build the Flask application.

    Args:
        settings: Server settings; read from the environment by default
        store: Persistence service; a ModelDatabase at settings.db_path
            by default

    Returns:
        Flask: The configured application, with SocketIO attached
    """
    if settings is None:
        settings = Settings.from_env()
    if store is None:
        store = ModelDatabase(db_path=settings.db_path)

    app = Flask(__name__)
    CORS(app, resources={r"/*": {"origins": "*"}})
    app.register_blueprint(api)

    socketio.init_app(
        app,
        cors_allowed_origins="*",
        async_mode=settings.async_mode,
        logger=not settings.production,
        engineio_logger=not settings.production,
        ping_timeout=60,
        ping_interval=25
    )

    state = ServerState(settings, store)
    state.reload_saved_networks()
    app.extensions['nnsim'] = state
    return app


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings)
    app = create_app(settings)

    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_task, app.extensions['nnsim'])

    logger.info(f"Starting server at http://localhost:{settings.port}/")
    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=settings.port,
            debug=not settings.production,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {settings.port} is already in use.")
            sys.exit(1)
        raise


if __name__ == '__main__':
    main()
