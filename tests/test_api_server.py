"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API, using the Flask test client and an in-memory
store.
"""

import pytest

from nnsim.api_server import (
    cleanup_finished_training_jobs,
    create_app,
    run_training_job,
    socketio,
)
from nnsim.config import Settings
from nnsim.model_persistence import InMemoryModelStore, save_network
from nnsim.network import NeuralNetwork


@pytest.fixture
def store():
    return InMemoryModelStore()


@pytest.fixture
def app(store):
    settings = Settings(async_mode='threading', max_resolution=30)
    app = create_app(settings, store=store)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def network_id(client):
    response = client.post('/api/networks', json={
        'layers': [2, 3, 1], 'learningRate': 0.5, 'activation': 'sigmoid'
    })
    return response.get_json()['network_id']


@pytest.mark.unit
class TestNetworkEndpoints:

    def test_status(self, client, network_id):
        data = client.get('/api/status').get_json()
        assert data == {'status': 'online', 'active_networks': 1, 'training_jobs': 0}

    def test_create_network_defaults(self, client):
        response = client.post('/api/networks')
        data = response.get_json()

        assert response.status_code == 201
        assert data['architecture'] == [2, 4, 3, 1]
        assert data['activation'] == 'sigmoid'
        assert data['learningRate'] == 0.1

    @pytest.mark.parametrize('body,error_type', [
        ({'layers': [2]}, 'InvalidTopology'),
        ({'layers': [2, 0]}, 'InvalidTopology'),
        ({'learningRate': -1}, 'InvalidLearningRate'),
        ({'activation': 'swish'}, 'UnsupportedActivation'),
    ])
    def test_create_network_rejects_bad_config(self, client, body, error_type):
        response = client.post('/api/networks', json=body)
        assert response.status_code == 400
        assert response.get_json()['type'] == error_type

    def test_unknown_network(self, client):
        response = client.post('/api/networks/missing/forward', json={'inputs': [0, 1]})
        assert response.status_code == 404

    def test_forward(self, client, network_id):
        response = client.post(f'/api/networks/{network_id}/forward', json={'inputs': [0, 1]})
        output = response.get_json()['output']

        assert response.status_code == 200
        assert len(output) == 1
        assert 0.0 < output[0] < 1.0

    def test_forward_size_mismatch(self, client, network_id):
        response = client.post(f'/api/networks/{network_id}/forward', json={'inputs': [0]})
        assert response.status_code == 400
        assert response.get_json()['type'] == 'InputSizeMismatch'

    def test_train_step_records_history(self, client, network_id):
        response = client.post(
            f'/api/networks/{network_id}/train_step',
            json={'inputs': [1, 0], 'targets': [1]}
        )
        data = response.get_json()

        assert response.status_code == 200
        assert data['error'] >= 0.0

        history = client.get(f'/api/networks/{network_id}/history').get_json()
        assert history['errors'] == [data['error']]

        points = client.get(f'/api/networks/{network_id}/training_points').get_json()
        assert points['points'] == [{'inputs': [1.0, 0.0], 'target': 1.0}]

    def test_train_step_target_mismatch(self, client, network_id):
        response = client.post(
            f'/api/networks/{network_id}/train_step',
            json={'inputs': [1, 0], 'targets': [1, 0]}
        )
        assert response.status_code == 400
        assert response.get_json()['type'] == 'TargetSizeMismatch'

    def test_set_activation_clears_history(self, client, network_id):
        client.post(f'/api/networks/{network_id}/train_step',
                    json={'inputs': [1, 0], 'targets': [1]})

        response = client.put(f'/api/networks/{network_id}/activation',
                              json={'activation': 'tanh'})

        assert response.get_json()['activation'] == 'tanh'
        assert client.get(f'/api/networks/{network_id}/history').get_json()['errors'] == []

        response = client.put(f'/api/networks/{network_id}/activation',
                              json={'activation': 'elu'})
        assert response.status_code == 400

    def test_state_download_and_upload(self, client, network_id):
        state = client.get(f'/api/networks/{network_id}').get_json()

        response = client.post('/api/networks/load', json=state)
        new_id = response.get_json()['network_id']

        assert response.status_code == 201
        assert new_id != network_id
        assert client.get(f'/api/networks/{new_id}').get_json() == state

    def test_upload_invalid_state(self, client):
        response = client.post('/api/networks/load', json={'layers': [2, 1]})
        assert response.status_code == 400
        assert response.get_json()['type'] == 'InvalidState'

    def test_reset(self, client, network_id):
        before = client.get(f'/api/networks/{network_id}').get_json()
        response = client.post(f'/api/networks/{network_id}/reset')

        assert response.status_code == 200
        assert client.get(f'/api/networks/{network_id}').get_json()['weights'] != before['weights']


@pytest.mark.unit
class TestVisualizationEndpoints:

    def test_decision_boundary(self, client, network_id):
        response = client.get(
            f'/api/networks/{network_id}/decision_boundary?resolution=4&xMin=-1&xMax=1'
        )
        data = response.get_json()

        assert response.status_code == 200
        assert len(data['points']) == 25
        first, last = data['points'][0], data['points'][-1]
        assert (first['x'], first['y']) == (-1.0, 0.0)
        assert (last['x'], last['y']) == (1.0, 1.0)

    def test_resolution_limit(self, client, network_id):
        response = client.get(f'/api/networks/{network_id}/decision_boundary?resolution=31')
        assert response.status_code == 400

    def test_bad_grid_argument(self, client, network_id):
        response = client.get(f'/api/networks/{network_id}/gradient_field?xMin=left')
        assert response.status_code == 400

    def test_gradient_field(self, client, network_id):
        data = client.get(f'/api/networks/{network_id}/gradient_field?resolution=3').get_json()
        assert len(data['vectors']) == 16
        assert set(data['vectors'][0]) == {'x', 'y', 'dx', 'dy'}

    def test_decision_boundary_image(self, client, network_id):
        response = client.get(f'/api/networks/{network_id}/decision_boundary.png?resolution=5')
        assert response.status_code == 200
        assert response.get_json()['image_data']


@pytest.mark.unit
class TestPersistenceEndpoints:

    def test_save_list_delete(self, client, store, network_id):
        response = client.post(f'/api/networks/{network_id}/save', json={'name': 'mine'})
        assert response.status_code == 200
        assert store.get_network_metadata_from_db(network_id)['name'] == 'mine'

        networks = client.get('/api/networks').get_json()['networks']
        assert [n['network_id'] for n in networks] == [network_id]
        assert networks[0]['status'] == 'in_memory'

        response = client.delete(f'/api/networks/{network_id}')
        assert response.get_json() == {
            'network_id': network_id,
            'deleted_from_memory': True,
            'deleted_from_store': True
        }
        assert client.delete(f'/api/networks/{network_id}').status_code == 404

    def test_saved_networks_reload_on_startup(self, store):
        net = NeuralNetwork([2, 2, 1], rng=1)
        save_network(store, net, 'persisted', name='old', trained=True, accuracy=1.0)

        app = create_app(Settings(async_mode='threading'), store=store)
        state = app.test_client().get('/api/networks/persisted').get_json()

        assert state == net.get_state()

    def test_cleanup(self, client, store, network_id):
        client.post(f'/api/networks/{network_id}/save')
        store._networks[network_id]['created_at'] = '2000-01-01 00:00:00'

        response = client.post('/api/networks/cleanup', json={'days': 2})

        assert response.get_json()['deleted_count'] == 1
        assert client.get(f'/api/networks/{network_id}').status_code == 404

    def test_cleanup_rejects_negative_days(self, client):
        assert client.post('/api/networks/cleanup', json={'days': -1}).status_code == 400

    def test_settings(self, client):
        assert client.get('/api/settings').get_json()['theme'] == 'dark'

        response = client.put('/api/settings', json={'theme': 'light'})
        assert response.get_json()['theme'] == 'light'
        assert client.get('/api/settings').get_json()['theme'] == 'light'

        assert client.put('/api/settings', json={'theme': 'neon'}).status_code == 400

    def test_training_data(self, client, store, network_id):
        url = f'/api/networks/{network_id}/training_data'
        assert client.get(url).status_code == 404

        response = client.put(url, json={'examples': [
            {'inputs': [0, 1], 'target': 1}, {'inputs': [1, 1], 'target': 0}
        ]})

        assert response.status_code == 200
        assert client.get(url).get_json()['examples'] == [
            {'inputs': [0.0, 1.0], 'target': [1.0]},
            {'inputs': [1.0, 1.0], 'target': [0.0]},
        ]
        assert store.get_training_data(network_id) is not None

    def test_training_data_must_fit_network(self, client, store, network_id):
        url = f'/api/networks/{network_id}/training_data'

        response = client.put(url, json={'examples': [{'inputs': [0, 1, 1], 'target': 1}]})
        assert response.get_json()['type'] == 'InputSizeMismatch'

        response = client.put(url, json={'examples': [{'inputs': [0, 1], 'target': [1, 0]}]})
        assert response.get_json()['type'] == 'TargetSizeMismatch'

        assert client.put(url, json={'examples': []}).status_code == 400
        assert store.get_training_data(network_id) is None

    def test_deleting_network_drops_training_data(self, client, store, network_id):
        client.put(f'/api/networks/{network_id}/training_data',
                   json={'examples': [{'inputs': [0, 1], 'target': 1}]})

        client.delete(f'/api/networks/{network_id}')

        assert store.get_training_data(network_id) is None

    def test_current_network(self, client, network_id):
        assert client.get('/api/current_network').get_json() == {'network_id': None}

        response = client.put('/api/current_network', json={'network_id': network_id})
        assert response.status_code == 200
        assert client.get('/api/current_network').get_json() == {'network_id': network_id}

        assert client.put('/api/current_network', json={'network_id': 'nope'}).status_code == 404

        client.delete(f'/api/networks/{network_id}')
        assert client.get('/api/current_network').get_json() == {'network_id': None}

    def test_presets(self, client):
        presets = client.get('/api/presets').get_json()['presets']
        assert {p['key'] for p in presets} == {'xor', 'and', 'or'}


@pytest.mark.integration
class TestTrainingJobs:

    def test_training_request_validation(self, client, network_id):
        url = f'/api/networks/{network_id}/train'
        assert client.post(url, json={}).status_code == 400
        assert client.post(url, json={'preset': 'nand'}).status_code == 400
        assert client.post(url, json={'preset': 'xor', 'iterations': 0}).status_code == 400
        assert client.post(url, json={'examples': [{'inputs': [1]}]}).status_code == 400

        response = client.post(url, json={'examples': [{'inputs': [0, 1], 'target': [1, 0]}]})
        assert response.get_json()['type'] == 'TargetSizeMismatch'

    def test_training_request_accepted(self, client, network_id, monkeypatch):
        started = []
        monkeypatch.setattr(
            socketio, 'start_background_task',
            lambda target, *args: started.append((target, args))
        )

        response = client.post(f'/api/networks/{network_id}/train',
                               json={'preset': 'or', 'iterations': 20, 'batchSize': 5})
        data = response.get_json()

        assert response.status_code == 202
        assert data['status'] == 'training_started'
        status = client.get(f"/api/training/{data['job_id']}")
        assert status.status_code == 200
        assert status.get_json()['status'] == 'pending'

        target, args = started[0]
        assert target is run_training_job
        assert args[1:3] == (network_id, data['job_id'])
        assert args[4:] == (20, 5)
        assert args[3] == [([0, 0], 0), ([0, 1], 1), ([1, 0], 1), ([1, 1], 1)]

    def test_training_falls_back_to_saved_data(self, client, network_id, monkeypatch):
        started = []
        monkeypatch.setattr(
            socketio, 'start_background_task',
            lambda target, *args: started.append(args)
        )
        client.put(f'/api/networks/{network_id}/training_data',
                   json={'examples': [{'inputs': [0, 1], 'target': 1}]})

        response = client.post(f'/api/networks/{network_id}/train', json={'iterations': 5})

        assert response.status_code == 202
        assert started[0][3] == [([0.0, 1.0], [1.0])]

    def test_run_training_job(self, app, client, network_id):
        """Test the background task body directly."""
        state = app.extensions['nnsim']
        state.training_jobs['job'] = {
            'network_id': network_id, 'status': 'pending',
            'progress': 0, 'iterations': 40, 'stop_requested': False
        }
        examples = [([0, 0], 0), ([0, 1], 1), ([1, 0], 1), ([1, 1], 1)]

        run_training_job(state, network_id, 'job', examples, 40, 10)

        job = client.get('/api/training/job').get_json()
        assert job['status'] == 'completed'
        assert job['progress'] == 100
        assert 0.0 <= job['accuracy'] <= 1.0
        assert len(state.active_networks[network_id]['history']) == 4
        assert state.active_networks[network_id]['trained'] is True

        assert cleanup_finished_training_jobs(state) == 1
        assert client.get('/api/training/job').status_code == 404

    def test_stop_request(self, app, client, network_id):
        state = app.extensions['nnsim']
        state.training_jobs['job'] = {
            'network_id': network_id, 'status': 'pending',
            'progress': 0, 'iterations': 40, 'stop_requested': False
        }

        assert client.post('/api/training/job/stop').status_code == 200
        run_training_job(state, network_id, 'job', [([0, 0], 0)], 40, 10)

        assert state.training_jobs['job']['status'] == 'stopped'
        assert len(state.active_networks[network_id]['history']) == 0

    def test_unknown_job(self, client):
        assert client.get('/api/training/nope').status_code == 404
        assert client.post('/api/training/nope/stop').status_code == 404
