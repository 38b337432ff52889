"""
test_config.py
~~~~~~~~~~~~~~

Tests for environment-driven settings.
"""

import pytest

from nnsim.config import Settings


@pytest.mark.unit
class TestSettings:

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.log_level == 'INFO'
        assert settings.production is False
        assert settings.port == 8000
        assert settings.db_path == 'models/networks.db'
        assert settings.cleanup_days == 2
        assert settings.async_mode == 'gevent'
        assert settings.default_layers == [2, 4, 3, 1]

    def test_from_env(self):
        settings = Settings.from_env({
            'LOG_LEVEL': 'debug',
            'FLASK_ENV': 'production',
            'PORT': '9000',
            'NNSIM_DB_PATH': '/tmp/nets.db',
            'NNSIM_MAX_RESOLUTION': '40',
        })

        assert settings.log_level == 'DEBUG'
        assert settings.production is True
        assert settings.port == 9000
        assert settings.db_path == '/tmp/nets.db'
        assert settings.max_resolution == 40

    def test_bad_integer(self):
        with pytest.raises(ValueError) as exc_info:
            Settings.from_env({'PORT': 'eighty'})
        assert 'PORT' in str(exc_info.value)

    def test_default_layers_not_shared(self):
        a, b = Settings(), Settings()
        a.default_layers.append(5)
        assert b.default_layers == [2, 4, 3, 1]
