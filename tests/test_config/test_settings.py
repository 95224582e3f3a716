"""Tests for configuration loading and validation"""

import logging
import os
import tempfile

import pytest

from alert_engine.config.settings import (
    get_default_config,
    load_config,
    merge_configs,
    validate_config,
)
from alert_engine.utils.logger import get_logger, setup_logger

ENV_VARS = [
    'LOG_LEVEL', 'LOG_FILE', 'LOG_FORMAT', 'ALERT_EVALUATION_INTERVAL',
    'ALERT_MAX_HISTORY_SIZE', 'ALERT_ENABLE_ANOMALY_DETECTION', 'ALERT_RULES_FILE',
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_yaml(content):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(content)
        return f.name


class TestLoadConfig:

    def test_defaults(self):
        config = load_config()

        assert config['engine']['log_level'] == 'INFO'
        assert config['alerting']['evaluation_interval'] == 10000
        assert config['alerting']['max_history_size'] == 1000
        assert config['alerting']['enable_anomaly_detection'] is False
        assert config['alerting']['anomaly']['min_data_points'] == 20
        assert config['channels'] == []
        assert config['metrics']['enabled'] is False

    def test_missing_file_uses_defaults(self):
        assert load_config('/nonexistent/config.yaml') == get_default_config()

    def test_yaml_merges_over_defaults(self):
        path = write_yaml("""
alerting:
  evaluation_interval: 5000
  anomaly:
    sensitivity: 0.9
channels:
  - id: ops
    type: webhook
    config:
      url: https://hooks.example.com/ops
""")
        try:
            config = load_config(path)
        finally:
            os.unlink(path)

        assert config['alerting']['evaluation_interval'] == 5000
        assert config['alerting']['max_history_size'] == 1000
        assert config['alerting']['anomaly']['sensitivity'] == 0.9
        assert config['alerting']['anomaly']['std_dev_threshold'] == 3.0
        assert config['channels'][0]['id'] == 'ops'

    def test_invalid_yaml(self):
        path = write_yaml("alerting: [unclosed")
        try:
            with pytest.raises(ValueError, match="Failed to load config"):
                load_config(path)
        finally:
            os.unlink(path)

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv('LOG_LEVEL', 'debug')
        monkeypatch.setenv('LOG_FORMAT', 'JSON')
        monkeypatch.setenv('ALERT_EVALUATION_INTERVAL', '2000')
        monkeypatch.setenv('ALERT_MAX_HISTORY_SIZE', '50')
        monkeypatch.setenv('ALERT_ENABLE_ANOMALY_DETECTION', 'true')
        monkeypatch.setenv('ALERT_RULES_FILE', '/etc/alerts/rules.yaml')

        config = load_config()

        assert config['engine']['log_level'] == 'DEBUG'
        assert config['engine']['log_format'] == 'json'
        assert config['alerting']['evaluation_interval'] == 2000
        assert config['alerting']['max_history_size'] == 50
        assert config['alerting']['enable_anomaly_detection'] is True
        assert config['alerting']['alert_rules_file'] == '/etc/alerts/rules.yaml'

    def test_env_validated(self, monkeypatch):
        monkeypatch.setenv('LOG_LEVEL', 'LOUD')
        with pytest.raises(ValueError, match="Invalid log level"):
            load_config()


def test_merge_configs_is_recursive():
    base = {'a': {'x': 1, 'y': 2}, 'b': 1}
    merged = merge_configs(base, {'a': {'y': 3}, 'c': 4})

    assert merged == {'a': {'x': 1, 'y': 3}, 'b': 1, 'c': 4}
    assert base['a']['y'] == 2


class TestValidateConfig:

    def _config(self, **sections):
        config = get_default_config()
        for section, values in sections.items():
            if isinstance(values, dict):
                config[section].update(values)
            else:
                config[section] = values
        return config

    @pytest.mark.parametrize("sections,message", [
        ({'engine': {'log_format': 'xml'}}, "Invalid log format"),
        ({'alerting': {'evaluation_interval': 0}}, "evaluation_interval"),
        ({'alerting': {'max_history_size': 0}}, "max_history_size"),
        ({'alerting': {'anomaly': {'sensitivity': 2}}}, "sensitivity"),
        ({'alerting': {'anomaly': {'min_data_points': 0}}}, "min_data_points"),
        ({'alerting': {'anomaly': {'std_dev_threshold': 0}}}, "std_dev_threshold"),
        ({'channels': [{'type': 'console'}]}, "needs an id"),
        ({'channels': [{'id': 'a', 'type': 'console'}, {'id': 'a', 'type': 'console'}]}, "Duplicate"),
        ({'channels': [{'id': 'a', 'type': 'fax'}]}, "unsupported type"),
        ({'channels': {'id': 'a'}}, "must be a list"),
        ({'metrics': {'port': 70000}}, "metrics port"),
    ])
    def test_invalid(self, sections, message):
        with pytest.raises(ValueError, match=message):
            validate_config(self._config(**sections))

    def test_aggressive_interval_warns(self):
        with pytest.warns(UserWarning, match="aggressive"):
            validate_config(self._config(alerting={'evaluation_interval': 500}))

    def test_valid_channels(self):
        validate_config(self._config(channels=[
            {'id': 'hook', 'type': 'webhook'},
            {'id': 'page', 'type': 'pagerduty'},
        ]))


class TestLogger:

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        yield
        logger = logging.getLogger('alert_engine')
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

    def test_setup_text_logger(self):
        logger = setup_logger({'engine': {'log_level': 'DEBUG'}})

        assert logger.name == 'alert_engine'
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_json_logger_writes_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = os.path.join(tmpdir, 'logs', 'engine.log')
            logger = setup_logger({'engine': {'log_level': 'INFO', 'log_format': 'json', 'log_file': log_file}})

            get_logger('Test').info("hello")
            for handler in logger.handlers:
                handler.flush()

            with open(log_file) as f:
                line = f.read()

        assert '"message": "hello"' in line
        assert '"logger": "alert_engine.Test"' in line

    def test_get_logger_is_namespaced(self):
        assert get_logger('AlertManager').name == 'alert_engine.AlertManager'
