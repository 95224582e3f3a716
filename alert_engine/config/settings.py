"""Configuration management"""

import os
import warnings
import yaml
from pathlib import Path
from typing import Dict, Any

from alert_engine.alerts.channels.factory import ChannelFactory


def get_default_config() -> Dict[str, Any]:
    """Get default configuration"""
    return {
        'engine': {
            'log_level': 'INFO',
            'log_file': None,
            'log_format': 'text',
        },
        'alerting': {
            'enable_anomaly_detection': False,
            'evaluation_interval': 10000,  # milliseconds
            'max_history_size': 1000,
            'alert_rules_file': None,
            'anomaly': {
                'sensitivity': 0.7,
                'min_data_points': 20,
                'std_dev_threshold': 3.0,
                'enable_spike': True,
                'enable_drop': True,
                'enable_trend_change': True,
                'enable_outlier': True,
            },
        },
        # List of {id, name, type, enabled, config}
        'channels': [],
        'metrics': {
            'enabled': False,
            'host': '0.0.0.0',
            'port': None,
        },
    }


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Load configuration from file and environment variables

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary
    """
    # Start with defaults
    config = get_default_config()

    # Load from YAML file if provided
    if config_path and Path(config_path).exists():
        try:
            with open(config_path, 'r') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config = merge_configs(config, yaml_config)
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Failed to load config from {config_path}: {e}")

    # Override with environment variables
    config = override_from_env(config)

    # Validate configuration
    validate_config(config)

    return config


def merge_configs(base: Dict, override: Dict) -> Dict:
    """Recursively merge two configuration dictionaries"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value
    return result


def override_from_env(config: Dict) -> Dict:
    """Override configuration from environment variables"""

    # Logging settings
    if 'LOG_LEVEL' in os.environ:
        config['engine']['log_level'] = os.environ['LOG_LEVEL'].upper()
    if 'LOG_FILE' in os.environ:
        config['engine']['log_file'] = os.environ['LOG_FILE']
    if 'LOG_FORMAT' in os.environ:
        config['engine']['log_format'] = os.environ['LOG_FORMAT'].lower()

    # Alerting settings
    if 'ALERT_EVALUATION_INTERVAL' in os.environ:
        config['alerting']['evaluation_interval'] = int(os.environ['ALERT_EVALUATION_INTERVAL'])
    if 'ALERT_MAX_HISTORY_SIZE' in os.environ:
        config['alerting']['max_history_size'] = int(os.environ['ALERT_MAX_HISTORY_SIZE'])
    if 'ALERT_ENABLE_ANOMALY_DETECTION' in os.environ:
        config['alerting']['enable_anomaly_detection'] = (
            os.environ['ALERT_ENABLE_ANOMALY_DETECTION'].lower() == 'true'
        )
    if 'ALERT_RULES_FILE' in os.environ:
        config['alerting']['alert_rules_file'] = os.environ['ALERT_RULES_FILE']

    return config


def validate_config(config: Dict):
    """
    Validate configuration values

    Raises:
        ValueError: If configuration is invalid
    """
    # Validate log level
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    log_level = config['engine']['log_level'].upper()
    if log_level not in valid_log_levels:
        raise ValueError(f"Invalid log level: {log_level}. Must be one of {valid_log_levels}")

    valid_formats = ['text', 'json']
    if config['engine']['log_format'] not in valid_formats:
        raise ValueError(f"Invalid log format: {config['engine']['log_format']}. Must be one of {valid_formats}")

    alerting = config['alerting']

    # Check evaluation interval
    eval_interval = alerting.get('evaluation_interval', 10000)
    if eval_interval <= 0:
        raise ValueError(f"Invalid evaluation_interval: {eval_interval}. Must be > 0")
    if eval_interval < 1000:
        warnings.warn(f"Evaluation interval is very aggressive: {eval_interval}ms")

    max_history = alerting.get('max_history_size', 1000)
    if max_history < 1:
        raise ValueError(f"Invalid max_history_size: {max_history}. Must be >= 1")

    # Validate anomaly settings
    anomaly = alerting.get('anomaly') or {}
    sensitivity = anomaly.get('sensitivity', 0.7)
    if not (0 <= sensitivity <= 1):
        raise ValueError(f"Invalid anomaly sensitivity: {sensitivity}. Must be between 0 and 1")
    if anomaly.get('min_data_points', 20) < 1:
        raise ValueError(f"Invalid min_data_points: {anomaly.get('min_data_points')}. Must be >= 1")
    if anomaly.get('std_dev_threshold', 3.0) <= 0:
        raise ValueError(f"Invalid std_dev_threshold: {anomaly.get('std_dev_threshold')}. Must be > 0")

    # Validate channels
    channels = config.get('channels') or []
    if not isinstance(channels, list):
        raise ValueError("channels must be a list")

    seen_ids = set()
    supported = ChannelFactory.supported_types()
    for channel in channels:
        channel_id = channel.get('id')
        if not channel_id:
            raise ValueError("Every channel needs an id")
        if channel_id in seen_ids:
            raise ValueError(f"Duplicate channel id: {channel_id}")
        seen_ids.add(channel_id)

        if channel.get('type') not in supported:
            raise ValueError(f"Channel {channel_id}: unsupported type {channel.get('type')}. Must be one of {supported}")

    # Validate metrics
    port = config['metrics'].get('port')
    if port is not None and not (1 <= port <= 65535):
        raise ValueError(f"Invalid metrics port: {port}. Must be between 1 and 65535")
