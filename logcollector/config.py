"""
Configuration Module
Loads config/settings.json, applies command-line overrides and checks
the result before anything is started.

Every problem found here is a ConfigError; the entry point reports it
and exits with status 1 before the UDP listener is opened.
"""

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from . import __version__
from .diagnostics import parse_level
from .errors import ConfigError

DEFAULT_CONFIG_FILE = 'config/settings.json'

DEFAULT_SETTINGS = {
    'udp_host': '127.0.0.1',
    'udp_port': 2237,  # WSJT-X default UDP server port
    'adif_path': '',  # Empty disables the ADIF file
    'program_id': 'UDPLogCollector',
    'program_version': __version__,
    # MQTT
    'mqtt_broker': '',  # mqtt://host:port or mqtts://host:port
    'mqtt_topic': 'qso/log',
    'mqtt_username': '',
    'mqtt_password': '',
    # Wavelog
    'wavelog_url': '',
    'wavelog_token': '',
    'wavelog_station_id': '',
    # Sinks
    'http_timeout': 30,  # seconds, also used for MQTT publish
    'sink_queue_size': 100,  # QSOs waiting per MQTT/Wavelog worker
    # Console output
    'log_level': 'none',
    'log_colors': True,
}

MQTT_SCHEMES = {'mqtt': 1883, 'mqtts': 8883}

# argparse dest -> settings key
CLI_OVERRIDES = {
    'host': 'udp_host',
    'port': 'udp_port',
    'adif': 'adif_path',
    'mqtt_broker': 'mqtt_broker',
    'mqtt_topic': 'mqtt_topic',
    'mqtt_username': 'mqtt_username',
    'mqtt_password': 'mqtt_password',
    'wavelog_url': 'wavelog_url',
    'wavelog_token': 'wavelog_token',
    'wavelog_station_id': 'wavelog_station_id',
    'log_level': 'log_level',
}


@dataclass
class MQTTConfig:
    broker: str
    host: str
    port: int
    topic: str = 'qso/log'
    username: str = ''
    password: str = ''
    use_tls: bool = False


@dataclass
class WavelogConfig:
    url: str
    token: str
    station_id: str


@dataclass
class CollectorConfig:
    udp_host: str = '127.0.0.1'
    udp_port: int = 2237
    adif_path: Optional[Path] = None
    program_id: str = 'UDPLogCollector'
    program_version: str = __version__
    mqtt: Optional[MQTTConfig] = None
    wavelog: Optional[WavelogConfig] = None
    http_timeout: float = 30
    sink_queue_size: int = 100
    log_level: str = 'none'
    log_colors: bool = True


def build_arg_parser():
    parser = argparse.ArgumentParser(
        prog='udp-log-collector',
        description="Collect logged QSOs from WSJT-X and N1MM+ over UDP and forward them "
                    "to an ADIF file, an MQTT broker and Wavelog.",
        epilog="Examples:\n"
               "  udp-log-collector --port 2237 --adif ./logs/qso.adi\n"
               "  udp-log-collector --mqtt-broker mqtt://localhost:1883 --mqtt-topic ham/qso\n"
               "  udp-log-collector --wavelog-url https://log.example.com --wavelog-token KEY "
               "--wavelog-station-id 1",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('-c', '--config', default=DEFAULT_CONFIG_FILE,
                        help=f"Settings file (default: {DEFAULT_CONFIG_FILE})")
    parser.add_argument('--host', help="Address to listen on (default: 127.0.0.1)")
    parser.add_argument('-p', '--port', type=int, help="UDP port to listen on (default: 2237)")
    parser.add_argument('-a', '--adif', help="ADIF log file to append QSOs to")
    parser.add_argument('--mqtt-broker', help="MQTT broker URL (mqtt://host:port or mqtts://host:port)")
    parser.add_argument('--mqtt-topic', help="MQTT topic (default: qso/log)")
    parser.add_argument('--mqtt-username', help="MQTT username")
    parser.add_argument('--mqtt-password', help="MQTT password")
    parser.add_argument('--wavelog-url', help="Wavelog base URL")
    parser.add_argument('--wavelog-token', help="Wavelog API key")
    parser.add_argument('--wavelog-station-id', help="Wavelog station profile ID")
    parser.add_argument('-l', '--log-level',
                        help="none, error, warn, info, debug or trace (default: none)")
    parser.add_argument('--no-color', dest='log_colors', action='store_false', default=None,
                        help="Plain console output")
    return parser


def save_settings(config_file, settings):
    """Save settings to JSON file"""
    config_file = Path(config_file)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, 'w') as f:
        json.dump(settings, f, indent=2)


def load_settings(config_file=DEFAULT_CONFIG_FILE):
    """
    Load settings from JSON file over the defaults

    A missing file is created with the defaults.

    Raises:
        ConfigError: file cannot be read or written, or is not a JSON object
    """
    config_file = Path(config_file)
    settings = dict(DEFAULT_SETTINGS)

    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read settings file {config_file}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Settings file {config_file} must contain a JSON object")
        settings.update(loaded)
    else:
        try:
            save_settings(config_file, settings)
        except OSError as e:
            raise ConfigError(f"Cannot create settings file {config_file}: {e}") from e

    return settings


def apply_overrides(settings, args):
    """Return a copy of settings with every command-line option that was given"""
    merged = dict(settings)
    for dest, key in CLI_OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            merged[key] = value
    if getattr(args, 'log_colors', None) is not None:
        merged['log_colors'] = args.log_colors
    return merged


def _text(settings, key):
    value = settings.get(key)
    if value is None:
        return ''
    return str(value).strip()


def _check_port(value):
    if isinstance(value, bool):
        raise ConfigError(f"Invalid port number \"{value}\"")
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port number \"{value}\"") from None
    if port < 1 or port > 65535:
        raise ConfigError(f"Invalid port number \"{value}\"")
    return port


def _positive(settings, key, kind):
    value = settings.get(key)
    try:
        number = kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a positive number, got \"{value}\"") from None
    if isinstance(value, bool) or number <= 0:
        raise ConfigError(f"{key} must be a positive number, got \"{value}\"")
    return number


def build_mqtt_config(settings):
    """
    MQTT settings, or None when no MQTT option is set

    A broker without a scheme is taken as mqtt://.
    """
    broker = _text(settings, 'mqtt_broker')
    topic = _text(settings, 'mqtt_topic') or DEFAULT_SETTINGS['mqtt_topic']
    username = _text(settings, 'mqtt_username')
    password = _text(settings, 'mqtt_password')

    if not broker:
        if username or password or topic != DEFAULT_SETTINGS['mqtt_topic']:
            raise ConfigError("--mqtt-broker is required when using MQTT options")
        return None

    if '://' not in broker:
        broker = f"mqtt://{broker}"

    parts = urlsplit(broker)
    if parts.scheme not in MQTT_SCHEMES:
        raise ConfigError(f"MQTT broker must start with mqtt:// or mqtts://, got \"{broker}\"")
    try:
        port = parts.port or MQTT_SCHEMES[parts.scheme]
    except ValueError:
        raise ConfigError(f"Invalid MQTT broker port in \"{broker}\"") from None
    if not parts.hostname:
        raise ConfigError(f"MQTT broker has no host: \"{broker}\"")

    return MQTTConfig(
        broker=broker,
        host=parts.hostname,
        port=port,
        topic=topic,
        username=username,
        password=password,
        use_tls=parts.scheme == 'mqtts',
    )


def build_wavelog_config(settings):
    """Wavelog settings, or None when no Wavelog option is set"""
    url = _text(settings, 'wavelog_url')
    token = _text(settings, 'wavelog_token')
    station_id = _text(settings, 'wavelog_station_id')

    if not (url or token or station_id):
        return None
    if not url:
        raise ConfigError("Wavelog URL is required")
    if not token:
        raise ConfigError("Wavelog API token is required")
    if not station_id:
        raise ConfigError("Wavelog station ID is required")
    if not (url.startswith('http://') or url.startswith('https://')):
        raise ConfigError(f"Wavelog URL must start with http:// or https://, got \"{url}\"")

    return WavelogConfig(url=url.rstrip('/'), token=token, station_id=station_id)


def build_config(settings):
    """
    Turn merged settings into a checked CollectorConfig

    Raises:
        ConfigError: on the first invalid or incomplete setting
    """
    log_level = _text(settings, 'log_level') or 'none'
    try:
        parse_level(log_level)
    except ValueError as e:
        raise ConfigError(str(e)) from None

    adif_path = _text(settings, 'adif_path')

    return CollectorConfig(
        udp_host=_text(settings, 'udp_host') or DEFAULT_SETTINGS['udp_host'],
        udp_port=_check_port(settings.get('udp_port')),
        adif_path=Path(adif_path) if adif_path else None,
        program_id=_text(settings, 'program_id') or DEFAULT_SETTINGS['program_id'],
        program_version=_text(settings, 'program_version') or __version__,
        mqtt=build_mqtt_config(settings),
        wavelog=build_wavelog_config(settings),
        http_timeout=_positive(settings, 'http_timeout', float),
        sink_queue_size=_positive(settings, 'sink_queue_size', int),
        log_level=log_level.lower(),
        log_colors=bool(settings.get('log_colors', True)),
    )


def load_config(argv=None):
    """
    Parse the command line, load the settings file and build the config

    Returns:
        (CollectorConfig, argparse.Namespace)
    """
    args = build_arg_parser().parse_args(argv)
    settings = apply_overrides(load_settings(args.config), args)
    return build_config(settings), args
