#!/usr/bin/env python3
"""
UDP Log Collector
Main application
"""

import signal
import sys
import threading

from logcollector import __version__
from logcollector.adif_file import ADIFFileSink
from logcollector.config import load_config
from logcollector.diagnostics import Diagnostics
from logcollector.dispatcher import Dispatcher
from logcollector.errors import ConfigError
from logcollector.mqtt_client import MQTTPublisher
from logcollector.udp_server import UDPServer
from logcollector.wavelog_client import WavelogClient


def build_sinks(config, diagnostics):
    """Create the ADIF file sink and the network sinks the config asks for"""
    file_sink = None
    if config.adif_path:
        file_sink = ADIFFileSink(config.adif_path, diagnostics,
                                 program_id=config.program_id,
                                 program_version=config.program_version)

    sinks = []
    if config.mqtt:
        sinks.append(MQTTPublisher(config.mqtt, diagnostics, timeout=config.http_timeout))
    if config.wavelog:
        sinks.append(WavelogClient(config.wavelog, diagnostics, timeout=config.http_timeout))
    return file_sink, sinks


def print_banner(config, diagnostics):
    diagnostics.raw("=" * 60)
    diagnostics.raw(f"UDP Log Collector v{__version__}")
    diagnostics.raw("=" * 60)
    diagnostics.raw(f"  UDP:     {config.udp_host}:{config.udp_port}")
    diagnostics.raw(f"  ADIF:    {config.adif_path or 'disabled'}")
    diagnostics.raw(f"  MQTT:    {f'{config.mqtt.broker} -> {config.mqtt.topic}' if config.mqtt else 'disabled'}")
    diagnostics.raw(f"  Wavelog: {config.wavelog.url if config.wavelog else 'disabled'}")
    diagnostics.raw(f"  Log:     {config.log_level}")
    diagnostics.raw()


def main(argv=None):
    try:
        config, _ = load_config(argv)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    diagnostics = Diagnostics(level=config.log_level, use_colors=config.log_colors)
    file_sink, sinks = build_sinks(config, diagnostics)
    dispatcher = Dispatcher(diagnostics, file_sink=file_sink, sinks=sinks,
                            queue_size=config.sink_queue_size)
    server = UDPServer(config, diagnostics, dispatcher)

    print_banner(config, diagnostics)

    stop_event = threading.Event()

    def request_stop(signum, frame):
        stop_event.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    dispatcher.start()
    try:
        server.start_listener()
    except OSError as e:
        print(f"Error: cannot listen on {config.udp_host}:{config.udp_port}: {e}", file=sys.stderr)
        dispatcher.stop()
        return 1

    while not stop_event.wait(1.0):
        pass

    diagnostics.raw("\nShutting down...")
    server.stop_listener()
    dispatcher.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
