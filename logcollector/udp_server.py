"""
UDP Server Module
Receives WSJT-X and N1MM+ datagrams and turns logged QSOs into records

Each datagram is handled completely (sniff, decode, parse, validate,
dispatch) before the next one is read. Nothing that goes wrong with a
single datagram stops the listener.
"""

import json
import socket
import threading
import time

from .adif import parse, validate
from .errors import FramingError
from .sniffer import classify, Protocol
from .wsjtx_protocol import decode_frame, MSG_LOGGED_ADIF

MAX_DATAGRAM = 65535

# N1MM+ command envelope, not part of the QSO
ENVELOPE_FIELDS = ('command', 'parameters')


class UDPServer:
    def __init__(self, config, diagnostics, dispatcher):
        """
        Initialize UDP server

        Args:
            config: CollectorConfig (udp_host, udp_port)
            diagnostics: Diagnostics sink
            dispatcher: Dispatcher that receives each accepted QSO
        """
        self.host = config.udp_host
        self.port = config.udp_port
        self.log = diagnostics.module('UDPServer')
        self.dispatcher = dispatcher

        self.sock = None
        self.address = None
        self.running = False
        self.listen_thread = None

    def start_listener(self):
        """
        Bind the socket and start the listener thread

        Raises:
            OSError: if the address cannot be bound
        """
        self.log.debug(f"Initializing UDP Server on {self.host}:{self.port}")
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        sock.settimeout(1.0)

        self.sock = sock
        self.address = sock.getsockname()
        self.running = True
        self.listen_thread = threading.Thread(target=self._listen_loop, name='udp-listener', daemon=True)
        self.listen_thread.start()
        self.log.success(f"Listening on {self.address[0]}:{self.address[1]}")

    def stop_listener(self):
        """Stop the listener thread and close the socket"""
        self.log.info("Stopping UDP Server")
        self.running = False
        if self.listen_thread:
            self.listen_thread.join(timeout=2)
            self.listen_thread = None
        if self.sock:
            self.sock.close()
            self.sock = None
        self.log.info("Server stopped")

    def _listen_loop(self):
        while self.running:
            try:
                data, addr = self.sock.recvfrom(MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError as e:
                if self.running:
                    self.log.error(f"Server error: {e}")
                    time.sleep(1)
                continue

            self.handle_datagram(data, addr)

    def handle_datagram(self, data, addr=None):
        """
        Process one datagram

        Returns:
            The accepted FieldRecord, or None if the datagram was not a
            valid logged QSO
        """
        source_addr = f"{addr[0]}:{addr[1]}" if addr else 'unknown'
        self.log.trace(f"Received {len(data)} bytes from {source_addr}")

        try:
            if classify(data) is Protocol.TEXT_TAGGED:
                source = 'N1MM'
                adif_text = bytes(data)
            else:
                message = decode_frame(data)
                if message.message_type != MSG_LOGGED_ADIF:
                    self.log.debug(f"Ignored message type {message.message_type} ({message.type})")
                    return None
                if message.adif_text is None:
                    self.log.warn("LoggedADIF message without ADIF text - skipping")
                    return None
                source = 'WSJT-X'
                adif_text = message.adif_text

            record = parse(adif_text)
            if source == 'N1MM':
                for name in ENVELOPE_FIELDS:
                    record.remove(name)

            if not validate(record):
                self.log.warn("Invalid QSO data received - skipping")
                return None

            where = record.get('band') or record.get('freq')
            self.log.success(f"QSO logged from {source}: {record['call']} on {where}")
            self.log.debug(f"QSO data: {json.dumps(record.to_dict(), indent=2)}")

            self.dispatcher.dispatch(record)
            return record

        except FramingError as e:
            self.log.warn(f"Dropped datagram from {source_addr}: {e}")
        except Exception as e:
            self.log.error(f"Parse error: {e}")
        return None
