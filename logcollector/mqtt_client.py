"""
MQTT Module
Publishes accepted QSOs as JSON to an MQTT topic

Connection runs in paho's network thread and reconnects on its own
every 5 seconds. A QSO published while disconnected is not kept.
"""

import json
import uuid

import paho.mqtt.client as mqtt

from .errors import SinkError

RECONNECT_DELAY = 5  # seconds


class MQTTPublisher:
    name = 'MQTT'

    def __init__(self, mqtt_config, diagnostics, timeout=30):
        """
        Initialize MQTT publisher

        Args:
            mqtt_config: MQTTConfig (host, port, topic, credentials, TLS)
            diagnostics: Diagnostics sink
            timeout: Seconds to wait for a publish to complete
        """
        self.config = mqtt_config
        self.timeout = timeout
        self.log = diagnostics.module('MQTT')
        self.client_id = f"UDPLogCollector_{uuid.uuid4().hex[:8]}"
        self.client = None

    def start(self):
        """Connect in the background"""
        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=True,
        )
        if self.config.username:
            self.client.username_pw_set(self.config.username, self.config.password or None)
        if self.config.use_tls:
            self.client.tls_set()

        self.client.reconnect_delay_set(min_delay=RECONNECT_DELAY, max_delay=RECONNECT_DELAY)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self.log.info(f"Connecting to MQTT broker: {self.config.broker}")
        self.client.connect_async(self.config.host, self.config.port)
        self.client.loop_start()

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            self.log.error(f"MQTT connection refused: {reason_code}")
        else:
            self.log.info(f"MQTT connected to {self.config.broker}")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self.log.warn(f"MQTT disconnected ({reason_code}), reconnecting...")

    @property
    def connected(self):
        return self.client is not None and self.client.is_connected()

    def send(self, record):
        """
        Publish one QSO at QoS 1

        Raises:
            SinkError: not connected, publish refused or not completed in time
        """
        if not self.connected:
            raise SinkError("MQTT client not connected")

        payload = json.dumps(record.to_dict() if hasattr(record, 'to_dict') else dict(record))
        info = self.client.publish(self.config.topic, payload, qos=1, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise SinkError(f"MQTT publish error: {mqtt.error_string(info.rc)}")

        try:
            info.wait_for_publish(timeout=self.timeout)
        except (RuntimeError, ValueError) as e:
            raise SinkError(f"MQTT publish error: {e}") from e
        if not info.is_published():
            raise SinkError(f"MQTT publish not acknowledged within {self.timeout}s")

        return f"published to {self.config.topic}"

    def stop(self):
        if self.client:
            self.client.loop_stop()
            self.client.disconnect()
            self.client = None
            self.log.info("MQTT connection closed")
