"""
Tests for the outputs - ADIF file, MQTT publisher and Wavelog client.
Network libraries are replaced with mocks.
"""
import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from logcollector.adif import FieldRecord
from logcollector.adif_file import ADIFFileSink
from logcollector.config import MQTTConfig, WavelogConfig
from logcollector.diagnostics import Diagnostics
from logcollector.errors import SinkError
from logcollector.mqtt_client import MQTTPublisher
from logcollector.wavelog_client import WavelogClient

HEADER = (
    "ADIF Export from UDPLogCollector\n"
    "<ADIF_VER:5>3.1.4\n"
    "<PROGRAMID:15>UDPLogCollector\n"
    "<PROGRAMVERSION:5>1.0.0\n"
    "<EOH>\n"
)


@pytest.fixture
def diagnostics():
    return Diagnostics(level='trace', use_colors=False, out=io.StringIO(), err=io.StringIO())


@pytest.fixture
def record():
    return FieldRecord.from_mapping({
        'call': 'W1AW',
        'qso_date': '2024-01-15',
        'time_on': '14:30:22',
        'band': '20m',
        'freq': 14.074,
        'mode': 'FT8',
    })


class TestADIFFileSink:

    def test_start_creates_file_with_header(self, tmp_path, diagnostics):
        path = tmp_path / 'logs' / 'qso.adi'
        sink = ADIFFileSink(path, diagnostics)
        sink.start()
        assert path.read_text(encoding='utf-8') == HEADER

    def test_append_writes_one_line(self, tmp_path, diagnostics, record):
        path = tmp_path / 'qso.adi'
        sink = ADIFFileSink(path, diagnostics)
        sink.start()
        sink.append(record)
        sink.append(record)
        line = "<CALL:4>W1AW <QSO_DATE:8>20240115 <TIME_ON:6>143022 <BAND:3>20m <FREQ:6>14.074 <MODE:3>FT8 <EOR>\n"
        assert path.read_text(encoding='utf-8') == HEADER + line + line

    def test_existing_file_keeps_content(self, tmp_path, diagnostics, record):
        path = tmp_path / 'qso.adi'
        path.write_text("existing\n", encoding='utf-8')
        sink = ADIFFileSink(path, diagnostics)
        sink.start()
        sink.append({'call': 'K1JT'})
        assert path.read_text(encoding='utf-8') == "existing\n<CALL:4>K1JT <EOR>\n"

    def test_custom_program_id(self, tmp_path, diagnostics):
        path = tmp_path / 'qso.adi'
        ADIFFileSink(path, diagnostics, program_id='MyCollector', program_version='2.1').start()
        text = path.read_text(encoding='utf-8')
        assert text.startswith("ADIF Export from MyCollector\n")
        assert "<PROGRAMID:11>MyCollector\n<PROGRAMVERSION:3>2.1\n" in text

    def test_failed_header_disables_sink(self, tmp_path, diagnostics):
        blocker = tmp_path / 'blocker'
        blocker.write_text('')
        sink = ADIFFileSink(blocker / 'qso.adi', diagnostics)
        sink.start()
        assert not sink.enabled
        assert "Error initializing ADIF file" in diagnostics._err.getvalue()

    def test_append_when_disabled(self, diagnostics, record):
        sink = ADIFFileSink(None, diagnostics)
        with pytest.raises(SinkError):
            sink.append(record)


@pytest.fixture
def mqtt_config():
    return MQTTConfig(broker='mqtt://localhost', host='localhost', port=1883)


class TestMQTTPublisher:

    def test_start_connects_in_background(self, diagnostics):
        config = MQTTConfig(broker='mqtts://broker.example.com', host='broker.example.com',
                            port=8883, username='user', password='pass', use_tls=True)
        with patch('logcollector.mqtt_client.mqtt.Client') as mock_client:
            publisher = MQTTPublisher(config, diagnostics)
            publisher.start()
            client = mock_client.return_value
            client.username_pw_set.assert_called_once_with('user', 'pass')
            client.tls_set.assert_called_once()
            client.reconnect_delay_set.assert_called_once_with(min_delay=5, max_delay=5)
            client.connect_async.assert_called_once_with('broker.example.com', 8883)
            client.loop_start.assert_called_once()
        assert publisher.client_id.startswith('UDPLogCollector_')
        assert len(publisher.client_id) == len('UDPLogCollector_') + 8

    def test_no_credentials_no_tls(self, diagnostics, mqtt_config):
        with patch('logcollector.mqtt_client.mqtt.Client') as mock_client:
            MQTTPublisher(mqtt_config, diagnostics).start()
            client = mock_client.return_value
            client.username_pw_set.assert_not_called()
            client.tls_set.assert_not_called()

    def test_send_publishes_json(self, diagnostics, mqtt_config, record):
        with patch('logcollector.mqtt_client.mqtt.Client') as mock_client:
            client = mock_client.return_value
            client.is_connected.return_value = True
            client.publish.return_value.rc = 0
            client.publish.return_value.is_published.return_value = True

            publisher = MQTTPublisher(mqtt_config, diagnostics, timeout=5)
            publisher.start()
            publisher.send(record)

            topic, payload = client.publish.call_args[0]
            assert topic == 'qso/log'
            assert json.loads(payload) == record.to_dict()
            assert client.publish.call_args[1] == {'qos': 1, 'retain': False}
            client.publish.return_value.wait_for_publish.assert_called_once_with(timeout=5)

    def test_send_when_not_connected(self, diagnostics, mqtt_config, record):
        with patch('logcollector.mqtt_client.mqtt.Client') as mock_client:
            mock_client.return_value.is_connected.return_value = False
            publisher = MQTTPublisher(mqtt_config, diagnostics)
            publisher.start()
            with pytest.raises(SinkError, match="not connected"):
                publisher.send(record)
            mock_client.return_value.publish.assert_not_called()

    def test_send_before_start(self, diagnostics, mqtt_config, record):
        with pytest.raises(SinkError):
            MQTTPublisher(mqtt_config, diagnostics).send(record)

    def test_publish_not_acknowledged(self, diagnostics, mqtt_config, record):
        with patch('logcollector.mqtt_client.mqtt.Client') as mock_client:
            client = mock_client.return_value
            client.is_connected.return_value = True
            client.publish.return_value.rc = 0
            client.publish.return_value.is_published.return_value = False
            publisher = MQTTPublisher(mqtt_config, diagnostics)
            publisher.start()
            with pytest.raises(SinkError):
                publisher.send(record)

    def test_stop_disconnects(self, diagnostics, mqtt_config):
        with patch('logcollector.mqtt_client.mqtt.Client') as mock_client:
            publisher = MQTTPublisher(mqtt_config, diagnostics)
            publisher.start()
            publisher.stop()
            mock_client.return_value.loop_stop.assert_called_once()
            mock_client.return_value.disconnect.assert_called_once()
        assert publisher.client is None


@pytest.fixture
def wavelog(diagnostics):
    config = WavelogConfig(url='https://log.example.com/', token='KEY', station_id='1')
    return WavelogClient(config, diagnostics)


def mock_response(status=200, body=b'{"status": "created"}'):
    response = MagicMock()
    response.status = status
    response.read.return_value = body
    response.__enter__.return_value = response
    return response


class TestWavelogClient:

    def test_payload(self, wavelog, record):
        assert wavelog.build_payload(record) == {
            'key': 'KEY',
            'station_profile_id': '1',
            'type': 'adif',
            'string': "<CALL:4>W1AW<QSO_DATE:8>20240115<TIME_ON:6>143022<BAND:3>20m<FREQ:6>14.074<MODE:3>FT8<eor>",
        }

    def test_upload(self, wavelog, record):
        with patch('logcollector.wavelog_client.urllib.request.urlopen',
                   return_value=mock_response()) as mock_urlopen:
            assert wavelog.send(record) == {'status': 'created'}

        req = mock_urlopen.call_args[0][0]
        assert req.full_url == 'https://log.example.com/index.php/api/qso'
        assert req.get_method() == 'POST'
        assert req.get_header('Content-type') == 'application/json'
        assert req.get_header('Accept') == 'application/json'
        assert json.loads(req.data) == wavelog.build_payload(record)
        assert mock_urlopen.call_args[1] == {'timeout': 30}

    def test_non_json_response(self, wavelog, record):
        with patch('logcollector.wavelog_client.urllib.request.urlopen',
                   return_value=mock_response(201, b'OK')):
            assert wavelog.send(record) == 'OK'

    def test_http_error_carries_status(self, wavelog, record):
        error = urllib.error.HTTPError('https://log.example.com/index.php/api/qso', 401,
                                       'Unauthorized', None, None)
        with patch('logcollector.wavelog_client.urllib.request.urlopen', side_effect=error):
            with pytest.raises(SinkError) as excinfo:
                wavelog.send(record)
        assert excinfo.value.status == 401
        assert '401' in str(excinfo.value)

    def test_non_2xx_status(self, wavelog, record):
        with patch('logcollector.wavelog_client.urllib.request.urlopen',
                   return_value=mock_response(302, b'moved')):
            with pytest.raises(SinkError) as excinfo:
                wavelog.send(record)
        assert excinfo.value.status == 302

    def test_network_error(self, wavelog, record):
        with patch('logcollector.wavelog_client.urllib.request.urlopen',
                   side_effect=urllib.error.URLError('connection refused')):
            with pytest.raises(SinkError) as excinfo:
                wavelog.send(record)
        assert excinfo.value.status is None

    def test_timeout(self, wavelog, record):
        with patch('logcollector.wavelog_client.urllib.request.urlopen',
                   side_effect=TimeoutError('timed out')):
            with pytest.raises(SinkError):
                wavelog.send(record)
