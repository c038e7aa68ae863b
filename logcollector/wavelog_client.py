"""
Wavelog Module
Uploads accepted QSOs to a Wavelog logbook through its QSO API

POST <url>/index.php/api/qso with the QSO as a single ADIF string.
"""

import json
import urllib.error
import urllib.request

from .adif import to_adif, VARIANT_API
from .errors import SinkError

API_PATH = '/index.php/api/qso'


class WavelogClient:
    name = 'Wavelog'

    def __init__(self, wavelog_config, diagnostics, timeout=30):
        """
        Initialize Wavelog client

        Args:
            wavelog_config: WavelogConfig (url, token, station_id)
            diagnostics: Diagnostics sink
            timeout: HTTP timeout in seconds
        """
        self.config = wavelog_config
        self.api_url = wavelog_config.url.rstrip('/') + API_PATH
        self.timeout = timeout
        self.log = diagnostics.module('Wavelog')

    def build_payload(self, record):
        return {
            'key': self.config.token,
            'station_profile_id': self.config.station_id,
            'type': 'adif',
            'string': to_adif(record, VARIANT_API),
        }

    def send(self, record):
        """
        Upload one QSO

        Returns:
            Decoded JSON response, or the raw body if it is not JSON

        Raises:
            SinkError: network failure or non-2xx response (status attached)
        """
        req = urllib.request.Request(
            self.api_url,
            data=json.dumps(self.build_payload(record)).encode('utf-8'),
            headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
            method='POST'
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                status = response.status
                body = response.read().decode('utf-8', errors='replace')
        except urllib.error.HTTPError as e:
            raise SinkError(f"HTTP {e.code}: {e.reason}", status=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            raise SinkError(f"Wavelog upload error: {e}") from e

        if not 200 <= status < 300:
            raise SinkError(f"HTTP {status}: {body[:200]}", status=status)

        try:
            return json.loads(body)
        except ValueError:
            self.log.debug("Wavelog returned a non-JSON response")
            return body
