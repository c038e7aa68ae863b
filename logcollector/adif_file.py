"""
ADIF File Module
Appends accepted QSOs to an ADIF log file

The header is written once, when the file is first created. Records are
appended one line per QSO. This is the durable output, so it is written
in the receive loop before any network sink is tried.
"""

import threading
from pathlib import Path

from .adif import to_adif, file_header, VARIANT_FILE
from .errors import SinkError


class ADIFFileSink:
    name = 'ADIF'

    def __init__(self, file_path, diagnostics, program_id='UDPLogCollector', program_version='1.0.0'):
        """
        Initialize ADIF file output

        Args:
            file_path: Path of the .adi file
            diagnostics: Diagnostics sink
            program_id: PROGRAMID written in the header
            program_version: PROGRAMVERSION written in the header
        """
        self.file_path = Path(file_path) if file_path else None
        self.program_id = program_id
        self.program_version = program_version
        self.log = diagnostics.module('ADIFFile')
        self._lock = threading.Lock()

    @property
    def enabled(self):
        return self.file_path is not None

    def start(self):
        """Create the file with its header if it does not exist yet"""
        if not self.enabled:
            return

        try:
            with self._lock:
                if self.file_path.exists():
                    self.log.info(f"Using existing ADIF file: {self.file_path}")
                    return
                self.file_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.file_path, 'w', encoding='utf-8') as f:
                    f.write(file_header(self.program_id, self.program_version))
            self.log.info(f"ADIF file created: {self.file_path}")
        except OSError as e:
            self.log.error(f"Error initializing ADIF file: {e}")
            self.file_path = None  # Disable ADIF logging

    def append(self, record):
        """
        Append one QSO

        Raises:
            SinkError: if the file cannot be written
        """
        if not self.enabled:
            raise SinkError("ADIF file not configured")

        line = to_adif(record, VARIANT_FILE)
        try:
            with self._lock:
                with open(self.file_path, 'a', encoding='utf-8') as f:
                    f.write(line)
        except OSError as e:
            raise SinkError(f"Error writing to ADIF file: {e}") from e

        self.log.debug(f"QSO appended to {self.file_path}")
        return str(self.file_path)
