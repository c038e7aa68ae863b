"""
ADIF Module
Parses, validates and writes ADIF records for logged QSOs

WSJT-X (inside a LoggedADIF frame) and N1MM+ (directly, inside a
<command:3>Log envelope) both hand us ADIF text:

    <CALL:4>W1AW <QSO_DATE:8>20240115 <TIME_ON:6>143022 <FREQ:6>14.074 <EOR>

Lengths are UTF-8 byte counts, both when reading and when writing.
Dates and times are kept as yyyy-mm-dd / hh:mm:ss inside a record and
put back into ADIF form when the record is written out.
"""

import math
from collections.abc import Mapping
from enum import Enum

from .errors import ValidationError

ADIF_VERSION = '3.1.4'

VARIANT_FILE = 'file'
VARIANT_API = 'api'

DATE_FIELDS = {'qso_date'}
TIME_FIELDS = {'time_on', 'time_off'}
FLOAT_FIELDS = {'freq', 'freq_rx'}
INT_FIELDS = {'tx_pwr', 'rx_pwr', 'rst_sent', 'rst_rcvd', 'srx', 'stx'}

# Written first, in this order, when present
PREFERRED_ORDER = (
    'call', 'qso_date', 'time_on', 'time_off', 'band', 'freq', 'mode',
    'rst_sent', 'rst_rcvd', 'tx_pwr', 'gridsquare', 'name', 'comment',
)

# Fields with a slot of their own in FieldRecord; everything else is an extension
KNOWN_FIELDS = PREFERRED_ORDER + ('freq_rx', 'rx_pwr', 'srx', 'stx')


class FieldRecord(Mapping):
    """
    One QSO as an ordered, read-only mapping of lowercase field name to value

    Known fields (KNOWN_FIELDS) live in fixed slots and can be read as
    attributes (record.call, record.freq); anything else goes into the
    ordered `extensions` dict. Iteration follows the order fields were
    first seen, known or not.
    """

    def __init__(self):
        self._known = {}
        self.extensions = {}
        self._order = []

    def __getattr__(self, name):
        if name in KNOWN_FIELDS:
            return self._known.get(name)
        raise AttributeError(name)

    def set(self, name, value):
        """Store a field; a repeated name overwrites but keeps its first position"""
        name = name.lower()
        target = self._known if name in KNOWN_FIELDS else self.extensions
        if name not in target:
            self._order.append(name)
        target[name] = value

    def remove(self, name):
        """Drop a field if present"""
        name = name.lower()
        target = self._known if name in KNOWN_FIELDS else self.extensions
        if name in target:
            del target[name]
            self._order.remove(name)

    def __getitem__(self, name):
        if name in self._known:
            return self._known[name]
        return self.extensions[name]

    def __iter__(self):
        return iter(list(self._order))

    def __len__(self):
        return len(self._order)

    def __repr__(self):
        return f"FieldRecord({self.to_dict()!r})"

    def to_dict(self):
        """Plain dict in encounter order (JSON payload for MQTT)"""
        return {name: self[name] for name in self._order}

    @classmethod
    def from_mapping(cls, mapping):
        record = cls()
        for name, value in mapping.items():
            record.set(name, value)
        return record


class ScanState(Enum):
    SEEK_TAG_START = 'seek_tag_start'
    READ_FIELD_NAME = 'read_field_name'
    READ_LENGTH = 'read_length'
    READ_OPTIONAL_TYPE = 'read_optional_type'
    READ_PAYLOAD = 'read_payload'


def _is_word_byte(byte):
    return (48 <= byte <= 57) or (65 <= byte <= 90) or (97 <= byte <= 122) or byte == 95


def _is_digit_byte(byte):
    return 48 <= byte <= 57


def _is_letter_byte(byte):
    return (65 <= byte <= 90) or (97 <= byte <= 122)


class TagScanner:
    """
    Walks ADIF bytes left to right and yields (name, payload_bytes) per tag

    A tag is <name:length> or <name:length:T>. Anything that does not
    complete a tag sends the scanner back to looking for the next '<'
    one byte past where the failed tag started. A tag whose declared
    length runs past the end of the data is skipped. Scanning resumes
    right after each tag's closing '>', so tags inside a payload (the
    N1MM+ <parameters:N> envelope) are still found.
    """

    def __init__(self, data):
        if isinstance(data, str):
            data = data.encode('utf-8')
        self.data = bytes(data)
        self.skipped = 0

    def __iter__(self):
        data = self.data
        size = len(data)
        state = ScanState.SEEK_TAG_START
        pos = 0
        tag_start = 0
        name = ''
        length = 0

        while True:
            if state is ScanState.SEEK_TAG_START:
                tag_start = data.find(b'<', pos)
                if tag_start < 0:
                    return
                pos = tag_start + 1
                state = ScanState.READ_FIELD_NAME

            elif state is ScanState.READ_FIELD_NAME:
                end = pos
                while end < size and _is_word_byte(data[end]):
                    end += 1
                if end == pos or end >= size or data[end] != ord(':'):
                    pos = tag_start + 1
                    state = ScanState.SEEK_TAG_START
                    continue
                name = data[pos:end].decode('ascii').lower()
                pos = end + 1
                state = ScanState.READ_LENGTH

            elif state is ScanState.READ_LENGTH:
                end = pos
                while end < size and _is_digit_byte(data[end]):
                    end += 1
                if end == pos or end >= size:
                    pos = tag_start + 1
                    state = ScanState.SEEK_TAG_START
                    continue
                if end - pos > len(str(size)):
                    # Cannot fit the remaining data; skip without converting
                    self.skipped += 1
                    pos = tag_start + 1
                    state = ScanState.SEEK_TAG_START
                    continue
                length = int(data[pos:end])
                pos = end
                if data[pos] == ord('>'):
                    pos += 1
                    state = ScanState.READ_PAYLOAD
                elif data[pos] == ord(':'):
                    pos += 1
                    state = ScanState.READ_OPTIONAL_TYPE
                else:
                    pos = tag_start + 1
                    state = ScanState.SEEK_TAG_START

            elif state is ScanState.READ_OPTIONAL_TYPE:
                # Type indicator is accepted but not interpreted
                if pos + 1 < size and _is_letter_byte(data[pos]) and data[pos + 1] == ord('>'):
                    pos += 2
                    state = ScanState.READ_PAYLOAD
                else:
                    pos = tag_start + 1
                    state = ScanState.SEEK_TAG_START

            elif state is ScanState.READ_PAYLOAD:
                if pos + length <= size:
                    yield name, data[pos:pos + length]
                else:
                    self.skipped += 1
                state = ScanState.SEEK_TAG_START


def _parse_int(value):
    try:
        return int(value)
    except ValueError:
        return value


def _parse_float(value):
    try:
        number = float(value)
    except ValueError:
        return value
    if not math.isfinite(number):
        return value
    return number


def convert_value(name, value):
    """
    Convert a raw ADIF payload to its in-record form

    Numbers that do not parse are kept as the raw string.
    """
    if name in DATE_FIELDS:
        if len(value) == 8 and value.isdigit():
            return f"{value[0:4]}-{value[4:6]}-{value[6:8]}"
        return value
    if name in TIME_FIELDS:
        if len(value) == 6 and value.isdigit():
            return f"{value[0:2]}:{value[2:4]}:{value[4:6]}"
        return value
    if name in FLOAT_FIELDS:
        return _parse_float(value)
    if name in INT_FIELDS:
        return _parse_int(value)
    return value


def parse(text):
    """
    Parse ADIF text (str or bytes) into a FieldRecord

    Every tag becomes a field, known or not. Later tags with the same
    name win. Truncated tags are dropped silently.
    """
    record = FieldRecord()
    for name, payload in TagScanner(text):
        value = payload.decode('utf-8', errors='replace')
        record.set(name, convert_value(name, value))
    return record


def validate(record):
    """A record is valid when it has a non-blank call sign"""
    if not isinstance(record, Mapping):
        return False
    call = record.get('call')
    return isinstance(call, str) and call.strip() != ''


def require_valid(record):
    """
    Raises:
        ValidationError: if the record has no call sign
    """
    if not validate(record):
        raise ValidationError("QSO record has no call sign")
    return record


def display_value(value):
    """String form of a field value as written into ADIF"""
    if isinstance(value, float) and not isinstance(value, bool):
        text = repr(value)
        if text.endswith('.0'):
            text = text[:-2]
        return text
    return str(value)


def encode_field(name, value):
    """
    Build one <NAME:N>value tag, or None if the value is empty

    N is the UTF-8 byte length of the value after dates and times are
    put back into ADIF form.
    """
    if value is None or value == '':
        return None

    text = display_value(value)
    if name in DATE_FIELDS and '-' in text:
        text = text.replace('-', '')
    elif name in TIME_FIELDS and ':' in text:
        text = text.replace(':', '')

    if text == '':
        return None
    return f"<{name.upper()}:{len(text.encode('utf-8'))}>{text}"


def to_adif(record, variant=VARIANT_FILE):
    """
    Write a record as one ADIF line

    Args:
        record: FieldRecord or any mapping of field name to value
        variant: 'file' - space separated, ends with ' <EOR>' and a newline
                 'api'  - no separators, ends with '<eor>' (Wavelog API string)
    """
    if variant not in (VARIANT_FILE, VARIANT_API):
        raise ValueError(f"Unknown ADIF variant '{variant}'")

    tags = []
    emitted = set()

    names = [name for name in PREFERRED_ORDER if name in record]
    names += [name for name in record if name not in PREFERRED_ORDER]

    for name in names:
        key = name.lower()
        if key in emitted:
            continue
        emitted.add(key)
        tag = encode_field(key, record[name])
        if tag:
            tags.append(tag)

    if variant == VARIANT_API:
        return ''.join(tags) + '<eor>'
    return ' '.join(tags) + ' <EOR>\n'


def file_header(program_id, program_version, adif_version=ADIF_VERSION):
    """Header block written once at the top of a new ADIF file"""
    lines = [
        f"ADIF Export from {program_id}",
        f"<ADIF_VER:{len(adif_version.encode('utf-8'))}>{adif_version}",
        f"<PROGRAMID:{len(program_id.encode('utf-8'))}>{program_id}",
        f"<PROGRAMVERSION:{len(program_version.encode('utf-8'))}>{program_version}",
        "<EOH>",
    ]
    return '\n'.join(lines) + '\n'
