"""
WSJT-X Protocol Module
Decodes the WSJT-X NetworkMessage UDP frame

Frame layout (big-endian):
    Magic (quint32) + Schema (quint32) + Type (quint32) + payload

Only the LoggedADIF message (type 12) carries a payload this collector
uses: an instance ID QString followed by the ADIF record QString.
Every other message type is recognised from its header and left unparsed.
"""

import struct
from dataclasses import dataclass
from typing import Optional

from .errors import FramingError, TruncatedFieldError

MAGIC = 0xADBCCBDA
MAX_SCHEMA = 3  # Schema 3 for WSJT-X 2.x (Qt 5.4+)
NULL_QSTRING = 0xFFFFFFFF

# Message Types
MSG_HEARTBEAT = 0
MSG_STATUS = 1
MSG_DECODE = 2
MSG_CLEAR = 3
MSG_REPLY = 4
MSG_QSO_LOGGED = 5
MSG_CLOSE = 6
MSG_REPLAY = 7
MSG_HALT_TX = 8
MSG_FREE_TEXT = 9
MSG_WSPR_DECODE = 10
MSG_LOCATION = 11
MSG_LOGGED_ADIF = 12
MSG_HIGHLIGHT_CALLSIGN = 13
MSG_SWITCH_CONFIGURATION = 14
MSG_CONFIGURE = 15

MESSAGE_TYPES = {
    MSG_HEARTBEAT: 'Heartbeat',
    MSG_STATUS: 'Status',
    MSG_DECODE: 'Decode',
    MSG_CLEAR: 'Clear',
    MSG_REPLY: 'Reply',
    MSG_QSO_LOGGED: 'QSOLogged',
    MSG_CLOSE: 'Close',
    MSG_REPLAY: 'Replay',
    MSG_HALT_TX: 'HaltTx',
    MSG_FREE_TEXT: 'FreeText',
    MSG_WSPR_DECODE: 'WSPRDecode',
    MSG_LOCATION: 'Location',
    MSG_LOGGED_ADIF: 'LoggedADIF',
    MSG_HIGHLIGHT_CALLSIGN: 'HighlightCallsign',
    MSG_SWITCH_CONFIGURATION: 'SwitchConfiguration',
    MSG_CONFIGURE: 'Configure',
}
UNKNOWN_TYPE = 'Unknown'

HEADER_SIZE = 12


@dataclass
class WireHeader:
    magic: int
    schema: int
    message_type: int

    @property
    def type_name(self):
        return message_type_name(self.message_type)


@dataclass
class DecodedMessage:
    type: str
    schema: int
    message_type: int
    adif_text: Optional[str] = None
    unparsed: bool = False


def message_type_name(message_type):
    return MESSAGE_TYPES.get(message_type, UNKNOWN_TYPE)


def _read_uint32(data, offset):
    if len(data) < offset + 4:
        raise TruncatedFieldError(f"Need 4 bytes at offset {offset}, have {len(data) - offset}")
    return struct.unpack('>I', data[offset:offset+4])[0], offset + 4


def _read_bytes(data, offset, length):
    if len(data) < offset + length:
        raise TruncatedFieldError(f"Need {length} bytes at offset {offset}, have {len(data) - offset}")
    return bytes(data[offset:offset+length]), offset + length


def read_qstring(data, offset):
    """
    Decode a QString from a WSJT-X packet

    QString/utf8 format: 32-bit length (in bytes) + UTF-8 encoded string.
    Length 0xFFFFFFFF is the null string.

    A truncated length or body decodes to '' rather than failing; in that
    case the offset only moves past whatever length prefix was read.

    Returns:
        (string or None, new_offset)
    """
    try:
        length, offset = _read_uint32(data, offset)
    except TruncatedFieldError:
        return '', offset

    if length == NULL_QSTRING:
        return None, offset

    try:
        raw, offset = _read_bytes(data, offset, length)
    except TruncatedFieldError:
        return '', offset

    return raw.decode('utf-8', errors='replace'), offset


def read_header(data):
    """
    Parse and check the 12-byte frame header

    Magic and schema are verified before the message type is read.

    Raises:
        FramingError: buffer too short, invalid magic or unsupported schema
    """
    if len(data) < 8:
        raise FramingError("buffer too short")

    magic, offset = _read_uint32(data, 0)
    if magic != MAGIC:
        raise FramingError(f"invalid magic: 0x{magic:08x}")

    schema, offset = _read_uint32(data, offset)
    if schema > MAX_SCHEMA:
        raise FramingError(f"unsupported schema: {schema}")

    try:
        message_type, offset = _read_uint32(data, offset)
    except TruncatedFieldError:
        raise FramingError("buffer too short") from None

    return WireHeader(magic, schema, message_type)


def decode_frame(data):
    """
    Decode a WSJT-X datagram

    Args:
        data: Raw datagram bytes

    Returns:
        DecodedMessage; adif_text is set for LoggedADIF, every other
        type comes back with unparsed=True

    Raises:
        FramingError: if the header is not a valid WSJT-X header
    """
    header = read_header(data)

    if header.message_type != MSG_LOGGED_ADIF:
        return DecodedMessage(
            type=header.type_name,
            schema=header.schema,
            message_type=header.message_type,
            unparsed=True,
        )

    # Instance ID is not needed downstream
    _, offset = read_qstring(data, HEADER_SIZE)
    adif_text, offset = read_qstring(data, offset)

    return DecodedMessage(
        type=header.type_name,
        schema=header.schema,
        message_type=header.message_type,
        adif_text=adif_text,
    )


def encode_qstring(text):
    """
    Encode a string as QString for WSJT-X protocol

    None encodes as the null string; '' encodes as a present, empty string.
    """
    if text is None:
        return struct.pack('>I', NULL_QSTRING)

    encoded = text.encode('utf-8')
    return struct.pack('>I', len(encoded)) + encoded


def build_message(message_type, *qstrings, schema=MAX_SCHEMA, magic=MAGIC):
    """Build a frame: header followed by QString fields"""
    message = struct.pack('>III', magic, schema, message_type)
    for text in qstrings:
        message += encode_qstring(text)
    return message


def build_logged_adif(wsjtx_id, adif_text, schema=MAX_SCHEMA):
    """Build a LoggedADIF (type 12) message like WSJT-X broadcasts"""
    return build_message(MSG_LOGGED_ADIF, wsjtx_id, adif_text, schema=schema)
