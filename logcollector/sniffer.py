"""
Protocol Sniffer
Tells N1MM+ tagged-text datagrams apart from WSJT-X binary frames.

Both arrive on the same UDP port. N1MM+ sends plain ADIF wrapped in a
command envelope:  <command:3>Log<parameters:N>...fields...
"""

import re
from enum import Enum

COMMAND_MARKER = '<command:3>Log'
PARAMETERS_TAG = re.compile(r'<parameters:\d+>', re.IGNORECASE)
SNIFF_WINDOW = 100  # bytes decoded for the quick check


class Protocol(Enum):
    TEXT_TAGGED = 'TextTagged'
    BINARY_FRAMED = 'BinaryFramed'


def is_tagged_text(data):
    """
    Check whether a datagram is an N1MM+ tagged-text log command

    The command marker must appear in the first 100 bytes; the
    parameters tag may be anywhere, so the whole buffer is decoded
    only once the cheap check has passed.
    """
    try:
        head = bytes(data[:SNIFF_WINDOW]).decode('utf-8', errors='replace')
        if COMMAND_MARKER not in head:
            return False

        full_text = bytes(data).decode('utf-8', errors='replace') if len(data) > SNIFF_WINDOW else head
        return PARAMETERS_TAG.search(full_text) is not None

    except Exception:
        return False


def classify(data):
    """Return the Protocol a raw datagram is written in"""
    if is_tagged_text(data):
        return Protocol.TEXT_TAGGED
    return Protocol.BINARY_FRAMED
