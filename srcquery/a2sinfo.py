"""
Utility for querying A2S_INFO from servers ran on Source engine.
Only single packet replies are decoded, split replies are rejected.
Query docs: https://developer.valvesoftware.com/wiki/Server_queries#A2S_INFO
"""

import io
import logging
import socket
import struct
from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

PACKET_SIZE = 1400
SINGLE = -1
A2S_INFO_HEADER = 0x49


def build_packet(packet_type):
    return struct.pack('<lB', SINGLE, packet_type)


A2S_INFO_PACKET = build_packet(ord('T')) + b'Source Engine Query\0'


class PacketError(Exception):
    pass


class UnsupportedFormatError(PacketError):

    def __init__(self, header):
        super().__init__('Unsupported packet header: {}'.format(header))
        self.header = header


class MalformedHeaderError(PacketError):

    def __init__(self, header):
        super().__init__('Expected header `I` got `{}`'.format(header))
        self.header = header


class UnknownEnumError(PacketError):
    kind = 'code'

    def __init__(self, value):
        super().__init__('Unknown {}: {}'.format(self.kind, value))
        self.value = value


class UnknownServerTypeError(UnknownEnumError):
    kind = 'server type'


class UnknownEnvironmentError(UnknownEnumError):
    kind = 'environment'


class TruncatedDataError(PacketError):
    pass


class Buffer(io.BytesIO):

    def __init__(self, data=b''):
        super().__init__(data)
        self._data = bytes(data)

    def read_exact(self, size):
        start = self.tell()
        data = self.read(size)
        if len(data) != size:
            raise TruncatedDataError(
                'Expected {} bytes at offset {}, got {}'.format(size, start, len(data)))
        return data

    def read_string(self):
        val = self._data
        start = self.tell()
        end = val.find(b'\0', start)
        if end == -1:
            raise TruncatedDataError('Unterminated string at offset {}'.format(start))
        self.seek(end + 1)
        # One byte per character, servers don't agree on an encoding
        return val[start:end].decode('latin-1')

    def read_int(self):
        return struct.unpack('<l', self.read_exact(4))[0]

    def read_byte(self):
        return struct.unpack('<B', self.read_exact(1))[0]

    def read_short(self):
        return struct.unpack('<h', self.read_exact(2))[0]

    def read_long_long(self):
        return struct.unpack('<Q', self.read_exact(8))[0]


class ServerType(Enum):
    DEDICATED = 'd'
    NON_DEDICATED = 'l'
    SOURCETV_RELAY = 'p'


class Environment(Enum):
    LINUX = 'l'
    WINDOWS = 'w'
    MAC = 'm'


@dataclass(frozen=True)
class ServerInfo:
    """Decoded A2S_INFO reply.

    Optional fields are None unless the matching extra data flag was set.
    """
    protocol_version: int
    name: str
    map: str
    folder: str
    game: str
    steamapp_id: int
    players: int
    max_players: int
    bots: int
    server_type: ServerType
    os: Environment
    is_public: bool
    uses_vac: bool
    version: str
    port: Optional[int] = None
    steam_id: Optional[int] = None
    spectator_port: Optional[int] = None
    spectator_name: Optional[str] = None
    keywords: Optional[str] = None
    game_id: Optional[int] = None

    def to_dict(self):
        result = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            result[field.name] = value
        return result


# Extra data flags in wire order. Fields are positional, so this order must hold
# whatever subset of bits is set.
EDF_FIELDS = (
    (0x80, (('port', Buffer.read_short),)),
    (0x10, (('steam_id', Buffer.read_long_long),)),
    (0x40, (('spectator_port', Buffer.read_short),
            ('spectator_name', Buffer.read_string))),
    (0x20, (('keywords', Buffer.read_string),)),
    (0x01, (('game_id', Buffer.read_long_long),)),
)


def _read_code(response, enum, error):
    code = chr(response.read_byte())
    try:
        return enum(code)
    except ValueError:
        raise error(code) from None


def read_info(response):
    """Read an A2S_INFO payload, starting at its header byte."""
    header = response.read_byte()
    if header != A2S_INFO_HEADER:
        raise MalformedHeaderError(chr(header))
    result = {
        'protocol_version': response.read_byte(),
        'name': response.read_string(),
        'map': response.read_string(),
        'folder': response.read_string(),
        'game': response.read_string(),
        'steamapp_id': response.read_short(),
        'players': response.read_byte(),
        'max_players': response.read_byte(),
        'bots': response.read_byte(),
        'server_type': _read_code(response, ServerType, UnknownServerTypeError),
        'os': _read_code(response, Environment, UnknownEnvironmentError),
        'is_public': response.read_byte() == 0,
        'uses_vac': response.read_byte() == 1,
        'version': response.read_string(),
    }
    edf = response.read_byte()
    logger.debug('Extra data flags: 0x%02x', edf)
    for flag, readers in EDF_FIELDS:
        if edf & flag:
            for name, reader in readers:
                result[name] = reader(response)
    return ServerInfo(**result)


def decode_info(data):
    """Decode a whole A2S_INFO reply datagram into a ServerInfo.

    Raises a PacketError subclass when the datagram is a split reply,
    has a wrong header, carries unknown codes or ends too early.
    """
    response = Buffer(data)
    header = response.read_int()
    if header != SINGLE:
        raise UnsupportedFormatError(header)
    return read_info(response)


def parse_address(address):
    """Split an address into (host, port). Only IPv4 hosts and host names are accepted."""
    if isinstance(address, str):
        host, sep, port = address.rpartition(':')
        if not sep or not host:
            raise ValueError('Expected "host:port", got {!r}'.format(address))
        try:
            port = int(port)
        except ValueError:
            raise ValueError('Invalid port in {!r}'.format(address)) from None
    else:
        host, port = address
        port = int(port)
    if ':' in host or host.startswith('['):
        raise ValueError('IPv6 addresses are not supported: {!r}'.format(host))
    return host, port


class SourceQuery:
    DEFAULT_PORT = 27015
    DEFAULT_TIMEOUT = None

    def __init__(self, host, port=DEFAULT_PORT, timeout=DEFAULT_TIMEOUT):
        self.host = host
        self.port = port
        self.timeout = timeout

    def request(self, packet):
        """Send one datagram and return the single reply datagram.

        The timeout only bounds the receive. Socket errors propagate as is.
        """
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.bind(('0.0.0.0', 0))
            sock.connect((self.host, self.port))
            sock.send(packet)
            logger.debug('Sent %d bytes to %s:%s', len(packet), self.host, self.port)
            sock.settimeout(self.timeout)
            data = sock.recv(PACKET_SIZE)
        logger.debug('Received %d bytes from %s:%s', len(data), self.host, self.port)
        return data

    def a2s_info(self):
        return decode_info(self.request(A2S_INFO_PACKET))


def query(address, timeout=None):
    """Query a server for A2S_INFO.

    address is a (host, port) tuple or a "host:port" string, timeout is in
    seconds and None blocks until a reply arrives.
    """
    host, port = parse_address(address)
    return SourceQuery(host, port, timeout).a2s_info()
