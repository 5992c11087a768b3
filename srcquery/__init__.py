from srcquery.a2sinfo import (
    A2S_INFO_PACKET,
    PACKET_SIZE,
    Buffer,
    Environment,
    MalformedHeaderError,
    PacketError,
    ServerInfo,
    ServerType,
    SourceQuery,
    TruncatedDataError,
    UnknownEnumError,
    UnknownEnvironmentError,
    UnknownServerTypeError,
    UnsupportedFormatError,
    decode_info,
    query,
)

__all__ = [
    'A2S_INFO_PACKET',
    'PACKET_SIZE',
    'Buffer',
    'Environment',
    'MalformedHeaderError',
    'PacketError',
    'ServerInfo',
    'ServerType',
    'SourceQuery',
    'TruncatedDataError',
    'UnknownEnumError',
    'UnknownEnvironmentError',
    'UnknownServerTypeError',
    'UnsupportedFormatError',
    'decode_info',
    'query',
]
