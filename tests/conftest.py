import socket
import struct
import threading

import pytest

SINGLE_HEADER = b'\xff\xff\xff\xff'


def _string(text):
    return text.encode('latin-1') + b'\0'


def build_info_reply(edf=0, header=SINGLE_HEADER, kind=b'I', protocol=17,
                     name='Test', map='de_dust2', folder='cstrike', game='Counter-Strike',
                     steamapp_id=240, players=5, max_players=24, bots=2,
                     server_type=b'd', os=b'l', visibility=0, vac=1, version='1.0.0.71',
                     port=27015, steam_id=90071996842377216,
                     spectator_port=27020, spectator_name='SourceTV',
                     keywords='alltalk,nocrits', game_id=240):
    packet = header + kind + struct.pack('<B', protocol)
    packet += _string(name) + _string(map) + _string(folder) + _string(game)
    packet += struct.pack('<hBBB', steamapp_id, players, max_players, bots)
    packet += server_type + os + struct.pack('<BB', visibility, vac)
    packet += _string(version) + struct.pack('<B', edf)
    if edf & 0x80:
        packet += struct.pack('<h', port)
    if edf & 0x10:
        packet += struct.pack('<Q', steam_id)
    if edf & 0x40:
        packet += struct.pack('<h', spectator_port) + _string(spectator_name)
    if edf & 0x20:
        packet += _string(keywords)
    if edf & 0x01:
        packet += struct.pack('<Q', game_id)
    return packet


@pytest.fixture
def info_reply():
    return build_info_reply


class Responder:
    """Loopback UDP server answering one datagram with a canned reply."""

    def __init__(self, reply):
        self.reply = reply
        self.requests = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(('127.0.0.1', 0))
        self.sock.settimeout(5.0)
        self.address = self.sock.getsockname()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self):
        try:
            data, addr = self.sock.recvfrom(4096)
        except OSError:
            return
        self.requests.append(data)
        if self.reply is not None:
            self.sock.sendto(self.reply, addr)

    def start(self):
        self._thread.start()
        return self

    def close(self):
        self._thread.join(timeout=5.0)
        self.sock.close()


@pytest.fixture
def responder():
    started = []

    def start(reply):
        server = Responder(reply).start()
        started.append(server)
        return server

    yield start
    for server in started:
        server.close()


@pytest.fixture
def record_sockets(monkeypatch):
    """Patch socket.socket on demand and collect every socket opened afterwards."""
    opened = []

    class RecordingSocket(socket.socket):

        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            opened.append(self)

    def start():
        monkeypatch.setattr(socket, 'socket', RecordingSocket)
        return opened

    return start
