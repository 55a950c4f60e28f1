import pytest

from dimap.core.connection import WIRE_ENCODING
from dimap.core.errors import ConnectionClosed
from dimap.core.session import ImapSession, SessionState


class FakeConnection:
    """Scripted transport: hands out queued lines and records every send."""

    def __init__(self, lines=None):
        self.lines = list(lines or [])
        self.sent = []
        self.closed = False
        self.tls = None
        self.short_send = False

    def feed(self, *lines):
        self.lines.extend(lines)

    def send(self, data: str) -> int:
        self.sent.append(data)
        n = len(data.encode(WIRE_ENCODING))
        return n - 1 if self.short_send else n

    def receive_line(self) -> str:
        if not self.lines:
            raise ConnectionClosed("no more scripted lines")
        return self.lines.pop(0)

    def disconnect(self):
        self.closed = True

    def starttls(self, ssl_context=None):
        self.tls = ssl_context or "default"


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def make_session(conn):
    """Session with tags a1, a2, ... already in the given state."""

    def _make(state=SessionState.NOT_AUTHENTICATED):
        session = ImapSession(conn, tag_prefix="a")
        session.state = state
        return session

    return _make
