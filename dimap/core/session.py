import logging
import threading
from typing import Optional

from dimap.core.connection import ControlConnectionManager
from dimap.core.dispatcher import CommandDispatcher, TagGenerator
from dimap.core.errors import BrokenConnection, IllegalStateTransition, TransportError
from dimap.core.parser import Parser, GrammarValue
from dimap.core.response import ResponseTable

logger = logging.getLogger("dimap.core.session")


class SessionState:
    """Estados posibles de una sesión IMAP."""

    NOT_AUTHENTICATED = "not-authenticated"
    AUTHENTICATED = "authenticated"
    SELECTED = "selected"
    LOGGED_OUT = "logged-out"


_ANY = frozenset({SessionState.NOT_AUTHENTICATED, SessionState.AUTHENTICATED, SessionState.SELECTED})
_NONAUTH = frozenset({SessionState.NOT_AUTHENTICATED})
_AUTH = frozenset({SessionState.AUTHENTICATED, SessionState.SELECTED})
_SELECTED = frozenset({SessionState.SELECTED})

# Estados en los que cada comando es válido (RFC 3501 sec. 6)
COMMANDS_ALLOWED = {
    "capability":   _ANY,
    "noop":         _ANY,
    "logout":       _ANY,
    "starttls":     _NONAUTH,
    "authenticate": _NONAUTH,
    "login":        _NONAUTH,
    "select":       _AUTH,
    "examine":      _AUTH,
    "create":       _AUTH,
    "delete":       _AUTH,
    "rename":       _AUTH,
    "subscribe":    _AUTH,
    "unsubscribe":  _AUTH,
    "list":         _AUTH,
    "lsub":         _AUTH,
    "status":       _AUTH,
    "append":       _AUTH,
    "check":        _SELECTED,
    "close":        _SELECTED,
    "expunge":      _SELECTED,
    "search":       _SELECTED,
    "fetch":        _SELECTED,
    "store":        _SELECTED,
    "copy":         _SELECTED,
    "uid":          _SELECTED,
}


def command_name(command: str) -> str:
    """Nombre del comando en minúsculas ('UID FETCH 1:* ...' -> 'uid')."""
    parts = command.split(None, 1)
    if not parts:
        raise ValueError("Empty command")
    return parts[0].lower()


def is_allowed(name: str, state: str) -> bool:
    """
    Check the legality table. Commands not listed (protocol extensions)
    are accepted in every live state; nothing is accepted after logout.
    """
    if state == SessionState.LOGGED_OUT:
        return False
    allowed = COMMANDS_ALLOWED.get(name.lower())
    return allowed is None or state in allowed


class ImapSession:
    """
    Session state machine on top of the command dispatcher.

    Every command is checked against COMMANDS_ALLOWED before anything is
    written to the transport. Successful login/authenticate, select/examine,
    close and logout move the session to their new state.
    """

    def __init__(self, connection, tag_prefix: str = None, parser: Parser = None):
        # Serializa los comandos: un único comando pendiente por conexión
        self.lock = threading.RLock()

        self.connection = connection
        self.dispatcher = CommandDispatcher(connection, TagGenerator(tag_prefix))
        self.parser = parser or Parser()
        self.state = SessionState.NOT_AUTHENTICATED
        self.greeting: Optional[str] = None

    @classmethod
    def connect(cls, host: str, port: int = None, timeout: float = 5.0, use_ssl: bool = False,
                ssl_context=None, tag_prefix: str = None) -> "ImapSession":
        """Open the transport, read the greeting and return a ready session."""
        conn = ControlConnectionManager(host, port, timeout=timeout, use_ssl=use_ssl,
                                        ssl_context=ssl_context)
        conn.connect()
        session = cls(conn, tag_prefix=tag_prefix)
        session.open()
        return session

    # ----------------- lifecycle -----------------

    def open(self) -> str:
        """
        Read the server greeting.

        "* OK" leaves the session not authenticated, "* PREAUTH" skips
        straight to authenticated. Anything else, or a transport failure
        while waiting for the greeting, closes the transport.
        """
        with self.lock:
            try:
                line = self.connection.receive_line()
            except TransportError:
                self._teardown()
                raise
            logger.debug("← RECV: %s", line)
            parts = line.split(None, 2)
            if len(parts) < 2 or parts[0] != "*" or parts[1].upper() not in ("OK", "PREAUTH"):
                self._teardown()
                raise BrokenConnection(f"Did not receive greeting from server: {line!r}")

            self.greeting = parts[2] if len(parts) > 2 else ""
            if parts[1].upper() == "PREAUTH":
                self._set_state(SessionState.AUTHENTICATED)
            logger.info("Greeting: %s", line)
            return self.greeting

    def current_state(self) -> str:
        with self.lock:
            return self.state

    def is_closed(self) -> bool:
        return self.current_state() == SessionState.LOGGED_OUT

    def _set_state(self, new_state: str) -> None:
        if new_state != self.state:
            logger.info("State %s -> %s", self.state, new_state)
        self.state = new_state

    def _teardown(self) -> None:
        self._set_state(SessionState.LOGGED_OUT)
        disconnect = getattr(self.connection, "disconnect", None)
        if callable(disconnect):
            disconnect()

    # ----------------- commands -----------------

    def check_command(self, command: str) -> str:
        """Raise IllegalStateTransition if `command` is not valid now."""
        name = command_name(command)
        if not is_allowed(name, self.state):
            raise IllegalStateTransition(name, self.state)
        return name

    def send_command(self, command: str) -> ResponseTable:
        """Run one command (without tag) and apply its state transition."""
        with self.lock:
            name = self.check_command(command)

            if name in ("select", "examine") and self.state == SessionState.SELECTED:
                # el buzón anterior se considera cerrado aunque el comando falle
                self._set_state(SessionState.AUTHENTICATED)

            if name == "logout":
                try:
                    return self.dispatcher.dispatch(command)
                finally:
                    self._teardown()

            result = self.dispatcher.dispatch(command)

            if name in ("login", "authenticate"):
                self._set_state(SessionState.AUTHENTICATED)
            elif name in ("select", "examine"):
                self._set_state(SessionState.SELECTED)
            elif name == "close":
                self._set_state(SessionState.AUTHENTICATED)
            return result

    def upgrade_tls(self, ssl_context=None) -> None:
        """Wrap the transport in TLS in place (after a successful STARTTLS)."""
        with self.lock:
            self.connection.starttls(ssl_context)

    # ----------------- grammar helpers -----------------

    def parse_list(self, text: str) -> GrammarValue:
        return self.parser.parse_list(text)

    def build_list(self, value) -> str:
        return self.parser.build_list(value)

    # ----------------- context manager -----------------

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.state == SessionState.LOGGED_OUT:
            return False
        if exc_type is None or not issubclass(exc_type, ConnectionError):
            self.send_command("LOGOUT")
        else:
            self._teardown()
        return False

    def __str__(self):
        return f"ImapSession(conn={self.connection}, state={self.state})"
