class ImapError(Exception):
    """Base de todos los errores del cliente IMAP."""
    pass


# ----------------- grammar -----------------

class MalformedResponse(ImapError):
    """La respuesta del servidor no respeta la gramática IMAP."""
    pass


class UnexpectedEnd(MalformedResponse):
    pass


class UnmatchedBracket(MalformedResponse):
    pass


class UnterminatedString(MalformedResponse):
    pass


class InvalidLiteralPrelude(MalformedResponse):
    pass


class InvalidLiteral(MalformedResponse):
    pass


# ----------------- commands -----------------

class CommandFailed(ImapError):
    """
    El servidor contestó NO o BAD a un comando.

    La conexión sigue siendo utilizable; `message` es el texto que
    acompaña al estado en la línea de finalización.
    """

    def __init__(self, message: str, status: str = None, command: str = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.command = command


class IllegalStateTransition(ImapError):
    """El comando no es válido en el estado actual de la sesión."""

    def __init__(self, command: str, state: str):
        super().__init__(f"Command '{command}' not allowed in state '{state}'")
        self.command = command
        self.state = state


class NotCapable(ImapError):
    """El servidor no anuncia una capacidad requerida."""
    pass


# ----------------- transport -----------------

class TransportError(ImapError, ConnectionError):
    pass


class BrokenConnection(TransportError):
    pass


class ConnectionClosed(TransportError):
    pass


class Timeout(TransportError):
    pass
