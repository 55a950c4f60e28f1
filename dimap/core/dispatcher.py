import logging
import re
import uuid

from dimap.core.connection import WIRE_ENCODING
from dimap.core.errors import BrokenConnection, CommandFailed
from dimap.core.response import ResponseTable, transform_result

logger = logging.getLogger("dimap.core.dispatcher")

# commands whose arguments must never reach the logs
_SECRET_COMMANDS = ("LOGIN", "AUTHENTICATE")


class TagGenerator:
    """
    Produce correlation tags: a per-session prefix plus an increasing counter.

    TagGenerator("a") -> a1, a2, a3, ...
    """

    def __init__(self, prefix: str = None):
        self.prefix = prefix or uuid.uuid4().hex[:4].upper()
        self.counter = 0

    def __call__(self) -> str:
        self.counter += 1
        return f"{self.prefix}{self.counter}"


def mask_command(command: str) -> str:
    """Oculta credenciales de LOGIN/AUTHENTICATE para logs e historial."""
    parts = command.split(None, 1)
    if parts and parts[0].upper() in _SECRET_COMMANDS:
        return f"{parts[0]} ****"
    return command


class CommandDispatcher:
    """
    Sends one tagged command and collects everything up to its completion line.

    `connection` needs `send(str) -> int` and `receive_line() -> str`.
    Only one command may be outstanding at a time.
    """

    def __init__(self, connection, next_tag: TagGenerator = None):
        self.connection = connection
        self.next_tag = next_tag or TagGenerator()
        self._pending = None

    def is_busy(self) -> bool:
        return self._pending is not None

    def dispatch(self, command: str) -> ResponseTable:
        if self._pending is not None:
            raise RuntimeError(f"Command '{self._pending}' still in progress")

        tag = self.next_tag()
        self._pending = tag
        try:
            return self._run(tag, command)
        finally:
            self._pending = None

    def _run(self, tag: str, command: str) -> ResponseTable:
        data = f"{tag} {command}\r\n"
        logger.debug("→ SEND: %s %s", tag, mask_command(command))
        sent = self.connection.send(data)
        if sent != len(data.encode(WIRE_ENCODING)):
            raise BrokenConnection("Broken connection: could not send all required data")

        completion = re.compile(rf"^{re.escape(tag)} (OK|NO|BAD)(?: (.*))?$", re.DOTALL)
        lines = []
        while True:
            line = self.connection.receive_line()
            logger.debug("← RECV: %s", line)

            match = completion.match(line)
            if match is None:
                lines.append(line)
                continue

            status, message = match.group(1), match.group(2) or ""
            if status == "OK":
                return transform_result(lines)

            logger.warning("Command %s failed: %s %s", tag, status, message)
            raise CommandFailed(message, status=status, command=mask_command(command))
