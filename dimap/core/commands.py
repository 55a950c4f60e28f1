import base64
import logging
import re
from datetime import datetime, timezone

from dimap.core.connection import WIRE_ENCODING
from dimap.core.dispatcher import mask_command
from dimap.core.errors import MalformedResponse, NotCapable
from dimap.core.parser import Parser
from dimap.core.response import ResponseTable
from dimap.core.session import ImapSession

logger = logging.getLogger("dimap.core.commands")

DEFAULT_STATUS_ITEMS = ["MESSAGES", "RECENT", "UIDNEXT", "UIDVALIDITY", "UNSEEN"]
DEFAULT_FETCH_ITEMS = "(UID BODY[HEADER.FIELDS (DATE FROM SUBJECT)])"

_ATOM_SPECIALS = re.compile(r'[(){ %*"\\\]\x00-\x1f\x7f]')
_OK_CODE = re.compile(r"^\[(\S+)(?: ([^\]]*))?\]")


def quoted(arg: str) -> str:
    """Quoted string as per RFC 3501 sec. 9 (escapes \\ and ")."""
    arg = arg.replace("\\", "\\\\")
    arg = arg.replace('"', '\\"')
    return '"' + arg + '"'


def astring(arg: str) -> str:
    """Send `arg` as an atom when it is safe to, otherwise quoted."""
    if arg and not _ATOM_SPECIALS.search(arg):
        return arg
    return quoted(arg)


def _int_or_none(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class ClientCommandHandler:
    """
    Per-command formatting and result decoding on top of ImapSession.

    Decoding commands return ``(decoded, table)``; the rest return the raw
    ResponseTable. Every call is recorded in `history`.
    """

    def __init__(self, session: ImapSession, parser: Parser = None):
        self.session = session
        self.parser = parser or session.parser
        # history as list of dicts: {"time":..., "command":..., "raw":..., "parsed":..., "error":bool}
        self.history = []

    def _execute(self, command: str, decode=None):
        entry = {
            "time": datetime.now(timezone.utc),
            "command": mask_command(command),
            "raw": None,
            "parsed": None,
            "error": False,
        }
        self.history.append(entry)
        try:
            res = self.session.send_command(command)
            entry["raw"] = res
            if decode is None:
                return res
            parsed = decode(res)
            entry["parsed"] = parsed
            return parsed, res
        except Exception as e:
            entry["error"] = True
            if entry["raw"] is None:
                entry["raw"] = str(e)
            raise

    def raw(self, command: str):
        """Run a command line as typed (without tag), return the ResponseTable."""
        return self._execute(command.strip())

    # ----------------- any state -----------------

    def capability(self):
        """Server capabilities as a list of words."""
        return self._execute("CAPABILITY", self._parse_capability)

    @staticmethod
    def _parse_capability(res: ResponseTable) -> list:
        return " ".join(res["CAPABILITY"]).split()

    def is_capable(self, *names: str) -> bool:
        """True if the server announces *all* the given capabilities."""
        caps, _ = self.capability()
        caps = {c.upper() for c in caps}
        return all(n.upper() in caps for n in names)

    def noop(self):
        """Does nothing, but may receive updated state."""
        return self._execute("NOOP")

    def logout(self):
        return self._execute("LOGOUT")

    # ----------------- not authenticated -----------------

    def starttls(self, ssl_context=None):
        """Negotiate STARTTLS and upgrade the connection in place."""
        if not self.is_capable("STARTTLS"):
            raise NotCapable("Server does not support STARTTLS")
        res = self._execute("STARTTLS")
        self.session.upgrade_tls(ssl_context)
        return res

    def authenticate(self, user: str, password: str, mechanism: str = "PLAIN"):
        """SASL authentication with an initial response (RFC 4959)."""
        if mechanism.upper() != "PLAIN":
            raise ValueError(f"Unsupported SASL mechanism {mechanism!r}, only PLAIN is implemented")
        token = base64.b64encode(f"\0{user}\0{password}".encode("utf-8")).decode("ascii")
        return self._execute(f"AUTHENTICATE PLAIN {token}")

    def login(self, user: str, password: str):
        """
        Plain text login. Do not use unless the connection is secure
        (TLS or SSH tunnel).
        """
        return self._execute(f"LOGIN {astring(user)} {astring(password)}")

    # ----------------- authenticated -----------------

    def _parse_select_examine(self, res: ResponseTable) -> dict:
        info = {
            "flags": self.parser.parse_list(res.first("FLAGS", "()")),
            "exists": _int_or_none(res.first("EXISTS")),
            "recent": _int_or_none(res.first("RECENT")),
            "uidvalidity": None,
            "uidnext": None,
            "unseen": None,
            "permanentflags": None,
        }
        # * OK [UIDVALIDITY 3857529045] UIDs valid
        for text in res["OK"]:
            m = _OK_CODE.match(text)
            if not m:
                continue
            code, arg = m.group(1).upper(), m.group(2)
            if code in ("UIDVALIDITY", "UIDNEXT", "UNSEEN"):
                info[code.lower()] = _int_or_none(arg)
            elif code == "PERMANENTFLAGS":
                info["permanentflags"] = self.parser.parse_list(arg or "()")
        return info

    def select(self, mailbox: str = "INBOX"):
        """Select a mailbox so that its messages can be accessed."""
        return self._execute(f"SELECT {astring(mailbox)}", self._parse_select_examine)

    def examine(self, mailbox: str = "INBOX"):
        """Same as select, but the mailbox is opened read-only."""
        return self._execute(f"EXAMINE {astring(mailbox)}", self._parse_select_examine)

    def create(self, mailbox: str):
        return self._execute(f"CREATE {astring(mailbox)}")

    def delete(self, mailbox: str):
        return self._execute(f"DELETE {astring(mailbox)}")

    def rename(self, old: str, new: str):
        return self._execute(f"RENAME {astring(old)} {astring(new)}")

    def subscribe(self, mailbox: str):
        """Subscribed mailboxes are listed by lsub()."""
        return self._execute(f"SUBSCRIBE {astring(mailbox)}")

    def unsubscribe(self, mailbox: str):
        return self._execute(f"UNSUBSCRIBE {astring(mailbox)}")

    def _parse_list_lsub(self, res: ResponseTable, keyword: str) -> dict:
        mailboxes = {}
        for entry in res[keyword]:
            # (\HasNoChildren) "/" INBOX
            parts = self.parser.parse_list(f"({entry})")
            if len(parts) < 3 or not isinstance(parts[0], list):
                raise MalformedResponse(f"Invalid {keyword} response: {entry!r}")
            flags, delim, name = parts[0], parts[1], parts[2]
            mailboxes[name] = {"delim": None if delim.upper() == "NIL" else delim, "flags": flags}
        return mailboxes

    def list(self, mailbox: str = "*", ref: str = '""'):
        """
        List mailboxes. `mailbox` may contain wildcards, `ref` is the
        reference name (see RFC 3501 sec. 6.3.8).
        """
        return self._execute(f"LIST {ref} {mailbox}", lambda res: self._parse_list_lsub(res, "LIST"))

    def lsub(self, mailbox: str = "*", ref: str = '""'):
        """Same as list(), but only subscribed mailboxes."""
        return self._execute(f"LSUB {ref} {mailbox}", lambda res: self._parse_list_lsub(res, "LSUB"))

    def _parse_status(self, res: ResponseTable) -> dict:
        text = res.first("STATUS")
        m = re.search(r"(\([^()]*\))\s*$", text or "")
        if not m:
            raise MalformedResponse(f"Invalid STATUS response: {text!r}")
        items = self.parser.parse_list(m.group(1))
        if len(items) % 2 != 0:
            raise MalformedResponse("Invalid STATUS response size")
        return {items[i]: _int_or_none(items[i + 1]) for i in range(0, len(items), 2)}

    def status(self, mailbox: str, names=None):
        """
        Mailbox status. `names` is a string or a list of items: MESSAGES,
        RECENT, UIDNEXT, UIDVALIDITY and UNSEEN (RFC 3501 sec. 6.3.10).
        """
        if names is None:
            names = DEFAULT_STATUS_ITEMS
        if isinstance(names, str):
            names = names if names.startswith("(") else f"({names})"
        elif not isinstance(names, (list, tuple)):
            raise TypeError(f"names must be a string or a list, got {type(names).__name__}")
        return self._execute(f"STATUS {astring(mailbox)} {self.parser.build_list(names)}", self._parse_status)

    def append(self, mailbox: str, message, flags=None, date: str = None, literal_plus: bool = False):
        """
        Append a message to a mailbox.

        `message` is a str (sent one byte per character, so it must fit in
        latin-1) or the raw bytes of the message.

        The literal goes out in the same write as the command, without
        waiting for the server's "+" continuation request. Servers that
        require synchronizing literals will reject it; when the server
        announces LITERAL+ (RFC 7888) pass ``literal_plus=True`` to send a
        non-synchronizing ``{n+}`` literal instead.
        """
        if isinstance(message, (bytes, bytearray)):
            message = bytes(message).decode(WIRE_ENCODING)
        elif not isinstance(message, str):
            raise TypeError("message must be a string or bytes")
        size = len(message.encode(WIRE_ENCODING))

        parts = [f"APPEND {astring(mailbox)}"]
        if flags:
            parts.append(self.parser.build_list([flags] if isinstance(flags, str) else list(flags)))
        if date:
            parts.append(quoted(date))
        # message literal
        parts.append(f"{{{size}{'+' if literal_plus else ''}}}\r\n{message}")
        return self._execute(" ".join(parts))

    # ----------------- selected -----------------

    def check(self):
        """Request a checkpoint of the selected mailbox."""
        return self._execute("CHECK")

    def close(self):
        """
        Remove all \\Deleted messages without untagged responses and go
        back to the authenticated state.
        """
        return self._execute("CLOSE")

    def expunge(self):
        """Remove all \\Deleted messages, return the expunged sequence numbers."""
        return self._execute("EXPUNGE", lambda res: [int(n) for n in res["EXPUNGE"]])

    def search(self, criteria, charset: str = None, uid: bool = False):
        """Search the selected mailbox (RFC 3501 sec. 6.4.4)."""
        if not isinstance(criteria, (str, list, tuple)):
            raise TypeError("criteria must be a string or a list")
        parts = ["UID SEARCH" if uid else "SEARCH"]
        if charset:
            parts.append(f"CHARSET {charset}")
        parts.append(self.parser.build_list(criteria))
        return self._execute(" ".join(parts), lambda res: [int(n) for n in " ".join(res["SEARCH"]).split()])

    def _parse_fetch(self, res: ResponseTable):
        messages = []
        for entry in res["FETCH"]:
            m = re.match(r"^(\d+) (.*)$", entry, re.DOTALL)
            if not m:
                raise MalformedResponse(f"Invalid FETCH response: {entry!r}")
            items = self.parser.parse_list(m.group(2))
            msg = {"id": int(m.group(1))}
            for i in range(0, len(items) - 1, 2):
                msg[items[i]] = items[i + 1]
            messages.append(msg)
        return messages

    def fetch(self, what=None, sequence="1:*", uid: bool = False):
        """
        Fetch message data. Each message is a dict with its sequence number
        under "id" and one key per returned item, in server order.
        """
        what = self.parser.build_list(what) if what is not None else DEFAULT_FETCH_ITEMS
        command = "UID FETCH" if uid else "FETCH"
        return self._execute(f"{command} {sequence} {what}", self._parse_fetch)

    def store(self, mode: str, flags, sequence, silent: bool = False, uid: bool = False):
        """Set ("set"), add ("+") or remove ("-") flags."""
        if mode not in ("set", "+", "-"):
            raise ValueError(f"mode must be one of 'set', '+', '-', got {mode!r}")
        prefix = "" if mode == "set" else mode
        suffix = ".SILENT" if silent else ""
        flags = self.parser.build_list([flags] if isinstance(flags, str) else list(flags))
        command = "UID STORE" if uid else "STORE"
        return self._execute(f"{command} {sequence} {prefix}FLAGS{suffix} {flags}", self._parse_fetch)

    def copy(self, sequence, mailbox: str):
        return self._execute(f"COPY {sequence} {astring(mailbox)}")

    # Helpers for UI
    def get_history(self):
        """Return a copy of the history list."""
        return list(self.history)

    def clear_history(self):
        self.history.clear()
