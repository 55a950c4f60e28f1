import logging
from typing import List, Union

from dimap.core.errors import (
    InvalidLiteral,
    InvalidLiteralPrelude,
    UnexpectedEnd,
    UnmatchedBracket,
    UnterminatedString,
)

logger = logging.getLogger("dimap.core.parser")

# An atom is a plain str, a list is a Python list of values.
GrammarValue = Union[str, List["GrammarValue"]]


class Parser:
    """
    Converts between IMAP list syntax and nested Python lists.

    parse_list("(A (B C) D)") -> ["A", ["B", "C"], "D"]
    build_list(["A", ["B", "C"], "D"]) -> "(A (B C) D)"
    """

    def __init__(self):
        pass

    def parse_list(self, text: str) -> GrammarValue:
        """
        Parse one response-grammar string.

        The first outermost list closed by ``)`` is returned as soon as it
        is complete; anything after it is ignored. When the text ends
        without an open list, the top-level values seen so far are returned
        as a list (e.g. ``'{3}\\r\\nabc def'`` -> ``["abc", "def"]``).

        Quoted strings keep their backslashes, no unescaping is done.
        """
        stack: List[list] = []
        cur: list = []
        atom: List[str] = []
        pos = 0
        end = len(text)

        def finish_atom():
            if atom:
                cur.append("".join(atom))
                atom.clear()

        while pos < end:
            c = text[pos]
            pos += 1

            if c == "(":
                stack.append(cur)
                cur = []

            elif c == ")":
                if not stack:
                    raise UnexpectedEnd("Malformed reply: unexpected ')'")
                finish_atom()
                done = cur
                cur = stack.pop()
                if not stack:
                    return done
                cur.append(done)

            elif c == "[":
                # [] quotes everything up to the next ], nesting not supported
                close = text.find("]", pos)
                if close < 0:
                    raise UnmatchedBracket("Malformed reply: unmatched '['")
                atom.append(text[pos - 1:close + 1])
                pos = close + 1

            elif c == '"':
                start = pos
                while True:
                    if pos >= end:
                        raise UnterminatedString("Malformed reply: unfinished string")
                    if text[pos] == '"' and text[pos - 1] != "\\":
                        break
                    pos += 1
                finish_atom()
                cur.append(text[start:pos])
                pos += 1

            elif c == "{":
                close = text.find("}", pos)
                if close < 0:
                    raise InvalidLiteralPrelude("Malformed reply: unfinished literal prelude")
                prelude = text[pos:close]
                if not prelude.isdigit():
                    raise InvalidLiteralPrelude(f"Malformed reply: invalid literal size '{prelude}'")
                size = int(prelude)
                pos = close + 1
                if text[pos:pos + 2] != "\r\n":
                    raise InvalidLiteral("Malformed reply: literal prelude not followed by CRLF")
                pos += 2
                if end - pos < size:
                    raise InvalidLiteral(f"Malformed reply: literal needs {size} chars, got {end - pos}")
                finish_atom()
                cur.append(text[pos:pos + size])
                pos += size

            elif c.isspace():
                finish_atom()

            else:
                atom.append(c)

        if stack:
            raise UnexpectedEnd("Malformed reply: unexpected end of string")
        finish_atom()
        return cur

    def build_list(self, value) -> str:
        """
        Nested lists to IMAP list syntax. Scalars are emitted verbatim, so
        they must already be quoted/escaped by the caller. The value may not
        contain reference cycles.
        """
        if isinstance(value, (list, tuple)):
            return "(" + " ".join(self.build_list(v) for v in value) + ")"
        return str(value)
