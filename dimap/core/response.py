import logging
from collections import defaultdict
from typing import Iterable

logger = logging.getLogger("dimap.core.response")


class ResponseTable(defaultdict):
    """
    Untagged responses of one command, grouped by keyword.

    {
        "FLAGS":  ["(\\Answered \\Seen)"],
        "EXISTS": ["172"],
        "FETCH":  ["2 (UID 5)", "3 (UID 9)"],
    }

    Missing keywords read as an empty list.
    """

    def __init__(self, default_factory=list, *args, **kwargs):
        # copy() y pickle pasan default_factory como primer argumento
        super().__init__(default_factory, *args, **kwargs)

    def first(self, keyword: str, default=None):
        """Devuelve la primera respuesta para `keyword` o `default`."""
        values = self.get(keyword)
        return values[0] if values else default

    def __repr__(self):
        return f"ResponseTable({dict(self)!r})"


def merge_blocks(lines: Iterable[str]) -> list:
    """
    Une las líneas en bloques de respuesta.

    Una línea '*' abre un bloque nuevo, '+' se ignora (continuation
    request) y cualquier otra línea se pega con CRLF al último bloque
    abierto: son los restos de un literal multilínea.
    """
    blocks = []
    for line in lines:
        first = line[:1]
        if first == "*":
            blocks.append(line[2:])
        elif first == "+":
            continue
        elif blocks:
            blocks[-1] = blocks[-1] + "\r\n" + line
        else:
            logger.warning("Dropping response data outside of any untagged block: %r", line)
    return blocks


def split_keyword(block: str) -> tuple:
    """
    Separa el keyword de sus argumentos.

    'number SP keyword' ("3 FETCH (...)", "15 EXISTS") se normaliza a
    keyword FETCH / EXISTS con el número al principio de los argumentos.
    """
    parts = block.split(None, 1)
    if not parts:
        return "", ""
    keyword = parts[0]
    args = parts[1] if len(parts) > 1 else ""

    if keyword.isdigit() and args:
        number = keyword
        rest = args.split(None, 1)
        keyword = rest[0]
        remainder = rest[1] if len(rest) > 1 else ""
        args = f"{number} {remainder}" if remainder else number

    return keyword, args


def transform_result(lines: Iterable[str]) -> ResponseTable:
    """Agrupa las líneas crudas de un comando en un ResponseTable."""
    table = ResponseTable()
    for block in merge_blocks(lines):
        keyword, args = split_keyword(block)
        table[keyword].append(args)
    return table
