#!/usr/bin/env python3
"""
dimap command line client.

Connects, prints the server capabilities, logs in, shows STATUS counters
for every subscribed mailbox and the headers of the most recent messages
of one mailbox (opened read-only), then logs out.

If in doubt, see RFC 3501: https://tools.ietf.org/html/rfc3501#section-6
"""

import argparse
import getpass
import logging
import sys

from dimap.config import load_config
from dimap.core.commands import ClientCommandHandler
from dimap.core.errors import ImapError
from dimap.core.session import ImapSession

logger = logging.getLogger("dimap.cli")


def build_arg_parser(config: dict) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dimap", description="Minimal IMAP4rev1 client")
    parser.add_argument("--host", default=config["host"], help="Servidor IMAP")
    parser.add_argument("--port", type=int, default=None, help="Puerto (143, o 993 con --ssl)")
    parser.add_argument("--ssl", action="store_true", default=config["ssl"], help="TLS implícito al conectar")
    parser.add_argument("--starttls", action="store_true", default=config["starttls"], help="Negociar STARTTLS tras el saludo")
    parser.add_argument("--user", default=config["user"], help="Usuario para LOGIN")
    parser.add_argument("--timeout", type=float, default=config["timeout"], help="Timeout de lectura en segundos")
    parser.add_argument("--mailbox", default="INBOX", help="Buzón a examinar")
    parser.add_argument("--count", type=int, default=4, help="Cantidad de mensajes recientes a mostrar")
    parser.add_argument("--log-level", default=config["log_level"], help="Nivel de logging")
    return parser


def run(args, password: str) -> None:
    session = ImapSession.connect(args.host, args.port, timeout=args.timeout, use_ssl=args.ssl)
    handler = ClientCommandHandler(session)
    try:
        print(f"Connected: {session.greeting}")

        caps, _ = handler.capability()
        print("Capabilities: " + ", ".join(caps))

        if args.starttls:
            handler.starttls()

        handler.login(args.user, password)

        mailboxes, _ = handler.lsub()
        for name in mailboxes:
            stat, _ = handler.status(name, ["MESSAGES", "RECENT", "UNSEEN"])
            print(f"{name}\t{stat.get('MESSAGES')}\t{stat.get('RECENT')}\t{stat.get('UNSEEN')}")

        info, _ = handler.examine(args.mailbox)
        print(f"{args.mailbox}: {info['exists']} messages, {info['recent']} recent")

        if info["exists"]:
            first = max(1, info["exists"] - args.count + 1)
            item = "BODY.PEEK[HEADER.FIELDS (FROM DATE SUBJECT)]"
            messages, _ = handler.fetch(f"({item})", f"{first}:*")
            for msg in messages:
                # el servidor responde BODY[...] aunque se pida BODY.PEEK[...]
                headers = next((v for k, v in msg.items() if k.startswith("BODY[")), "")
                print(f"--- {msg['id']}")
                print(headers.strip())
    finally:
        if not session.is_closed():
            handler.logout()


def main(argv=None) -> int:
    config = load_config()
    args = build_arg_parser(config).parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.port is None:
        # None deja que la conexión elija 143 o 993
        args.port = config["port"] if args.ssl == config["ssl"] else None

    if not args.user:
        logger.error("No user given (use --user or DIMAP_USER)")
        return 2

    password = config["password"]
    if password is None:
        password = getpass.getpass(f"Password for {args.user}@{args.host}: ")

    try:
        run(args, password)
    except ImapError as e:
        logger.error("IMAP error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
