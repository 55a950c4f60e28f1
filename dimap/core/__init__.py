"""
Core IMAP client logic.
Includes the grammar parser, response transformer, transport, command
dispatcher, session state machine and command handler.
"""

from .connection import ControlConnectionManager
from .dispatcher import CommandDispatcher, TagGenerator
from .commands import ClientCommandHandler
from .parser import Parser
from .response import ResponseTable, transform_result
from .session import ImapSession, SessionState

__all__ = [
    "ControlConnectionManager",
    "CommandDispatcher",
    "TagGenerator",
    "ClientCommandHandler",
    "Parser",
    "ResponseTable",
    "transform_result",
    "ImapSession",
    "SessionState",
]
