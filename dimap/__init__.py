__all__ = ["ImapSession", "SessionState", "ClientCommandHandler", "ControlConnectionManager", "Parser", "errors"]

__version__ = "0.1.0"

def __getattr__(name: str):
	if name in ("ImapSession", "SessionState"):
		from .core import session
		return getattr(session, name)
	if name == "ClientCommandHandler":
		from .core.commands import ClientCommandHandler
		return ClientCommandHandler
	if name == "ControlConnectionManager":
		from .core.connection import ControlConnectionManager
		return ControlConnectionManager
	if name == "Parser":
		from .core.parser import Parser
		return Parser
	if name == "errors":
		from .core import errors
		return errors
	raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

def __dir__():
	return __all__
