from datetime import datetime
import threading
import time
import traceback
import logging

import streamlit as st

from dimap.config import load_config
from dimap.core.commands import ClientCommandHandler
from dimap.core.errors import CommandFailed, IllegalStateTransition, ImapError
from dimap.core.session import ImapSession
from dimap.ui.suggest import COMMANDS, get_suggestion

# Configure logging for Streamlit app
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("dimap.ui.app")

config = load_config()

st.set_page_config(page_title="dimap IMAP console", layout="wide")


# --- Helpers -----------------------------------------------------------------

# A lightweight wrapper to run blocking network calls in a thread and capture exceptions
def run_in_thread(fn, *args, **kwargs):
    result = {"value": None, "error": None}
    def target():
        try:
            result["value"] = fn(*args, **kwargs)
        except Exception as e:
            result["error"] = e
    t = threading.Thread(target=target)
    t.start()
    return t, result


def wait(t, label="Running..."):
    with st.spinner(label):
        while t.is_alive():
            time.sleep(0.05)


def show_table(res):
    st.json({k: v for k, v in res.items()})


# --- UI ----------------------------------------------------------------------
st.title("dimap: IMAP console")

if "handler" not in st.session_state:
    st.session_state["handler"] = None

with st.sidebar:
    st.header("Connection")
    host = st.text_input("Host", value=config["host"])
    use_ssl = st.checkbox("SSL", value=config["ssl"])
    port = st.number_input("Port", min_value=1, max_value=65535, value=config["port"])
    timeout = st.number_input("Timeout (s)", min_value=1.0, max_value=60.0, value=config["timeout"])
    if st.button("Connect"):
        try:
            logger.info(f"[UI] Connect button clicked: {host}:{port}")
            session = ImapSession.connect(host, int(port), timeout=float(timeout), use_ssl=use_ssl)
            st.session_state["handler"] = ClientCommandHandler(session)
            st.success(f"Connected: {session.greeting}")
        except ImapError as e:
            logger.error(f"[UI] Connection failed: {e}")
            st.session_state["handler"] = None
            st.error(f"Connection failed: {e}")

    handler: ClientCommandHandler = st.session_state.get("handler")
    if handler is not None:
        st.caption(f"State: {handler.session.current_state()}")

        st.header("Login")
        user = st.text_input("User", value=config["user"] or "")
        password = st.text_input("Password", type="password")
        if st.button("Login"):
            t, result = run_in_thread(handler.login, user, password)
            wait(t, "Logging in...")
            if result["error"]:
                st.error(f"Login failed: {result['error']}")
            else:
                st.success("Logged in")

        if st.button("Logout"):
            logger.info("[UI] Logout button clicked")
            t, result = run_in_thread(handler.logout)
            wait(t)
            st.session_state["handler"] = None
            if result["error"]:
                st.error(f"Error logging out: {result['error']}")
            else:
                st.info("Logged out")


col1, col2 = st.columns([3, 1])

with col1:
    st.subheader("Terminal")
    cmd = st.text_input("Command", placeholder="e.g. LIST \"\" *", key="cmd_input")
    cmd_run = st.button("Run")

    if cmd_run and cmd.strip():
        logger.info(f"[UI] Command executed: {cmd.split()[0]}")
        handler = st.session_state.get("handler")
        verb = cmd.strip().split()[0].upper()
        if not handler:
            st.error("Not connected. Connect first.")
        elif verb not in COMMANDS and verb not in ("ID", "NAMESPACE", "IDLE", "ENABLE"):
            st.error(f"Unknown command: {verb}")
            suggestion = get_suggestion(verb)
            if suggestion:
                st.write(f"Try with {suggestion}")
        else:
            t, result = run_in_thread(handler.raw, cmd)
            wait(t)
            err = result["error"]
            if isinstance(err, IllegalStateTransition):
                st.warning(str(err))
            elif isinstance(err, CommandFailed):
                st.error(f"{err.status}: {err.message}")
            elif err is not None:
                logger.error(f"[UI] Unhandled exception: {''.join(traceback.format_exception(type(err), err, err.__traceback__))}")
                st.error(f"Error: {err}")
            else:
                st.success("OK")
                show_table(result["value"])

with col2:
    st.subheader("History")
    handler = st.session_state.get("handler")
    if handler is None:
        st.info("No history: not connected")
    else:
        hist = handler.get_history()
        if st.button("Clear History"):
            handler.clear_history()
            st.rerun()
        for entry in reversed(hist[-100:]):
            t = entry.get("time")
            time_str = t.isoformat() if isinstance(t, datetime) else str(t)
            with st.expander(f"{time_str} | {entry.get('command')}"):
                if entry.get("parsed") is not None:
                    st.write(entry.get("parsed"))
                if entry.get("raw") is not None:
                    st.code(repr(entry.get("raw")))
                if entry.get("error"):
                    st.error("This entry had an error")


# Footer
st.markdown("---")
st.caption("dimap Streamlit console: command history, session state and errors.")
