#!/usr/bin/env python3
"""
Starts the Streamlit console (`dimap-ui`).

Replaces the current process with `streamlit run dimap/ui/app.py`.
"""

import os
import sys
import subprocess
import logging

logger = logging.getLogger("dimap.ui.launcher")

APP_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "app.py")


def build_command(host: str = "127.0.0.1", port: int = 8501) -> list:
    return [
        "streamlit",
        "run",
        APP_PATH,
        f"--server.port={port}",
        f"--server.address={host}",
        "--logger.level=info",
        "--client.showErrorDetails=true",
    ]


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    host = os.getenv("DIMAP_UI_HOST", "127.0.0.1")
    port = int(os.getenv("DIMAP_UI_PORT", "8501"))
    os.environ["STREAMLIT_TELEMETRY_ENABLED"] = "false"

    cmd = build_command(host, port)
    logger.info(f"Starting Streamlit IMAP console on {host}:{port}...")
    try:
        os.execvp(cmd[0], cmd)
    except OSError as e:
        logger.error(f"Failed to exec Streamlit: {e}")
        # Fallback to subprocess.run for better diagnostics
        try:
            subprocess.run([sys.executable, "-m"] + cmd, check=True)
        except subprocess.CalledProcessError as e2:
            logger.error(f"Streamlit exited with error code {e2.returncode}")
            sys.exit(e2.returncode)


if __name__ == "__main__":
    main()
