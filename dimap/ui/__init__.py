"""Streamlit console for dimap (optional, needs the `ui` extra)."""
