"""Textual board for live sessions."""
