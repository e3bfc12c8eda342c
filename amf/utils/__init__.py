"""Utility functions for amf."""

from amf.utils.helpers import ensure_dir, get_data_path, safe_name, setup_logging, utc_now_iso

__all__ = ["ensure_dir", "get_data_path", "safe_name", "setup_logging", "utc_now_iso"]
