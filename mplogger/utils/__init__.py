"""
Shared utilities for mplogger: logging setup and terminal colors.
"""
