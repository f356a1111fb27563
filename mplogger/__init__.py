"""
mplogger - Multi-Process Log Aggregator

This package collects log records emitted by many processes and threads
over a local Unix socket, keeps them in a bounded in-memory store, and
provides a terminal UI for browsing the live stream per process and
thread.
"""

__version__ = "0.1.0"
__author__ = "mplogger Team"
