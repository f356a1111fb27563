"""
CLI commands for mplogger.
"""
