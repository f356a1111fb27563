"""
Base command class for all CLI commands.
"""

import argparse
import logging
from abc import ABC, abstractmethod

from ..config import Config


class BaseCommand(ABC):
    """Base class for all CLI commands."""

    def __init__(self, args: argparse.Namespace, config: Config):
        """
        Initialize the command.

        Args:
            args: Parsed command line arguments
            config: Configuration loaded from the environment and config file
        """
        self.args = args
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def run(self) -> int:
        """
        Run the command.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        pass

    @staticmethod
    @abstractmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        """
        Add command-specific arguments to the parser.

        Args:
            parser: Argument parser to add arguments to
        """
        pass
