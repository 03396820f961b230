"""Run commands across a fleet of hosts described by a Supfile."""

__version__ = "0.4.0"
