"""pmbench: benchmark JavaScript package manager installs."""

__version__ = "0.1.0"
