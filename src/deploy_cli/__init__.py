"""deploy-cli: automated remote deployment over SSH."""

__version__ = "1.0.0"
