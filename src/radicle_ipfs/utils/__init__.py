"""Initializes the radicle-ipfs utilities sub-package.

Available Utilities:
  - json_stream: Provides the JsonStreamDecoder class, which splits an
    undelimited byte stream of JSON values into individual values.
"""
from .json_stream import JsonStreamDecoder, JsonStreamError


__all__ = [
    "JsonStreamDecoder",
    "JsonStreamError",
]
