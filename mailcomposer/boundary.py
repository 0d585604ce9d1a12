"""
Boundary Generator

Boundaries look like ``<prefix>?=_<counter>-<base>``. ``?`` never occurs in
base64 output and ``=_`` is not a valid quoted-printable escape, so a
boundary cannot be mistaken for encoded body data. The counter is per
instance; two generators never share state.
"""

import time
from typing import Optional

from .config import settings as default_settings


class BoundaryGenerator:
    """Sequential boundary tokens for one message."""

    def __init__(self, base_boundary: Optional[str] = None, prefix: Optional[str] = None):
        self.base = base_boundary or str(time.time_ns())
        self.prefix = prefix if prefix is not None else default_settings.boundary_prefix
        self.counter = 0

    def next(self) -> str:
        self.counter += 1
        return f"{self.prefix}?=_{self.counter}-{self.base}"

    __next__ = next

    def __iter__(self):
        return self
