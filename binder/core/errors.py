"""
binder/core/errors.py
Failure kinds raised by the upstream sources and the cache core.

  UpstreamUnavailable       → network / remote failure; recovered by the cache
  MalformedUpstreamPayload  → response shape is wrong; treated the same way
  NoDataAvailable           → nothing in memory, nothing persisted, no
                              fallback, and upstream failed. Terminal.
  StorageError              → the record store failed; the cache logs it and
                              carries on as if the row were absent
"""


class BinderError(Exception):
    """Base class for every error this service raises on purpose."""


class UpstreamUnavailable(BinderError):
    def __init__(self, source: str, detail: str = ""):
        self.source = source
        self.detail = detail
        super().__init__(f"{source} unavailable: {detail}" if detail else f"{source} unavailable")


class MalformedUpstreamPayload(UpstreamUnavailable):
    pass


class NoDataAvailable(BinderError):
    def __init__(self, source: str, key: str = ""):
        self.source = source
        self.key    = key
        label = f"{source}[{key}]" if key else source
        super().__init__(f"No data available for {label}")


class StorageError(BinderError):
    """The record store could not be read or written."""
