from __future__ import annotations


class LostFoundError(Exception):
    pass


class RemoteFetchError(LostFoundError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class FingerprintError(LostFoundError):
    pass
