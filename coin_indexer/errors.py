from typing import Any, Optional


class UnsupportedTypeError(ValueError):
    """Parse requested for a type tag outside the allow-list. Callers must check support first."""

    def __init__(self, type_str: str, version: int):
        super().__init__(
            f"type {type_str} unsupported at version {version}; check is_*_supported first"
        )
        self.type_str = type_str
        self.version = version


class DecodeError(Exception):
    """A supported type tag whose payload failed structural parsing."""

    def __init__(self, version: int, type_str: str, payload: Any, reason: str = ""):
        msg = f"version {version} failed! failed to parse type {type_str}, data {payload!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.version = version
        self.type_str = type_str
        self.payload = payload


class TransactionProcessingError(Exception):
    """Range-scoped failure reported to the orchestrator."""

    def __init__(self, name: str, start_version: int, end_version: int,
                 cause: Optional[BaseException] = None):
        super().__init__(
            f"[{name}] failed to process versions {start_version}..{end_version}: {cause}"
        )
        self.name = name
        self.start_version = start_version
        self.end_version = end_version
        self.cause = cause


class TransactionDecodeError(TransactionProcessingError):
    pass


class TransactionCommitError(TransactionProcessingError):
    pass
