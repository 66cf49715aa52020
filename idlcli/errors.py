"""Error taxonomy for idlcli.

Every failure raised by the pipeline derives from :class:`IdlCliError` so the
entry point can report it with a single handler. Nothing below is retried or
recovered from; errors propagate to the top-level invocation unmodified.
"""

from __future__ import annotations

from typing import Optional


class IdlCliError(Exception):
    """Base class for all idlcli failures."""


class SchemaError(IdlCliError):
    """Raised when an IDL document is malformed or inconsistent."""


class ConfigError(IdlCliError):
    """Raised when settings cannot be loaded."""


class ProgramBinaryError(IdlCliError):
    """Raised when a ProgramId cannot be read from a program binary."""


class ArgumentError(IdlCliError):
    """Bad user input, reported with the offending token and expected format."""

    def __init__(
        self,
        message: str,
        *,
        flag: Optional[str] = None,
        token: Optional[str] = None,
        expected: Optional[str] = None,
    ) -> None:
        self.flag = flag
        self.token = token
        self.expected = expected
        super().__init__(message)

    def __str__(self) -> str:
        text = super().__str__()
        if self.flag:
            text = f"--{self.flag}: {text}"
        if self.expected:
            text = f"{text} (expected {self.expected})"
        return text


class ArgumentOverflow(ArgumentError):
    """A numeric token exceeds the range of its type."""


class InvalidFormat(ArgumentError):
    """A token does not match the accepted format of its type."""


class MissingRequired(ArgumentError):
    """A required argument or account override was not supplied."""


class AccountError(IdlCliError):
    """Account resolution failed (ordering or seed size)."""


class UnresolvedAccount(AccountError):
    pass


class UnresolvedArgument(AccountError):
    pass


class SeedTooLong(AccountError):
    pass


class MissingSigner(IdlCliError):
    """A signer account has no authorization material."""


class NetworkError(IdlCliError):
    """The sequencer could not be reached."""


class SubmissionTimeout(NetworkError):
    pass


class ConnectionFailed(NetworkError):
    pass


class LedgerRejected(IdlCliError):
    """The sequencer returned a structured rejection."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"Ledger rejected transaction: {self.message}"
