"""Typed failures for the green bond engine.

Contracts can only fail through ``assert``; every message they raise starts
with a failure kind (``"CapExceeded: ..."``). :func:`translate` maps such an
``AssertionError`` onto the classes below so callers can branch on type
instead of parsing strings.
"""

from __future__ import annotations


class GreenBondError(Exception):
    """Base class. ``kind`` matches the prefix used by the contracts."""

    kind = "GreenBondError"
    retryable = False

    def __init__(self, message: str = "", *, detail: str | None = None) -> None:
        super().__init__(message or self.kind)
        self.detail = detail if detail is not None else message


# Authorization

class AuthorizationError(GreenBondError):
    kind = "AuthorizationError"


class Unauthorized(AuthorizationError):
    kind = "Unauthorized"


# Temporal

class TemporalError(GreenBondError):
    kind = "TemporalError"


class SaleNotOpen(TemporalError):
    kind = "SaleNotOpen"
    retryable = True


# Capacity

class CapacityError(GreenBondError):
    kind = "CapacityError"


class CapExceeded(CapacityError):
    kind = "CapExceeded"


class Overflow(CapacityError):
    """Oracle counter would leave the u128 range. Needs an operator."""

    kind = "Overflow"


class ReleaseOverflow(CapacityError):
    """A release would push total released above total raised.

    Never raised from an evaluation pass: the milestone is left pending and
    reported in :attr:`greenbond.project.ReleaseReport.deferred`.
    """

    kind = "ReleaseOverflow"
    retryable = True


# Validation

class ValidationError(GreenBondError):
    kind = "ValidationError"


class IncorrectPayment(ValidationError):
    kind = "IncorrectPayment"
    retryable = True


class InvalidMilestones(ValidationError):
    kind = "InvalidMilestones"


class InvalidAmount(ValidationError):
    kind = "InvalidAmount"
    retryable = True


class InvalidConfig(ValidationError):
    kind = "InvalidConfig"


class NothingToRelease(ValidationError):
    kind = "NothingToRelease"


class MinterAlreadySet(ValidationError):
    kind = "MinterAlreadySet"


# Concurrency

class ConcurrencyError(GreenBondError):
    kind = "ConcurrencyError"


class EscrowBusy(ConcurrencyError):
    kind = "EscrowBusy"
    retryable = True


ERRORS_BY_KIND: dict[str, type[GreenBondError]] = {
    cls.kind: cls
    for cls in (
        Unauthorized,
        SaleNotOpen,
        CapExceeded,
        Overflow,
        ReleaseOverflow,
        IncorrectPayment,
        InvalidMilestones,
        InvalidAmount,
        InvalidConfig,
        NothingToRelease,
        MinterAlreadySet,
        EscrowBusy,
    )
}


def split_message(message: str) -> tuple[str | None, str]:
    """Split ``"Kind: detail"`` into ``("Kind", "detail")``."""
    head, sep, tail = message.partition(":")
    if sep and head.strip() in ERRORS_BY_KIND:
        return head.strip(), tail.strip()
    return None, message.strip()


def translate(exc: BaseException) -> GreenBondError:
    """Map a contract failure onto a :class:`GreenBondError` subclass.

    Messages without a known kind (for example a payment token refusing a
    transfer for lack of allowance) become a plain :class:`GreenBondError`
    that keeps the original text.
    """
    if isinstance(exc, GreenBondError):
        return exc
    message = str(exc.args[0]) if exc.args else str(exc)
    kind, detail = split_message(message)
    if kind is None:
        return GreenBondError(message, detail=detail)
    return ERRORS_BY_KIND[kind](message, detail=detail)
