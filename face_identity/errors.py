"""
Errors raised by the identity store.

Every error here is an expected, caller-fixable outcome. The store stays
usable immediately after raising any of them. A rejected match is not an
error and has no exception class.
"""


class IdentityStoreError(Exception):
    """Base class for identity store errors."""


class InvalidInput(IdentityStoreError, ValueError):
    """Malformed or wrong-dimension embedding, empty label or bad threshold."""


class DuplicateIdentity(IdentityStoreError):
    """The label is already registered."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Identity already registered: {label!r}")


class UnknownIdentity(IdentityStoreError, KeyError):
    """No record exists for the label."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Identity not registered: {label!r}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the whole message
        return self.args[0]


class PersistenceError(IdentityStoreError):
    """Persisted store state is unreadable or violates store invariants."""
