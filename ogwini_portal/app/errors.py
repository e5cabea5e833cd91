"""Error taxonomy shared by services and routes.

Every error carries a ``message`` that is safe to flash to the visitor.
Validation errors are local and block a wizard step; remote-call errors
come from a collaborator (accounts, records, storage, notifications) and
abort only the operation in progress.
"""

from __future__ import annotations


class PortalError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def __repr__(self) -> str:
        return f"ValidationError(field={self.field!r}, message={self.message!r})"


class WizardStateError(PortalError):
    pass


class SubmissionError(PortalError):
    pass


class RemoteCallError(PortalError):
    pass


class AccountError(RemoteCallError):
    pass


class AccountExistsError(AccountError):
    def __init__(self, email: str):
        super().__init__("An account with this email already exists.")
        self.email = email


class InvalidCredentialsError(AccountError):
    def __init__(self, message: str = "Invalid email or password."):
        super().__init__(message)


class RecordStoreError(RemoteCallError):
    pass


class StorageError(RemoteCallError):
    pass


class NotificationError(RemoteCallError):
    pass
