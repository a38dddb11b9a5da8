"""Recipient resolution exceptions."""


class RecipientResolutionError(Exception):
    """No delivery address could be produced for a department.

    Attributes:
        department: Department name that failed to resolve
    """

    def __init__(self, department: str, reason: str):
        self.department = department
        self.reason = reason
        super().__init__(f"Cannot resolve recipients for '{department}': {reason}")
