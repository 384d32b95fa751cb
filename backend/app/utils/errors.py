"""
Error types for the prep sheet pipeline.

None of these reach an HTTP caller of the generation endpoints: the
orchestrator degrades to a lower document tier instead.
"""


class ExternalServiceUnavailable(Exception):
    """Raised when calendar, CRM, mail, storage or generation is unreachable."""

    def __init__(self, service: str, reason: str = "unavailable"):
        self.service = service
        self.reason = reason
        super().__init__(f"{service} unavailable: {reason}")


class MeetingUnavailable(Exception):
    """Raised when no meeting record can be obtained for a request."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Meeting not available: {ref}")


class GenerationCancelled(Exception):
    """Raised at a step boundary when the caller has gone away."""


class AccountNotFound(LookupError):
    """Raised when a manual link names an account the owner does not have."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")
