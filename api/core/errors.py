"""
Error types shared across the API.

NotFoundError is an expected outcome (mapped to 404), not a crash.
ConfigurationError is fatal at startup.
"""

from __future__ import annotations


class ListeningPostError(RuntimeError):
    pass


class NotFoundError(ListeningPostError):
    def __init__(self, entity_name: str, entity_id: object) -> None:
        self.entity_name = entity_name
        self.entity_id = entity_id
        super().__init__(f"{entity_name} {entity_id} not found.")


class CommitAbortedError(ListeningPostError):
    """
    The unit of work was aborted and none of its mutations were applied.
    """


class CommitCancelledError(CommitAbortedError):
    pass


class ConfigurationError(ListeningPostError):
    pass


class UnknownPolicyError(ConfigurationError):
    def __init__(self, policy_name: str) -> None:
        self.policy_name = policy_name
        super().__init__(f"Unknown CORS policy: {policy_name!r}.")
