"""
Typed exceptions for the CRM engine.

Every error carries a machine-readable ``code`` so callers (forms, views,
batch jobs) can branch on type instead of parsing messages:

    CRMError
    +-- NotFoundError             unknown entity id
    +-- DuplicateIdError          id already present in a collection
    +-- InvalidTransitionError    status edge not in the transition table
    +-- ValidationError           missing or inconsistent field values
    |   +-- BenefitAlreadyClaimedError
    +-- ExternalServiceFailure    AI enrichment call failed
    +-- AuthenticationError       mock login rejected
    +-- OperationInProgressError  deferred action already pending
"""

from typing import Optional


class CRMError(Exception):
    """Base class for all engine errors."""

    code: str = "CRM_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(CRMError):
    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")


class DuplicateIdError(CRMError):
    code = "DUPLICATE_ID"

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} already exists")


class InvalidTransitionError(CRMError):
    code = "INVALID_TRANSITION"

    def __init__(self, kind: str, entity_id: str, current: str, target: str, reason: Optional[str] = None):
        self.kind = kind
        self.entity_id = entity_id
        self.current = current
        self.target = target
        message = f"{kind} {entity_id} cannot move from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ValidationError(CRMError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class BenefitAlreadyClaimedError(ValidationError):
    code = "BENEFIT_ALREADY_CLAIMED"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} has already claimed the free service call")


class ExternalServiceFailure(CRMError):
    code = "EXTERNAL_SERVICE_FAILURE"

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class AuthenticationError(CRMError):
    code = "AUTHENTICATION_FAILED"


class OperationInProgressError(CRMError):
    code = "OPERATION_IN_PROGRESS"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} is already in progress")
