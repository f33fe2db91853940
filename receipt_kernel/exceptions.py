"""
Typed Exception Hierarchy for the Receipt Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Receipt issuance crosses several independently failing systems (directory,
counter store, renderer, artifact store, income ledger).  Callers must be
able to tell, without parsing messages, whether a failure happened before
a correlative was spent (safe to resubmit) or after (the spent number must
be disclosed and reconciled).

Every exception therefore:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA (correlative, artifact key, ...)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ReceiptKernelError (base)
    |
    +-- RequestValidationError
    |
    +-- DirectoryError
    |   +-- DirectoryUnavailableError
    |
    +-- SequencerError
    |   +-- SequencerUnavailableError
    |   +-- InvalidCorrelativeError
    |
    +-- IssuanceStepError            (correlative already spent)
        +-- RenderError
        +-- ArtifactStoreError
        |   +-- ArtifactConflictError
        +-- LedgerWriteError
            +-- LedgerEntryMismatchError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                      | When Raised
--------------|---------------------------|------------------------------------------
Validation    | REQUEST_VALIDATION_FAILED | Request violates amount/concept/reference rules
--------------|---------------------------|------------------------------------------
Directory     | DIRECTORY_UNAVAILABLE     | Member directory unreachable
--------------|---------------------------|------------------------------------------
Sequencer     | SEQUENCER_UNAVAILABLE     | Counter update could not be committed
              | INVALID_CORRELATIVE       | String is not a canonical correlative
--------------|---------------------------|------------------------------------------
Issuance step | RENDER_FAILED             | Renderer raised or timed out
              | ARTIFACT_STORE_FAILED     | Artifact put failed after retries
              | ARTIFACT_CONFLICT         | Same key already stored with other bytes
              | LEDGER_WRITE_FAILED       | Ledger append failed after retries
              | LEDGER_ENTRY_MISMATCH     | Same receipt number, different payload
"""


class ReceiptKernelError(Exception):
    """
    Base exception for all receipt kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RECEIPT_KERNEL_ERROR"


# Validation


class RequestValidationError(ReceiptKernelError):
    """Receipt request violates a local invariant. Nothing was allocated."""

    code: str = "REQUEST_VALIDATION_FAILED"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Directory


class DirectoryError(ReceiptKernelError):
    """Base exception for member directory errors."""

    code: str = "DIRECTORY_ERROR"


class DirectoryUnavailableError(DirectoryError):
    """Member directory could not be queried."""

    code: str = "DIRECTORY_UNAVAILABLE"

    def __init__(self, document_number: str, reason: str):
        self.document_number = document_number
        self.reason = reason
        super().__init__(
            f"Directory unavailable looking up {document_number}: {reason}"
        )


# Sequencer


class SequencerError(ReceiptKernelError):
    """Base exception for correlative sequencer errors."""

    code: str = "SEQUENCER_ERROR"


class SequencerUnavailableError(SequencerError):
    """
    The counter update could not be committed.

    No correlative is considered issued when this is raised.
    """

    code: str = "SEQUENCER_UNAVAILABLE"

    def __init__(self, sequence_name: str, attempts: int, reason: str):
        self.sequence_name = sequence_name
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Sequence '{sequence_name}' unavailable after {attempts} attempt(s): {reason}"
        )


class InvalidCorrelativeError(SequencerError):
    """A string could not be parsed as a canonical correlative."""

    code: str = "INVALID_CORRELATIVE"

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid correlative '{value}': {reason}")


# Issuance steps (post-allocation)


class IssuanceStepError(ReceiptKernelError):
    """
    A saga step failed after the correlative was spent.

    Always carries the spent correlative so an operator can account for
    the gap or resume the failed step.
    """

    code: str = "ISSUANCE_STEP_FAILED"

    def __init__(self, correlative: str, reason: str):
        self.correlative = correlative
        self.reason = reason
        super().__init__(f"Receipt {correlative}: {reason}")


class RenderError(IssuanceStepError):
    """The document renderer failed or timed out."""

    code: str = "RENDER_FAILED"


class ArtifactStoreError(IssuanceStepError):
    """The artifact store rejected or failed the put."""

    code: str = "ARTIFACT_STORE_FAILED"


class ArtifactConflictError(ArtifactStoreError):
    """
    An artifact already exists under this key with different content.

    Puts are idempotent only for identical bytes; an existing artifact
    is never overwritten.
    """

    code: str = "ARTIFACT_CONFLICT"

    def __init__(self, correlative: str, existing_sha256: str, received_sha256: str):
        self.existing_sha256 = existing_sha256
        self.received_sha256 = received_sha256
        super().__init__(
            correlative,
            f"artifact already stored with sha256 {existing_sha256}, "
            f"received {received_sha256}",
        )


class LedgerWriteError(IssuanceStepError):
    """The income ledger append failed."""

    code: str = "LEDGER_WRITE_FAILED"


class LedgerEntryMismatchError(LedgerWriteError):
    """
    A ledger row exists for this receipt number with a different payload.

    Same key with a different payload is a protocol violation, not an
    idempotent retry.
    """

    code: str = "LEDGER_ENTRY_MISMATCH"

    def __init__(self, correlative: str, expected_hash: str, received_hash: str):
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            correlative,
            f"ledger entry exists with payload hash {expected_hash}, "
            f"received {received_hash}",
        )
