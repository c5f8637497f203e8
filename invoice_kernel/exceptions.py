"""
Typed Exception Hierarchy for the Invoice Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Invoice generation crosses several failure domains (bad order data, a
crashed rendering engine, a full disk, a duplicate number).  Callers such
as the job orchestrator and the HTTP layer must react to each one
differently, so every error is:
  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (shop, job id, violated constraints, ...)

Example - WRONG way:
    try:
        orchestrator.generate_single(shop, order_id)
    except Exception as e:
        if "state code" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        orchestrator.generate_single(shop, order_id)
    except TaxValidationError as e:
        api_response(code=e.code, errors=list(e.errors))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InvoiceKernelError:

    InvoiceKernelError (base)
    |
    +-- ValidationError                 (rejected before any side effect)
    |   +-- TaxValidationError
    |   +-- OrderSnapshotError
    |   +-- BusinessProfileError
    |   +-- InvalidStateCodeError
    |   +-- EmptyOrderListError
    |   +-- InvalidShopError
    |
    +-- CalculationError
    |   +-- TaxCalculationError
    |
    +-- ResourceError                   (retryable at the job level)
    |   +-- StorageError
    |   +-- RasterizationError
    |   |   +-- RasterizationTimeoutError
    |   +-- RenderingEngineUnavailableError
    |   +-- ItemTimeoutError
    |   +-- InvoiceDeliveryError
    |
    +-- NotFoundError
    |   +-- JobNotFoundError
    |   +-- ArtifactNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- OrderNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicateInvoiceNumberError
    |   +-- SequenceContentionError
    |   +-- InvalidJobTransitionError
    |
    +-- JobInfrastructureError
    |
    +-- MailerNotConfiguredError

A bulk job that ends with some items failed is NOT an exception: it is an
accounted outcome (``JobRunResult.is_partial_failure``).

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Validation      | VALIDATION_ERROR              | Any rejected input (lists all errors)
                | INVALID_STATE_CODE            | State code not in the enumerated set
                | EMPTY_ORDER_LIST              | Bulk request without order ids
                | INVALID_SHOP                  | Shop name is not a safe path component
----------------|-------------------------------|---------------------------------------
Calculation     | CALCULATION_ERROR             | Unexpected failure inside TaxEngine
----------------|-------------------------------|---------------------------------------
Resource        | STORAGE_ERROR                 | Filesystem write/read failure
                | RASTERIZATION_FAILED          | PDF engine raised while rendering
                | RASTERIZATION_TIMEOUT         | PDF engine exceeded its time budget
                | RENDERING_ENGINE_UNAVAILABLE  | Pool cannot supply a context
                | ITEM_TIMEOUT                  | Per-order wall-clock budget exceeded
----------------|-------------------------------|---------------------------------------
Not found       | JOB_NOT_FOUND                 | Unknown job id for this shop
                | ARTIFACT_NOT_FOUND            | Key missing or outside shop namespace
                | INVOICE_NOT_FOUND             | Unknown invoice number for this shop
                | ORDER_NOT_FOUND               | Order source has no such order
----------------|-------------------------------|---------------------------------------
Conflict        | DUPLICATE_INVOICE_NUMBER      | Unique (shop, number) violated
                | SEQUENCE_CONTENTION           | CAS retries exhausted
                | INVALID_JOB_TRANSITION        | State machine forbids the change
----------------|-------------------------------|---------------------------------------
Job             | JOB_INFRASTRUCTURE_ERROR      | Whole-job failure, eligible for retry
----------------|-------------------------------|---------------------------------------
Configuration   | MAILER_NOT_CONFIGURED         | Email requested without an InvoiceMailer

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ``retryable`` is a class attribute.  The worker consults it to decide
   between re-enqueueing a job and failing it outright.

2. Validation errors always carry the full tuple of violations in
   ``errors``; the message is the violations joined with ", ".

3. An artifact that exists but lives outside the caller's shop namespace
   raises ArtifactNotFoundError, never a permission error, so callers
   cannot probe other shops' keys.

===============================================================================
"""

from __future__ import annotations

from collections.abc import Iterable


class InvoiceKernelError(Exception):
    """
    Base exception for all invoice kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVOICE_KERNEL_ERROR"
    retryable: bool = False


# Validation exceptions


class ValidationError(InvoiceKernelError):
    """Input rejected before any side effect; lists every violation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, errors: Iterable[str], subject: str | None = None):
        self.errors = tuple(errors)
        self.subject = subject
        message = ", ".join(self.errors) or "Validation failed"
        if subject:
            message = f"{subject}: {message}"
        super().__init__(message)


class TaxValidationError(ValidationError):
    """Tax input failed validation (totals, state codes)."""

    def __init__(self, errors: Iterable[str]):
        super().__init__(errors)


class OrderSnapshotError(ValidationError):
    """Order payload from the commerce collaborator has an unexpected shape."""

    def __init__(self, errors: Iterable[str], order_id: str | None = None):
        self.order_id = order_id
        super().__init__(errors, subject=f"Order {order_id}" if order_id else None)


class BusinessProfileError(ValidationError):
    """Business profile fields do not match their required formats."""

    def __init__(self, errors: Iterable[str]):
        super().__init__(errors, subject="Business profile")


class InvalidStateCodeError(ValidationError):
    """State code is blank or not part of the enumerated state set."""

    code: str = "INVALID_STATE_CODE"

    def __init__(self, state_code: str | None):
        self.state_code = state_code
        if state_code is None or not state_code.strip():
            super().__init__(["State code cannot be empty"])
        else:
            super().__init__([f"Invalid state code: {state_code}"])


class EmptyOrderListError(ValidationError):
    """Bulk generation was requested without any order ids."""

    code: str = "EMPTY_ORDER_LIST"

    def __init__(self):
        super().__init__(["At least one order id is required"])


class InvalidShopError(ValidationError):
    """Shop name cannot be used as a storage namespace as given."""

    code: str = "INVALID_SHOP"

    def __init__(self, shop: str):
        self.shop = shop
        super().__init__([f"Shop name is not a safe path component: {shop!r}"])


# Calculation exceptions


class CalculationError(InvoiceKernelError):
    """Unexpected internal failure during a computation."""

    code: str = "CALCULATION_ERROR"


class TaxCalculationError(CalculationError):
    """TaxEngine failed after validation passed."""

    def __init__(self, reason: str, order_id: str | None = None):
        self.reason = reason
        self.order_id = order_id
        super().__init__(f"GST calculation failed: {reason}")


# Resource exceptions


class ResourceError(InvoiceKernelError):
    """Storage or rendering-engine failure; retryable at the job level."""

    code: str = "RESOURCE_ERROR"
    retryable: bool = True


class StorageError(ResourceError):
    """Artifact could not be written to or read from storage."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, shop: str, detail: str):
        self.operation = operation
        self.shop = shop
        self.detail = detail
        super().__init__(f"Storage {operation} failed for shop {shop}: {detail}")


class RasterizationError(ResourceError):
    """The PDF engine raised while producing output."""

    code: str = "RASTERIZATION_FAILED"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Rasterization failed: {detail}")


class RasterizationTimeoutError(RasterizationError):
    """The PDF engine did not finish within its time budget."""

    code: str = "RASTERIZATION_TIMEOUT"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"timed out after {timeout_seconds:g}s")


class RenderingEngineUnavailableError(ResourceError):
    """The rendering pool could not supply a usable context."""

    code: str = "RENDERING_ENGINE_UNAVAILABLE"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Rendering engine unavailable: {detail}")


class ItemTimeoutError(ResourceError):
    """A single order exceeded the per-item wall-clock budget."""

    code: str = "ITEM_TIMEOUT"

    def __init__(self, order_id: str, timeout_seconds: float, stage: str):
        self.order_id = order_id
        self.timeout_seconds = timeout_seconds
        self.stage = stage
        super().__init__(
            f"Order {order_id} exceeded {timeout_seconds:g}s (at {stage})"
        )


class InvoiceDeliveryError(ResourceError):
    """The mail collaborator rejected or failed to send an invoice."""

    code: str = "INVOICE_DELIVERY_FAILED"

    def __init__(self, invoice_number: str, shop: str, detail: str):
        self.invoice_number = invoice_number
        self.shop = shop
        self.detail = detail
        super().__init__(f"Could not send invoice {invoice_number}: {detail}")


# Not-found exceptions


class NotFoundError(InvoiceKernelError):
    """Requested entity does not exist in the caller's shop."""

    code: str = "NOT_FOUND"


class JobNotFoundError(NotFoundError):
    """Print job does not exist for this shop."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str, shop: str | None = None):
        self.job_id = job_id
        self.shop = shop
        super().__init__(f"Print job not found: {job_id}")


class ArtifactNotFoundError(NotFoundError):
    """Artifact key is missing or resolves outside the shop namespace."""

    code: str = "ARTIFACT_NOT_FOUND"

    def __init__(self, key: str, shop: str):
        self.key = key
        self.shop = shop
        super().__init__(f"Artifact not found: {key}")


class InvoiceNotFoundError(NotFoundError):
    """No invoice with this number exists for the shop."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_number: str, shop: str):
        self.invoice_number = invoice_number
        self.shop = shop
        super().__init__(f"Invoice not found: {invoice_number}")


class OrderNotFoundError(NotFoundError):
    """The commerce collaborator has no order with this id."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str, shop: str):
        self.order_id = order_id
        self.shop = shop
        super().__init__(f"Order not found: {order_id}")


# Conflict exceptions


class ConflictError(InvoiceKernelError):
    """Operation conflicts with existing state."""

    code: str = "CONFLICT"


class DuplicateInvoiceNumberError(ConflictError):
    """(shop, invoice_number) already exists."""

    code: str = "DUPLICATE_INVOICE_NUMBER"

    def __init__(self, invoice_number: str, shop: str):
        self.invoice_number = invoice_number
        self.shop = shop
        super().__init__(
            f"Invoice number {invoice_number} already issued for shop {shop}"
        )


class SequenceContentionError(ConflictError):
    """Compare-and-swap retries were exhausted for a sequence."""

    code: str = "SEQUENCE_CONTENTION"

    def __init__(self, sequence_name: str, attempts: int):
        self.sequence_name = sequence_name
        self.attempts = attempts
        super().__init__(
            f"Sequence {sequence_name} still contended after {attempts} attempts"
        )


class InvalidJobTransitionError(ConflictError):
    """Print job state machine forbids the requested transition."""

    code: str = "INVALID_JOB_TRANSITION"

    def __init__(self, job_id: str, from_status: str, to_status: str):
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Job {job_id} cannot move from {from_status} to {to_status}"
        )


# Job-level exceptions


class JobInfrastructureError(InvoiceKernelError):
    """Whole-job failure caused by infrastructure, eligible for retry."""

    code: str = "JOB_INFRASTRUCTURE_ERROR"
    retryable: bool = True

    def __init__(self, job_id: str, detail: str, cause_code: str | None = None):
        self.job_id = job_id
        self.detail = detail
        self.cause_code = cause_code
        super().__init__(f"Job {job_id} interrupted: {detail}")


# Configuration exceptions


class MailerNotConfiguredError(InvoiceKernelError):
    """An email was requested but no InvoiceMailer is wired in."""

    code: str = "MAILER_NOT_CONFIGURED"

    def __init__(self, shop: str, invoice_number: str):
        self.shop = shop
        self.invoice_number = invoice_number
        super().__init__(
            f"Cannot send invoice {invoice_number}: no mailer configured"
        )
