"""Typed errors raised by the billing engine.

Every error carries a stable ``kind`` string, a human readable message and a
``retryable`` flag. Only storage-level failures (``SequenceUnavailable`` and
``StaleInvoice``) are safe to retry without changing the input.
"""

from decimal import Decimal


class BillingError(Exception):
    kind = 'billing_error'
    status_code = 400
    retryable = False
    default_message = 'Billing operation failed.'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {'kind': self.kind, 'detail': self.message, 'retryable': self.retryable}


class ProjectNotFound(BillingError):
    kind = 'project_not_found'
    status_code = 404
    default_message = 'Project not found.'


class InvoiceNotFound(BillingError):
    kind = 'invoice_not_found'
    status_code = 404
    default_message = 'Invoice not found.'


class BudgetExceeded(BillingError):
    kind = 'budget_exceeded'
    status_code = 409

    def __init__(self, remaining: Decimal, message: str | None = None):
        self.remaining = remaining
        super().__init__(message or f'Invoice exceeds the project budget. Remaining budget: {remaining}.')

    def as_dict(self) -> dict:
        data = super().as_dict()
        data['remaining'] = str(self.remaining)
        return data


class InvalidState(BillingError):
    kind = 'invalid_state'
    status_code = 409
    default_message = 'Only draft invoices can be edited.'


class InvalidStatus(BillingError):
    kind = 'invalid_status'
    default_message = 'Unknown invoice status.'


class InvalidPatch(BillingError):
    kind = 'invalid_patch'
    default_message = 'Invalid invoice changes.'


class RemarkRequired(BillingError):
    kind = 'remark_required'
    default_message = 'A remark is required to delete a non-draft invoice.'


class SequenceUnavailable(BillingError):
    kind = 'sequence_unavailable'
    status_code = 503
    retryable = True
    default_message = 'Invoice numbering is temporarily unavailable. Please retry.'


class StaleInvoice(BillingError):
    kind = 'stale_invoice'
    status_code = 409
    retryable = True
    default_message = 'Invoice was modified by another request. Please retry.'


class RenderFailure(BillingError):
    kind = 'render_failure'
    status_code = 422
    default_message = 'Invoice document could not be rendered.'
