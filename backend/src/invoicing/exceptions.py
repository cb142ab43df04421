"""Domain exceptions raised by the invoicing services.

All of them derive from ValueError so callers that only distinguish
"bad input" from "unexpected failure" keep working. The API layer maps
each class to its own HTTP status.
"""


class InvoicingError(ValueError):
    """Base class for expected, user-displayable invoicing failures."""

    code = "invoicing_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(InvoicingError):
    """The referenced invoice or payment does not exist."""

    code = "not_found"


class BusinessRuleError(InvoicingError):
    """Input was incomplete or the operation breaks an invoicing rule."""

    code = "business_rule_violation"


class DuplicateInvoiceNumberError(InvoicingError):
    """Another invoice already carries the requested invoice number."""

    code = "duplicate_invoice_number"


class InvoiceNotFoundError(NotFoundError):
    code = "invoice_not_found"

    def __init__(self, message: str = "Invoice not found"):
        super().__init__(message)


class PaymentNotFoundError(NotFoundError):
    code = "payment_not_found"

    def __init__(self, message: str = "Payment not found"):
        super().__init__(message)


class AmountOutOfRangeError(BusinessRuleError):
    """A money value, percentage or quantity is too large to store."""

    code = "amount_out_of_range"
