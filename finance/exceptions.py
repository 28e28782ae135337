"""
Finance error taxonomy.

Every business-rule violation raised by the payment recorder or the invoicing
engine is a FinanceError carrying a machine-readable kind, a Portuguese
message for the UI and the HTTP status the API layer answers with.
"""


class FinanceError(Exception):
    """Base class for finance business errors"""
    kind = 'FinanceError'
    status_code = 400
    default_message = 'Operação financeira inválida.'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self):
        return {
            'error': self.message,
            'kind': self.kind,
            'details': self.details,
        }


class FinanceValidationError(FinanceError):
    """Malformed input"""
    kind = 'ValidationError'
    status_code = 400
    default_message = 'Dados inválidos.'


class NotFound(FinanceError):
    """Missing invoice, payment, plan or student"""
    kind = 'NotFound'
    status_code = 404
    default_message = 'Registo não encontrado.'


class InvalidState(FinanceError):
    """Operation illegal for the current state of the entity"""
    kind = 'InvalidState'
    status_code = 409
    default_message = 'Operação não permitida no estado atual.'


class AlreadyCancelled(InvalidState):
    kind = 'AlreadyCancelled'
    default_message = 'O registo já foi cancelado.'


class OverpaymentError(FinanceError):
    """Payment would take the paid amount above the invoice amount"""
    kind = 'OverpaymentError'
    status_code = 422
    default_message = 'O valor do pagamento excede o saldo da fatura.'


class PlanInactive(FinanceError):
    kind = 'PlanInactive'
    status_code = 409
    default_message = 'O plano de pagamento está inativo.'


class ConcurrencyConflict(FinanceError):
    """Lock contention or stale write; the caller should retry"""
    kind = 'ConcurrencyConflict'
    status_code = 409
    default_message = 'A fatura foi alterada por outro utilizador. Tente novamente.'


class AccessDenied(FinanceError):
    kind = 'AccessDenied'
    status_code = 403
    default_message = 'Não tem permissão para executar esta operação.'
