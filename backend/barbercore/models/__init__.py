from .cash import CashRegisterSession
from .catalog import Service, CommissionOverride
from .orders import Order, OrderItem
from .finance import Revenue, Expense, RecurringExpenseConfig, ExpenseInstallment
from .runs import IdempotencyRun

__all__ = [
    'CashRegisterSession',
    'Service', 'CommissionOverride',
    'Order', 'OrderItem',
    'Revenue', 'Expense', 'RecurringExpenseConfig', 'ExpenseInstallment',
    'IdempotencyRun',
]
