# Loans module
from khata.modules.loans.models import Loan, LoanStatus, ALLOWED_TRANSITIONS, can_transition

__all__ = ["Loan", "LoanStatus", "ALLOWED_TRANSITIONS", "can_transition"]
