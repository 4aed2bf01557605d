from loandesk.models.audit_log import AuditLog
from loandesk.models.document import Document
from loandesk.models.interest_rate import InterestRate
from loandesk.models.loan import ActiveLoan, FullyPaidLoan, Loan
from loandesk.models.loan_application import LoanApplication
from loandesk.models.loan_repayment import LoanRepayment
from loandesk.models.loan_review import LoanReview
from loandesk.models.notification import Notification
from loandesk.models.user import User

__all__ = [
    "ActiveLoan",
    "AuditLog",
    "Document",
    "FullyPaidLoan",
    "InterestRate",
    "Loan",
    "LoanApplication",
    "LoanRepayment",
    "LoanReview",
    "Notification",
    "User",
]
