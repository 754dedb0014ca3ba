"""Extension point for a future book loan subsystem.

Deleting books and members and the dashboard counters only need to know
whether loans exist. They ask a ``LoanRegistry``; until a loans subsystem is
implemented, ``NoLoanRegistry`` answers that there are none.
"""


class LoanRegistry:
    def active_loans_for_book(self, book_id: int) -> int:
        raise NotImplementedError

    def active_loans_for_member(self, member_id: int) -> int:
        raise NotImplementedError

    def issued_count(self) -> int:
        raise NotImplementedError

    def overdue_count(self) -> int:
        raise NotImplementedError


class NoLoanRegistry(LoanRegistry):
    def active_loans_for_book(self, book_id: int) -> int:
        return 0

    def active_loans_for_member(self, member_id: int) -> int:
        return 0

    def issued_count(self) -> int:
        return 0

    def overdue_count(self) -> int:
        return 0


_registry = NoLoanRegistry()


def get_loan_registry() -> LoanRegistry:
    """FastAPI dependency; override it to plug in a real loans subsystem."""
    return _registry
