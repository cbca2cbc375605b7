"""
BaseService -- abstract base for kernel write services.

Responsibility:
    Common constructor and session contract.  Services write through
    ``session.flush()`` and never commit or roll back; the caller owns the
    transaction boundary.  That is what lets the shipment workflow choose
    between one transaction per write step and a single atomic one.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    def __init__(self, session: Session):
        self.session = session
