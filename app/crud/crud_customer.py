# app/crud/crud_customer.py
"""
CRUD operations for customers.

Every read is owner-scoped; segment matching goes through the rule compiler.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session, Query
from app.models.customer import Customer
from app.services.segment_rules import customer_filter


class CRUDCustomer:
    """CRUD operations for customers."""

    def create(self, db: Session, *, owner_id: str, **fields: Any) -> Customer:
        """Create a customer record."""
        customer = Customer(owner_id=owner_id, **fields)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    def get(self, db: Session, customer_id: str) -> Optional[Customer]:
        """Get customer by ID."""
        return db.query(Customer).filter(Customer.id == customer_id).first()

    def get_by_owner(
        self,
        db: Session,
        owner_id: str,
        *,
        skip: int = 0,
        limit: int = 100
    ) -> List[Customer]:
        """Get active customers of an owner."""
        return (
            db.query(Customer)
            .filter(Customer.owner_id == owner_id, Customer.is_active.is_(True))
            .order_by(Customer.created_at, Customer.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def query_matching(self, db: Session, *, owner_id: str, rules: Dict[str, Any]) -> Query:
        """
        Query of the owner's customers matching a segment rule tree.

        Raises:
            ValidationError: If the rule tree cannot be compiled
        """
        return db.query(Customer).filter(customer_filter(owner_id, rules))

    def count_matching(self, db: Session, *, owner_id: str, rules: Dict[str, Any]) -> int:
        """Count customers matching a rule tree."""
        return self.query_matching(db, owner_id=owner_id, rules=rules).count()

    def get_matching(
        self,
        db: Session,
        *,
        owner_id: str,
        rules: Dict[str, Any],
        limit: Optional[int] = None
    ) -> List[Customer]:
        """Customers matching a rule tree in store order (creation time, then id)."""
        query = self.query_matching(db, owner_id=owner_id, rules=rules).order_by(
            Customer.created_at, Customer.id
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()


# Create singleton instance
customer = CRUDCustomer()
