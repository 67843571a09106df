from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.buyer_contact import BuyerContact
from app.models.order import Order


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.order_number == order_number).first()

    def list_for_buyer(self, email: Optional[str] = None, phone: Optional[str] = None) -> List[Order]:
        clauses = []
        if email:
            clauses.append(Order.customer_email == email)
        if phone:
            clauses.append(Order.customer_phone == phone)
        if not clauses:
            return []
        return (
            self.db.query(Order)
            .filter(or_(*clauses))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def save_contact(self, session_id: str, email: Optional[str], phone: Optional[str]) -> BuyerContact:
        bc = self.db.query(BuyerContact).filter(BuyerContact.session_id == session_id).first()
        if bc is None:
            bc = BuyerContact(session_id=session_id)
            self.db.add(bc)
        bc.email = email
        bc.phone = phone
        self.db.flush()
        return bc
