from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.canteen import Canteen


class CanteenRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, canteen_id: int) -> Optional[Canteen]:
        return self.db.query(Canteen).filter(Canteen.id == canteen_id).first()

    def get_by_staff(self, staff_user_id: str) -> Optional[Canteen]:
        return (
            self.db.query(Canteen)
            .filter(Canteen.staff_user_id == staff_user_id)
            .order_by(Canteen.id)
            .first()
        )

    def ids_owned_by(self, staff_user_id: str) -> List[int]:
        rows = (
            self.db.query(Canteen.id)
            .filter(Canteen.staff_user_id == staff_user_id)
            .all()
        )
        return [r[0] for r in rows]

    def list(self, approved_only: bool = True) -> List[Canteen]:
        query = self.db.query(Canteen)
        if approved_only:
            query = query.filter(Canteen.is_approved == True)  # noqa: E712
        return query.order_by(Canteen.created_at.desc(), Canteen.id.desc()).all()

    def list_pending(self) -> List[Canteen]:
        return (
            self.db.query(Canteen)
            .filter(Canteen.is_approved == False)  # noqa: E712
            .order_by(Canteen.created_at)
            .all()
        )

    def count_pending(self) -> int:
        return self.db.query(Canteen).filter(Canteen.is_approved == False).count()  # noqa: E712

    def create(self, staff_user_id: str, **fields) -> Canteen:
        c = Canteen(staff_user_id=staff_user_id, is_approved=False, **fields)
        self.db.add(c)
        self.db.flush()
        return c
