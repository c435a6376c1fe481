from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db, require_technician
from ..models import CustomerFields, CustomerOut
from ..services import customers as customer_service

router = APIRouter()


@router.patch("/{customer_id}", response_model=CustomerOut, dependencies=[Depends(require_technician)])
def update_customer(customer_id: int, payload: CustomerFields, db: Session = Depends(get_db)):
    return customer_service.to_out(customer_service.update_customer(db, customer_id, payload))
