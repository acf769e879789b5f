"""
Contract API endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from origination.core.dependencies import get_db
from origination.schemas.contracts import ContractView
from origination.services.contracts import ContractService
from origination.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("/contracts/{contract_number}/view", response_model=ContractView)
async def view_contract(contract_number: str, db: Session = Depends(get_db)):
    """
    Show a contract's frozen terms.
    The first view of a contract that was sent marks it as VIEWED.
    """
    try:
        return ContractService(db).view(contract_number)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[red]Error viewing contract {contract_number}:[/red] {e!r}")
        raise HTTPException(status_code=500, detail="Could not load contract")
