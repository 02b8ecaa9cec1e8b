"""
Account API Endpoints

開戶與查詢餘額。實際環境的帳戶由外部託管系統建立，
這裡的開戶 endpoint 用於開發與測試時建立有餘額的玩家帳戶
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import AccountCreate, AccountResponse
from services.ledger import DatabaseLedger
from core.exceptions import AccountNotFound

router = APIRouter(prefix="/api/accounts", tags=["accounts"])
logger = logging.getLogger(__name__)


@router.post("", response_model=AccountResponse, status_code=201)
def open_account(data: AccountCreate, db: Session = Depends(get_db)):
    try:
        account = DatabaseLedger(db).open_account(data.owner, data.balance)
        db.commit()
        db.refresh(account)
        return AccountResponse.model_validate(account)

    except Exception as e:
        logger.error(f"Failed to open account: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(account_id: str, db: Session = Depends(get_db)):
    try:
        account = DatabaseLedger(db).get_account(account_id)
        return AccountResponse.model_validate(account)

    except AccountNotFound:
        raise HTTPException(status_code=404, detail="Account not found")
    except Exception as e:
        logger.error(f"Failed to get account: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
