"""
Account management endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import BankingSystem, get_banking_system, get_current_session
from .schemas import CreateAccountRequest, FundAccountRequest
from ..models import Session
from ..security import escape_html


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a checking or savings account"""
    account = system.account_manager.create_account(session.user_id, request.account_type)
    return account.to_dict()


@router.get("")
def list_accounts(
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """List the caller's accounts"""
    accounts = system.account_manager.get_accounts(session.user_id)
    return {"accounts": [account.to_dict() for account in accounts]}


@router.post("/{account_id}/fund")
def fund_account(
    account_id: int,
    request: FundAccountRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Deposit into one of the caller's accounts"""
    result = system.funding_processor.fund_account(
        session.user_id, account_id, request.amount,
        request.funding_source.to_funding_source()
    )
    data = result.to_dict()
    data["transaction"]["description"] = escape_html(data["transaction"]["description"])
    return data


@router.get("/{account_id}/transactions")
def get_transactions(
    account_id: int,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transaction history, newest first"""
    history = system.funding_processor.get_transactions(session.user_id, account_id)
    transactions = []
    for entry in history:
        data = entry.to_dict()
        data["description"] = escape_html(data["description"])
        transactions.append(data)
    return {"account_id": account_id, "transactions": transactions}
