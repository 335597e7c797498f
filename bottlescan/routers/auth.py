from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.db import get_db
from bottlescan.core.security import create_access_token
from bottlescan.schemas.auth import TokenOut
from bottlescan.services.accounts import authenticate

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenOut)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    # OAuth2 form calls the field "username"; accounts log in by email
    account = await authenticate(db, email=form_data.username, password=form_data.password)

    return TokenOut(
        access_token=create_access_token(account_id=account.id, role=account.role),
        role=account.role,
    )
