from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from linker.database import get_db
from linker.models import APIToken
from linker.schemas import APITokenCreate, APITokenCreated, APITokenResponse, APITokenList, Message
from linker.utils import generate_api_key, hash_api_key
from linker.dependencies import get_current_user
from linker.credentials import Identity

router = APIRouter(prefix="/api/v1/tokens", tags=["tokens"])

@router.post("", response_model=APITokenCreated, status_code=status.HTTP_201_CREATED)
async def create_api_token(
    token_data: APITokenCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    """Создает API-ключ. Открытое значение возвращается только один раз"""
    api_key = generate_api_key()

    api_token = APIToken(
        user_id=identity.user_id,
        token_hash=hash_api_key(api_key),
        name=token_data.name,
        expires_at=token_data.expires_at
    )
    db.add(api_token)
    db.commit()
    db.refresh(api_token)

    return APITokenCreated(token=api_key, api_token=APITokenResponse.model_validate(api_token))

@router.get("", response_model=APITokenList)
async def list_api_tokens(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    tokens = db.query(APIToken).filter(
        APIToken.user_id == identity.user_id
    ).order_by(APIToken.created_at.desc()).all()

    return APITokenList(tokens=[APITokenResponse.model_validate(token) for token in tokens])

@router.delete("/{token_id}", response_model=Message)
async def delete_api_token(
    token_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_user)
):
    deleted = db.query(APIToken).filter(
        APIToken.id == token_id,
        APIToken.user_id == identity.user_id
    ).delete(synchronize_session=False)
    db.commit()

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="API-ключ не найден"
        )

    return Message(message="API-ключ удален")
