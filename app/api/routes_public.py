from fastapi import APIRouter, Depends, HTTPException, status
from uuid import uuid4
from sqlmodel.ext.asyncio.session import AsyncSession
import logging

from app.core.db import get_async_session
from app.schemas.openapi_schemas import NewUser, User as UserSchema
from app.models.user import User as UserModel, UserRole

api_logger = logging.getLogger("api")

router = APIRouter(prefix="/api/v1/public", tags=["public"])


@router.post("/register",
             response_model=UserSchema,
             summary="Register",
             description="Register an investor account. Required before placing sell orders.",
             status_code=status.HTTP_200_OK,
)
async def register(body: NewUser, session: AsyncSession = Depends(get_async_session)):
    try:
        api_key = f"key-{uuid4()}"
        user = UserModel(name=body.name, api_key=api_key, role=UserRole.USER, is_active=True)
        session.add(user)
        user_name = user.name
        await session.commit()
        await session.refresh(user)

        api_logger.info(
            f'User registered successfully. User ID: {user.uuid}, Name: {user_name}'
        )

        return UserSchema(id=user.uuid, name=user.name, role=user.role, api_key=user.api_key)

    except Exception as e:
        await session.rollback()

        api_logger.error(
            f'Failed to register user: {body.name}',
            exc_info=e
        )

        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during user registration."
        )
