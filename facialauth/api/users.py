"""User profile management endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Response

from facialauth.api.models.profile import IntegrityResponse, ProfileResponse, UserListResponse
from facialauth.core.exceptions import InvalidDataError, StorageError, UserNotRegisteredError
from facialauth.core.logging import get_logger
from facialauth.infrastructure.dependencies import get_embedding_store
from facialauth.services.secure_embeddings import SecureEmbeddingStore

logger = get_logger(__name__)
router = APIRouter(
    responses={
        404: {"description": "User not registered"},
        500: {"description": "Storage failure"}
    }
)


@router.get(
    "",
    response_model=UserListResponse,
    summary="List registered users",
)
async def list_users(store: SecureEmbeddingStore = Depends(get_embedding_store)) -> UserListResponse:
    try:
        users = await store.list_users()
    except StorageError as e:
        logger.error("Failed to list users", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    return UserListResponse(users=users, total=len(users))


@router.get(
    "/{user_id}",
    response_model=ProfileResponse,
    summary="Get a user's profile",
    description="Returns profile metadata without the encrypted embedding.",
)
async def get_user(user_id: str, store: SecureEmbeddingStore = Depends(get_embedding_store)) -> ProfileResponse:
    try:
        profile = await store.get_profile(user_id)
    except InvalidDataError as e:
        logger.error("Stored profile is malformed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    except StorageError as e:
        logger.error("Failed to read profile", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    if profile is None:
        raise HTTPException(status_code=404, detail=f"User not registered: {user_id}")
    return ProfileResponse.from_profile(profile)


@router.get(
    "/{user_id}/integrity",
    response_model=IntegrityResponse,
    summary="Verify a user's stored embedding",
    description="Checks the integrity hash and decrypts the embedding without returning it.",
)
async def verify_user(user_id: str, store: SecureEmbeddingStore = Depends(get_embedding_store)) -> IntegrityResponse:
    if not await store.exists(user_id):
        raise HTTPException(status_code=404, detail=f"User not registered: {user_id}")
    intact = await store.verify_integrity(user_id)
    if not intact:
        logger.warning("Profile failed integrity check", user_id=user_id)
    return IntegrityResponse(user_id=user_id, intact=intact)


@router.delete(
    "/{user_id}",
    status_code=204,
    summary="Delete a user's profile",
)
async def delete_user(user_id: str, store: SecureEmbeddingStore = Depends(get_embedding_store)) -> Response:
    try:
        await store.delete(user_id)
    except UserNotRegisteredError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        logger.error("Failed to delete profile", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    return Response(status_code=204)
