import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.core.database import get_db
from app.core.errors import NotFoundError
from app.core.models_catalog import get_public_models
from app.models.user import User
from app.schemas.generation import (
    CreditPackageOut,
    CreditsResponse,
    GenerateData,
    GenerateRequest,
    GenerateResponse,
    GenerationData,
    GenerationListData,
    GenerationListResponse,
    GenerationOut,
    GenerationResponse,
    ModelInfo,
    PackagesResponse,
    StyleReferenceCreate,
    StyleReferenceCreated,
    StyleReferenceList,
    StyleReferenceOut,
)
from app.services import generations as generation_store
from app.services import style_references
from app.services.credits import get_credits
from app.services.orchestrator import submit_generation
from app.services.packages import list_packages
from app.services.s3 import delete_file_by_url


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generations", tags=["generations"])

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@router.post("/generate", response_model=GenerateResponse)
def generate(
    request: GenerateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> GenerateResponse:
    """
    Charge one generation and start it in the background.

    The response only says the work was accepted; poll GET /api/generations/{id}
    for the result.
    """
    submission = submit_generation(
        db,
        current_user,
        prompt=request.prompt,
        style_image_url=str(request.style_image_url) if request.style_image_url else None,
        style_image_name=request.style_image_name,
        style_reference_id=request.style_reference_id,
        model_id=request.model,
        output_style=request.output_style,
        chat_id=request.chat_id,
    )
    return GenerateResponse(
        data=GenerateData(
            generation_id=submission.generation_id,
            status=submission.status,
            credits_remaining=submission.credits_remaining,
            model=ModelInfo(
                id=submission.model.id,
                name=submission.model.name,
                type=submission.model.type,
            ),
            chat_id=submission.chat_id,
            assistant_message_id=submission.assistant_message_id,
        )
    )


@router.get("/list", response_model=GenerationListResponse)
def list_generations(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
) -> GenerationListResponse:
    items = generation_store.list_user_generations(db, current_user.id, limit=limit, offset=offset)
    return GenerationListResponse(
        data=GenerationListData(
            generations=[GenerationOut.model_validate(item) for item in items],
            total=generation_store.count_user_generations(db, current_user.id),
            limit=limit,
            offset=offset,
        )
    )


@router.get("/credits", response_model=CreditsResponse)
def get_user_credits(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> CreditsResponse:
    info = get_credits(db, current_user.id)
    return CreditsResponse(credits=info.credits, total_used=info.total_used)


@router.get("/packages", response_model=PackagesResponse)
def get_packages(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> PackagesResponse:
    return PackagesResponse(
        packages=[CreditPackageOut.model_validate(package) for package in list_packages(db)]
    )


@router.get("/models")
def get_models():
    return {"success": True, "models": get_public_models()}


@router.post(
    "/style-reference",
    response_model=StyleReferenceCreated,
    status_code=status.HTTP_201_CREATED,
)
def create_style_reference(
    payload: StyleReferenceCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> StyleReferenceCreated:
    reference = style_references.create_style_reference(
        db,
        current_user.id,
        name=payload.name,
        image_url=str(payload.image_url),
        description=payload.description,
    )
    return StyleReferenceCreated(style_reference_id=reference.id)


@router.get("/style-references", response_model=StyleReferenceList)
def list_style_references(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> StyleReferenceList:
    items = style_references.list_user_style_references(db, current_user.id)
    return StyleReferenceList(style_references=[StyleReferenceOut.model_validate(item) for item in items])


@router.get("/style-references/popular", response_model=StyleReferenceList)
def popular_style_references(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(10, ge=1, le=50),
) -> StyleReferenceList:
    items = style_references.get_most_used_style_references(db, current_user.id, limit=limit)
    return StyleReferenceList(style_references=[StyleReferenceOut.model_validate(item) for item in items])


@router.delete("/style-references/{reference_id}")
def delete_style_reference(
    reference_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    if not style_references.delete_style_reference(db, reference_id, current_user.id):
        raise NotFoundError("Style reference not found")
    return {"success": True}


@router.get("/{generation_id}", response_model=GenerationResponse)
def get_generation(
    generation_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> GenerationResponse:
    generation = generation_store.get_generation(db, generation_id, current_user.id)
    if not generation:
        raise NotFoundError("Generation not found")
    return GenerationResponse(data=GenerationData(generation=GenerationOut.model_validate(generation)))


@router.delete("/{generation_id}")
def delete_generation(
    generation_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    generation = generation_store.get_generation(db, generation_id, current_user.id)
    if not generation:
        raise NotFoundError("Generation not found")
    result_url = generation.generated_image_url

    generation_store.delete_generation(db, generation_id, current_user.id)

    if result_url:
        try:
            delete_file_by_url(result_url)
        except Exception:
            # The record is gone either way
            logger.exception("Failed to delete result image of generation %s", generation_id)
    return {"success": True}
