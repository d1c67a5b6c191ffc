from fastapi import APIRouter, Depends

from lifegrass.llm_client import TextServiceClient
from lifegrass.schemas import CommentResponse, RecommendResponse, ReflectionRequest
from lifegrass.users import get_text_service

router = APIRouter(prefix="/api", tags=["ai"])


@router.post("/comment", response_model=CommentResponse)
async def comment(
    body: ReflectionRequest,
    text_service: TextServiceClient = Depends(get_text_service),
):
    text, source = await text_service.comment(body.keywords, body.text, year=body.year, week=body.week)
    return CommentResponse(comment=text, source=source)


@router.post("/recommend", response_model=RecommendResponse)
async def recommend(
    body: ReflectionRequest,
    text_service: TextServiceClient = Depends(get_text_service),
):
    text, source = await text_service.recommend(body.keywords, body.text)
    return RecommendResponse(recommendation=text, source=source)
