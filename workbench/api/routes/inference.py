"""
推理接口

所有接口按同一顺序处理：
解析提供商(400) → 检查能力(400) → 解析 API Key(401) → 规范化请求并调用上游

端点：
- POST /api/chat               对话补全
- POST /api/completions        文本补全
- POST /api/embeddings         Embedding
- POST /api/responses          Responses API（LM Studio / OpenAI）
- POST /api/images/generate    图像生成
- POST /api/audio/transcribe   语音转写（multipart）
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.api.deps import get_db_session
from workbench.infra import llm
from workbench.infra.logging import get_logger
from workbench.schemas.inference import (
    ChatCompletionResponse,
    ChatRequest,
    CompletionRequest,
    CompletionResponse,
    EmbeddingRequest,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ResponsesRequest,
    TranscriptionResponse,
)
from workbench.services.provider_config import provider_config_resolver

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["inference"])


@router.post("/chat", response_model=ChatCompletionResponse)
async def chat(payload: ChatRequest, db: AsyncSession = Depends(get_db_session)):
    target = await provider_config_resolver.resolve(
        db, payload.provider, capability="chat", base_url=payload.base_url
    )
    logger.info(f"对话请求: {target.name}/{payload.model}, {len(payload.messages)} 条消息")
    result = await llm.chat_completion(
        target,
        payload.model,
        [m.model_dump() for m in payload.messages],
        system_prompt=payload.system_prompt,
        temperature=payload.temperature,
        max_tokens=payload.max_tokens,
    )
    return ChatCompletionResponse(**result, provider=target.name, model=payload.model)


@router.post("/completions", response_model=CompletionResponse)
async def completions(payload: CompletionRequest, db: AsyncSession = Depends(get_db_session)):
    target = await provider_config_resolver.resolve(
        db, payload.provider, capability="completions", base_url=payload.base_url
    )
    result = await llm.text_completion(
        target,
        payload.model,
        payload.prompt,
        temperature=payload.temperature,
        max_tokens=payload.max_tokens,
    )
    return CompletionResponse(**result)


@router.post("/embeddings")
async def embeddings(payload: EmbeddingRequest, db: AsyncSession = Depends(get_db_session)) -> dict:
    """返回 OpenAI 列表格式 {object, data, model, usage}"""
    target = await provider_config_resolver.resolve(
        db, payload.provider, capability="embeddings", base_url=payload.base_url
    )
    return await llm.create_embeddings(target, payload.model, payload.input)


@router.post("/responses")
async def responses(payload: ResponsesRequest, db: AsyncSession = Depends(get_db_session)) -> dict:
    target = await provider_config_resolver.resolve(
        db, payload.provider, capability="responses", base_url=payload.base_url
    )
    return await llm.create_response(
        target,
        payload.model,
        payload.input,
        instructions=payload.instructions,
        temperature=payload.temperature,
        max_output_tokens=payload.max_output_tokens,
    )


@router.post("/images/generate", response_model=ImageGenerationResponse)
async def generate_images(payload: ImageGenerationRequest, db: AsyncSession = Depends(get_db_session)):
    target = await provider_config_resolver.resolve(
        db, payload.provider, capability="image_generation", base_url=payload.base_url
    )
    logger.info(f"图像生成: {target.name}/{payload.model}, n={payload.n}, size={payload.size}")
    result = await llm.generate_images(
        target,
        payload.model,
        payload.prompt,
        n=payload.n,
        size=payload.size,
        quality=payload.quality,
    )
    return ImageGenerationResponse(**result)


@router.post("/audio/transcribe", response_model=TranscriptionResponse)
async def transcribe(
    file: UploadFile = File(..., description="音频文件（最大 25MB）"),
    provider: str = Form(...),
    model: str = Form(...),
    language: str | None = Form(None),
    prompt: str | None = Form(None),
    db: AsyncSession = Depends(get_db_session),
):
    target = await provider_config_resolver.resolve(db, provider, capability="audio_transcription")
    content = await file.read()
    mime = file.content_type or "application/octet-stream"
    llm.validate_audio_file(mime, len(content))

    logger.info(f"语音转写: {target.name}/{model}, {file.filename} ({len(content)} bytes)")
    result = await llm.transcribe_audio(
        target,
        model,
        filename=file.filename or "audio",
        content=content,
        mime=mime,
        language=language,
        prompt=prompt,
    )
    return TranscriptionResponse(**result)
