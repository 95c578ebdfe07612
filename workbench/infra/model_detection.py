"""
模型能力检测

根据模型名称的关键字/正则判断模型类型（启发式）：
- 推理模型（输出 <think> 思考过程）
- 视觉模型（支持图片输入）
- Embedding 模型
- 图像生成模型
- 语音转写模型

用户可以通过 ModelOverride 覆盖推理模型的判断结果。
"""

import re

REASONING_KEYWORDS = (
    "reasoning",
    "think",
    "thought",
    "o1",
    "o3",
    "deepseek-r1",
    "qwq",
    "skywork-o1",
)

_I = re.IGNORECASE

VISION_MODEL_PATTERNS: dict[str, list[re.Pattern]] = {
    "openai": [re.compile(p, _I) for p in (r"gpt-4.*vision", r"gpt-4v", r"gpt-4-turbo.*vision", r"gpt-4o")],
    "anthropic": [re.compile(p, _I) for p in (r"claude-3", r"claude-3\.5")],
    "google": [re.compile(p, _I) for p in (r"gemini.*vision", r"gemini-pro-vision", r"gemini-1\.5", r"gemini-2\.0")],
    "ollama": [
        re.compile(p, _I)
        for p in (r"llava", r"bakllava", r"llama.*vision", r"gemini.*vision", r"qwen.*vl", r"minicpm-v", r"cogvlm")
    ],
    "lmstudio": [re.compile(p, _I) for p in (r"llava", r"bakllava", r"vision", r"vl")],
    "groq": [re.compile(p, _I) for p in (r"llava", r"vision")],
    "openrouter": [
        re.compile(p, _I)
        for p in (r"gpt-4.*vision", r"gpt-4v", r"gpt-4o", r"claude-3", r"gemini.*vision", r"llava")
    ],
    "together": [re.compile(p, _I) for p in (r"llava", r"vision")],
}

EMBEDDING_MODEL_PATTERNS: dict[str, list[re.Pattern]] = {
    "openai": [re.compile(p, _I) for p in (r"text-embedding", r"^ada$", r"^embedding")],
    "google": [re.compile(p, _I) for p in (r"embedding", r"text-embedding", r"textembedding")],
    "cohere": [re.compile(p, _I) for p in (r"embed", r"^embed-")],
    "ollama": [
        re.compile(p, _I)
        for p in (
            r"^nomic-embed", r"^mxbai-embed", r"^all-minilm", r"^bge-", r"^gte-",
            r"^e5-", r"embedding", r"^jina-", r"^stella",
        )
    ],
    "lmstudio": [re.compile(p, _I) for p in (r"embed", r"embedding", r"^nomic-embed", r"^bge-", r"^gte-")],
    "together": [re.compile(p, _I) for p in (r"embedding", r"^embed")],
    "mistral": [re.compile(p, _I) for p in (r"embed", r"mistral-embed")],
    "openrouter": [re.compile(p, _I) for p in (r"embedding", r"^embed")],
}

GENERIC_EMBEDDING_PATTERNS = [
    re.compile(p, _I)
    for p in (
        r"text-embedding", r"^embed-", r"-embed-", r"embedding-", r"nomic-embed",
        r"bge-", r"gte-", r"e5-", r"instructor-", r"sentence-transformer",
        r"all-minilm", r"all-mpnet", r"^jina-embeddings", r"^stella-",
    )
]

IMAGE_GENERATION_PATTERNS = [
    re.compile(p, _I)
    for p in (
        r"dall-?e", r"stable-?diffusion", r"sdxl", r"sd-", r"stability",
        r"midjourney", r"mj-", r"gemini.*image", r"imagen", r"flux",
        r"playground-v", r"parti", r"runwayml.*stable", r"stabilityai", r"CompVis",
        r"text-to-image", r"txt2img", r"image-generation", r"diffusion",
    )
]

AUDIO_TRANSCRIPTION_PATTERNS = [
    re.compile(p, _I)
    for p in (
        r"whisper", r"speech-to-text", r"stt", r"transcription", r"asr",
        r"wav2vec", r"conformer", r"speechbrain", r"vosk", r"deepspeech", r"silero",
        r"google.*speech", r"azure.*speech", r"amazon.*transcribe",
    )
]

KNOWN_IMAGE_MODELS: dict[str, list[str]] = {
    "openai": ["dall-e-2", "dall-e-3"],
    "google": [
        "gemini-2.0-flash-exp-image-generation",
        "imagen-3.0-generate-001",
        "imagen-3.0-fast-generate-001",
    ],
    "together": [
        "stabilityai/stable-diffusion-xl-base-1.0",
        "stabilityai/stable-diffusion-2-1-base",
        "prompthero/openjourney-v4",
        "runwayml/stable-diffusion-v1-5",
    ],
    "replicate": [
        "stability-ai/sdxl",
        "stability-ai/stable-diffusion",
        "playgroundai/playground-v2",
        "black-forest-labs/flux-schnell",
        "black-forest-labs/flux-dev",
        "black-forest-labs/flux-pro",
    ],
    "huggingface": [
        "stabilityai/stable-diffusion-xl-base-1.0",
        "stabilityai/stable-diffusion-2-1",
        "stabilityai/stable-diffusion-3-medium",
        "runwayml/stable-diffusion-v1-5",
        "CompVis/stable-diffusion-v1-4",
    ],
}

KNOWN_AUDIO_MODELS: dict[str, list[str]] = {
    "openai": ["whisper-1"],
    "groq": ["whisper-large-v3", "whisper-large-v3-turbo", "distil-whisper-large-v3-en"],
    "huggingface": [
        "openai/whisper-large-v3",
        "openai/whisper-large-v3-turbo",
        "openai/whisper-medium",
        "openai/whisper-small",
        "distil-whisper/distil-large-v3",
        "facebook/wav2vec2-large-960h",
    ],
    "replicate": [
        "openai/whisper",
        "vaibhavs10/incredibly-fast-whisper",
    ],
}

# 常见 Embedding 模型的维度和最大 token 数
KNOWN_EMBEDDING_MODELS: dict[str, dict[str, int]] = {
    "text-embedding-3-large": {"dimensions": 3072, "max_tokens": 8191},
    "text-embedding-3-small": {"dimensions": 1536, "max_tokens": 8191},
    "text-embedding-ada-002": {"dimensions": 1536, "max_tokens": 8191},
    "nomic-embed-text": {"dimensions": 768, "max_tokens": 8192},
    "mxbai-embed-large": {"dimensions": 1024, "max_tokens": 512},
    "all-minilm": {"dimensions": 384, "max_tokens": 512},
    "embed-english-v3.0": {"dimensions": 1024, "max_tokens": 512},
    "embed-multilingual-v3.0": {"dimensions": 1024, "max_tokens": 512},
}


def is_reasoning_model(model_id: str) -> bool:
    lower = (model_id or "").lower()
    return any(keyword in lower for keyword in REASONING_KEYWORDS)


def is_vision_model(model_id: str, provider: str | None = None) -> bool:
    """先匹配提供商专属规则，再匹配全部规则"""
    if not model_id:
        return False
    if provider and any(p.search(model_id) for p in VISION_MODEL_PATTERNS.get(provider, [])):
        return True
    return any(p.search(model_id) for patterns in VISION_MODEL_PATTERNS.values() for p in patterns)


def is_embedding_model(model_id: str, provider: str | None = None) -> bool:
    if not model_id:
        return False
    if provider and any(p.search(model_id) for p in EMBEDDING_MODEL_PATTERNS.get(provider, [])):
        return True
    return any(p.search(model_id) for p in GENERIC_EMBEDDING_PATTERNS)


def is_image_generation_model(model_id: str) -> bool:
    return bool(model_id) and any(p.search(model_id) for p in IMAGE_GENERATION_PATTERNS)


def is_audio_transcription_model(model_id: str) -> bool:
    return bool(model_id) and any(p.search(model_id) for p in AUDIO_TRANSCRIPTION_PATTERNS)


def get_embedding_model_info(model_id: str) -> dict[str, int] | None:
    """精确匹配优先，其次按包含关系匹配（如 nomic-embed-text:latest）"""
    if model_id in KNOWN_EMBEDDING_MODELS:
        return KNOWN_EMBEDDING_MODELS[model_id]
    lower = model_id.lower()
    for key, info in KNOWN_EMBEDDING_MODELS.items():
        if key.lower() in lower:
            return info
    return None


def detect_capabilities(model_id: str, provider: str | None = None) -> dict[str, bool]:
    """模型能力标记汇总"""
    return {
        "is_reasoning": is_reasoning_model(model_id),
        "is_vision": is_vision_model(model_id, provider),
        "is_embedding": is_embedding_model(model_id, provider),
        "is_image_generation": is_image_generation_model(model_id),
        "is_audio_transcription": is_audio_transcription_model(model_id),
    }
