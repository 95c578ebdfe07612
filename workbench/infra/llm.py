"""
提供商请求规范化

对每种能力（对话、文本补全、Embedding、Responses、图像生成、语音转写），
把统一的输入转换为各提供商的请求体，再把各提供商的响应解析为统一结构：

- 对话：      {content, reasoning, tokens_in, tokens_out, tool_calls}
- 文本补全：  {completion, usage}
- Embedding： OpenAI 列表格式 {object, data, model, usage}
- 图像生成：  {provider, model, prompt, images, created}
- 语音转写：  {provider, model, text, language, duration}

错误约定：
- 提供商不具备该能力 → CapabilityNotSupportedError (400)
- 注册表声明了能力但没有实现 → NotImplementedForProviderError (501)
- 上游非 2xx → UpstreamError，透传状态码和错误文本
- 连接失败/超时 → ProviderUnreachableError (502)

每次调用只发一次请求，不重试、不做流式。

OpenAI 兼容提供商（LM Studio、OpenAI、Groq、OpenRouter、Together、Mistral、自定义）
的对话/补全/Embedding 走官方 openai SDK，其余走 httpx。

使用示例：
    from workbench.infra.llm import ProviderTarget, chat_completion

    target = ProviderTarget(spec=get_provider("ollama"))
    result = await chat_completion(target, "qwen3:8b", [{"role": "user", "content": "你好"}])
"""

import base64
import logging
import re
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from workbench.config import get_settings
from workbench.exceptions import (
    CapabilityNotSupportedError,
    NotImplementedForProviderError,
    ProviderUnreachableError,
    UpstreamError,
    WorkbenchError,
)
from workbench.infra.metrics import track_call
from workbench.infra.providers import (
    ProviderSpec,
    build_auth_headers,
    endpoint_url,
    openai_sdk_base_url,
)

logger = logging.getLogger(__name__)

ANTHROPIC_DEFAULT_MAX_TOKENS = 1024
COMPLETION_DEFAULT_TEMPERATURE = 0.7
COMPLETION_DEFAULT_MAX_TOKENS = 500

SUPPORTED_AUDIO_FORMATS = (
    "audio/mpeg",
    "audio/mp4",
    "audio/wav",
    "audio/webm",
    "audio/ogg",
    "audio/flac",
)
MAX_AUDIO_FILE_SIZE = 25 * 1024 * 1024  # 25MB

_THINK_RE = re.compile(r"<think>(.*?)</think>", re.IGNORECASE | re.DOTALL)
_REASONING_RE = re.compile(r"<reasoning>(.*?)</reasoning>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ProviderTarget:
    """一次调用的目标：提供商 + 已解析的 API Key 和 Base URL"""
    spec: ProviderSpec
    api_key: str | None = None
    base_url: str | None = None

    @property
    def name(self) -> str:
        return self.spec.name

    def url(self, path: str, model: str | None = None) -> str:
        return endpoint_url(self.spec, path, self.base_url, model)

    def headers(self, **extra: str) -> dict[str, str]:
        headers = build_auth_headers(self.spec, self.api_key)
        headers.update(extra)
        return headers


# ==================== 传输层 ====================

def _http_client(timeout: float | None = None) -> httpx.AsyncClient:
    """创建 httpx 客户端（测试中替换为 MockTransport）"""
    return httpx.AsyncClient(timeout=timeout or get_settings().provider_request_timeout)


@lru_cache(maxsize=16)
def _get_openai_compatible_client(api_key: str | None, base_url: str) -> AsyncOpenAI:
    """获取 OpenAI 兼容客户端（关闭 SDK 自带重试）"""
    return AsyncOpenAI(
        api_key=api_key or "not-needed",
        base_url=base_url,
        timeout=get_settings().provider_request_timeout,
        max_retries=0,
    )


async def _request(
    target: ProviderTarget,
    method: str,
    url: str,
    *,
    timeout: float | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """发送单次请求，非 2xx 和传输错误转换为业务异常"""
    try:
        async with _http_client(timeout) as client:
            response = await client.request(method, url, **kwargs)
    except httpx.TransportError as e:
        raise ProviderUnreachableError(target.name, str(e) or e.__class__.__name__) from e

    if response.is_error:
        logger.error(f"{target.name} 返回错误: HTTP {response.status_code} {response.text[:500]}")
        raise UpstreamError(target.name, response.status_code, response.text)
    return response


async def _call_sdk(target: ProviderTarget, coro):
    """执行 openai SDK 调用并转换异常"""
    try:
        return await coro
    except openai.APIStatusError as e:
        raise UpstreamError(target.name, e.status_code, e.response.text) from e
    except openai.APIConnectionError as e:
        raise ProviderUnreachableError(target.name, str(e)) from e


def _sdk_client(target: ProviderTarget) -> AsyncOpenAI:
    return _get_openai_compatible_client(
        target.api_key,
        openai_sdk_base_url(target.spec, target.base_url),
    )


def _require(spec: ProviderSpec, supported: bool, capability: str) -> None:
    if not supported:
        raise CapabilityNotSupportedError(spec.name, capability)


# ==================== 对话 ====================

def split_reasoning(content: str, reasoning: str = "") -> tuple[str, str]:
    """
    把 <think>...</think> / <reasoning>...</reasoning> 从正文中拆出

    Returns:
        (去掉标签的正文, 推理内容)；没有标签时原样返回
    """
    for pattern in (_THINK_RE, _REASONING_RE):
        match = pattern.search(content)
        if match:
            return pattern.sub("", content).strip(), match.group(1).strip()
    return content, reasoning


def _with_system_prompt(messages: list[dict], system_prompt: str | None) -> list[dict]:
    api_messages = []
    if system_prompt:
        api_messages.append({"role": "system", "content": system_prompt})
    api_messages.extend({"role": m["role"], "content": m["content"]} for m in messages)
    return api_messages


async def chat_completion(
    target: ProviderTarget,
    model: str,
    messages: list[dict],
    *,
    system_prompt: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> dict:
    """
    对话补全

    Args:
        target: 调用目标
        model: 模型 ID
        messages: [{"role": "user", "content": "..."}]
        system_prompt: 系统提示词，会插入到消息列表最前面
        temperature: 温度，None 使用提供商默认值
        max_tokens: 最大生成 token 数

    Returns:
        dict: {content, reasoning, tokens_in, tokens_out, tool_calls}
    """
    spec = target.spec
    _require(spec, spec.supports_chat, "chat")
    api_messages = _with_system_prompt(messages, system_prompt)

    with track_call("chat", spec.name, model) as tracker:
        if spec.api_style == "ollama":
            result = await _ollama_chat(target, model, api_messages, temperature, max_tokens)
        elif spec.api_style == "openai":
            result = await _openai_compatible_chat(target, model, api_messages, temperature, max_tokens)
        elif spec.api_style == "anthropic":
            result = await _anthropic_chat(target, model, api_messages, temperature, max_tokens)
        elif spec.api_style == "google":
            result = await _google_chat(target, model, api_messages, temperature, max_tokens)
        elif spec.api_style == "cohere":
            result = await _cohere_chat(target, model, api_messages, temperature, max_tokens)
        else:
            raise NotImplementedForProviderError(spec.name, "chat")
        tracker.set_tokens(result["tokens_in"], result["tokens_out"])

    content, reasoning = split_reasoning(result["content"], result["reasoning"])
    result.update(content=content, reasoning=reasoning)
    return result


def _chat_result(
    content: str | None,
    reasoning: str | None = None,
    tokens_in: int | None = None,
    tokens_out: int | None = None,
    tool_calls: list | None = None,
) -> dict:
    return {
        "content": content or "",
        "reasoning": reasoning or "",
        "tokens_in": tokens_in or 0,
        "tokens_out": tokens_out or 0,
        "tool_calls": tool_calls or [],
    }


async def _ollama_chat(
    target: ProviderTarget,
    model: str,
    messages: list[dict],
    temperature: float | None,
    max_tokens: int | None,
) -> dict:
    """Ollama Chat API"""
    body: dict[str, Any] = {"model": model, "messages": messages, "stream": False}
    options = {}
    if temperature is not None:
        options["temperature"] = temperature
    if max_tokens is not None:
        options["num_predict"] = max_tokens
    if options:
        body["options"] = options

    response = await _request(target, "POST", target.url(target.spec.chat_endpoint), json=body)
    data = response.json()
    message = data.get("message") or {}
    return _chat_result(
        message.get("content"),
        message.get("thinking"),
        data.get("prompt_eval_count"),
        data.get("eval_count"),
    )


async def _openai_compatible_chat(
    target: ProviderTarget,
    model: str,
    messages: list[dict],
    temperature: float | None,
    max_tokens: int | None,
) -> dict:
    """OpenAI 兼容 API Chat"""
    kwargs: dict[str, Any] = {"model": model, "messages": messages}
    if temperature is not None:
        kwargs["temperature"] = temperature
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens

    response = await _call_sdk(target, _sdk_client(target).chat.completions.create(**kwargs))
    if not response.choices:
        return _chat_result("")

    message = response.choices[0].message
    # 部分推理模型（LM Studio、DeepSeek）把思考过程放在非标准字段
    reasoning = getattr(message, "reasoning", None) or getattr(message, "reasoning_content", None)
    usage = response.usage
    return _chat_result(
        message.content,
        reasoning,
        usage.prompt_tokens if usage else 0,
        usage.completion_tokens if usage else 0,
        [tc.model_dump() for tc in (message.tool_calls or [])],
    )


async def _anthropic_chat(
    target: ProviderTarget,
    model: str,
    messages: list[dict],
    temperature: float | None,
    max_tokens: int | None,
) -> dict:
    """Anthropic Messages API：system 提示词单独传，max_tokens 必填"""
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    body: dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens or ANTHROPIC_DEFAULT_MAX_TOKENS,
        "messages": [m for m in messages if m["role"] != "system"],
    }
    if system_parts:
        body["system"] = "\n\n".join(system_parts)
    if temperature is not None:
        body["temperature"] = temperature

    response = await _request(
        target,
        "POST",
        target.url(target.spec.chat_endpoint),
        headers=target.headers(),
        json=body,
    )
    data = response.json()
    blocks = data.get("content") or []
    text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
    thinking = "".join(b.get("thinking", "") for b in blocks if b.get("type") == "thinking")
    usage = data.get("usage") or {}
    return _chat_result(text, thinking, usage.get("input_tokens"), usage.get("output_tokens"))


async def _google_chat(
    target: ProviderTarget,
    model: str,
    messages: list[dict],
    temperature: float | None,
    max_tokens: int | None,
) -> dict:
    """Gemini generateContent API：assistant 角色映射为 model"""
    contents = [
        {
            "role": "model" if m["role"] == "assistant" else "user",
            "parts": [{"text": m["content"]}],
        }
        for m in messages
        if m["role"] != "system"
    ]
    body: dict[str, Any] = {"contents": contents}
    system_parts = [{"text": m["content"]} for m in messages if m["role"] == "system"]
    if system_parts:
        body["systemInstruction"] = {"parts": system_parts}
    generation_config = {}
    if temperature is not None:
        generation_config["temperature"] = temperature
    if max_tokens is not None:
        generation_config["maxOutputTokens"] = max_tokens
    if generation_config:
        body["generationConfig"] = generation_config

    response = await _request(
        target,
        "POST",
        target.url(target.spec.chat_endpoint, model=model),
        params={"key": target.api_key},
        json=body,
    )
    data = response.json()
    candidates = data.get("candidates") or []
    parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
    text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
    thought = "".join(p.get("text", "") for p in parts if p.get("thought"))
    usage = data.get("usageMetadata") or {}
    return _chat_result(text, thought, usage.get("promptTokenCount"), usage.get("candidatesTokenCount"))


_COHERE_ROLES = {"user": "USER", "assistant": "CHATBOT", "system": "SYSTEM"}


async def _cohere_chat(
    target: ProviderTarget,
    model: str,
    messages: list[dict],
    temperature: float | None,
    max_tokens: int | None,
) -> dict:
    """Cohere v1 Chat API：最后一条用户消息单独作为 message，其余进入 chat_history"""
    conversation = [m for m in messages if m["role"] != "system"]
    preamble = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    last = conversation[-1]["content"] if conversation else ""
    body: dict[str, Any] = {
        "model": model,
        "message": last,
        "chat_history": [
            {"role": _COHERE_ROLES.get(m["role"], "USER"), "message": m["content"]}
            for m in conversation[:-1]
        ],
    }
    if preamble:
        body["preamble"] = preamble
    if temperature is not None:
        body["temperature"] = temperature
    if max_tokens is not None:
        body["max_tokens"] = max_tokens

    response = await _request(
        target,
        "POST",
        target.url(target.spec.chat_endpoint),
        headers=target.headers(),
        json=body,
    )
    data = response.json()
    billed = (data.get("meta") or {}).get("billed_units") or {}
    return _chat_result(data.get("text"), None, billed.get("input_tokens"), billed.get("output_tokens"))


# ==================== 文本补全 ====================

async def text_completion(
    target: ProviderTarget,
    model: str,
    prompt: str,
    *,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> dict:
    """
    传统文本补全

    Returns:
        dict: {completion, usage}
    """
    spec = target.spec
    _require(spec, spec.supports_completions, "completions")
    temperature = COMPLETION_DEFAULT_TEMPERATURE if temperature is None else temperature
    max_tokens = max_tokens or COMPLETION_DEFAULT_MAX_TOKENS

    with track_call("completions", spec.name, model) as tracker:
        if spec.api_style == "ollama":
            response = await _request(
                target,
                "POST",
                target.url(spec.completions_endpoint),
                json={
                    "model": model,
                    "prompt": prompt,
                    "stream": False,
                    "options": {"temperature": temperature, "num_predict": max_tokens},
                },
            )
            data = response.json()
            prompt_tokens = data.get("prompt_eval_count") or 0
            completion_tokens = data.get("eval_count") or 0
            result = {
                "completion": data.get("response", ""),
                "usage": {
                    "prompt_tokens": prompt_tokens,
                    "completion_tokens": completion_tokens,
                    "total_tokens": prompt_tokens + completion_tokens,
                },
            }
        elif spec.api_style == "openai":
            response = await _call_sdk(
                target,
                _sdk_client(target).completions.create(
                    model=model,
                    prompt=prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
            )
            result = {
                "completion": response.choices[0].text if response.choices else "",
                "usage": response.usage.model_dump() if response.usage else {},
            }
        else:
            raise NotImplementedForProviderError(spec.name, "completions")
        tracker.set_tokens(
            result["usage"].get("prompt_tokens"),
            result["usage"].get("completion_tokens"),
        )
    return result


# ==================== Embedding ====================

def _embedding_list(model: str, vectors: list[list[float]], prompt_tokens: int = 0) -> dict:
    return {
        "object": "list",
        "data": [
            {"object": "embedding", "embedding": vector, "index": i}
            for i, vector in enumerate(vectors)
        ],
        "model": model,
        "usage": {"prompt_tokens": prompt_tokens, "total_tokens": prompt_tokens},
    }


async def create_embeddings(
    target: ProviderTarget,
    model: str,
    inputs: str | list[str],
) -> dict:
    """
    生成 Embedding，统一返回 OpenAI 列表格式

    Ollama 的 /api/embeddings 一次只接受一条文本，按输入逐条调用。
    """
    spec = target.spec
    _require(spec, spec.supports_embeddings, "embeddings")
    texts = [inputs] if isinstance(inputs, str) else list(inputs)

    with track_call("embeddings", spec.name, model) as tracker:
        tracker.set_item_count(len(texts))
        if spec.api_style == "ollama":
            vectors = []
            for text in texts:
                response = await _request(
                    target,
                    "POST",
                    target.url(spec.embeddings_endpoint),
                    json={"model": model, "prompt": text},
                )
                vectors.append(response.json().get("embedding", []))
            return _embedding_list(model, vectors)

        if spec.api_style == "openai":
            response = await _call_sdk(
                target,
                _sdk_client(target).embeddings.create(model=model, input=texts),
            )
            return response.model_dump()

        if spec.api_style == "cohere":
            response = await _request(
                target,
                "POST",
                target.url(spec.embeddings_endpoint),
                headers=target.headers(),
                json={"model": model, "texts": texts, "input_type": "search_document"},
            )
            data = response.json()
            billed = (data.get("meta") or {}).get("billed_units") or {}
            return _embedding_list(model, data.get("embeddings", []), billed.get("input_tokens", 0))

        raise NotImplementedForProviderError(spec.name, "embeddings")


# ==================== Responses ====================

async def create_response(
    target: ProviderTarget,
    model: str,
    input: str | list,
    **options: Any,
) -> dict:
    """Responses API（LM Studio / OpenAI），上游 JSON 原样返回"""
    spec = target.spec
    _require(spec, spec.supports_responses, "responses")
    body = {"model": model, "input": input}
    body.update({k: v for k, v in options.items() if v is not None})

    with track_call("responses", spec.name, model):
        response = await _request(
            target,
            "POST",
            target.url(spec.responses_endpoint),
            headers=target.headers(),
            json=body,
        )
        return response.json()


# ==================== 图像生成 ====================

async def generate_images(
    target: ProviderTarget,
    model: str,
    prompt: str,
    *,
    n: int = 1,
    size: str = "1024x1024",
    quality: str = "standard",
) -> dict:
    """
    文生图

    Returns:
        dict: {provider, model, prompt, images: [{url?, b64_json?}], created}
    """
    spec = target.spec
    _require(spec, spec.supports_image_generation, "image generation")
    url = target.url(spec.image_generation_endpoint, model=model)

    with track_call("images", spec.name, model) as tracker:
        if spec.api_style == "openai":
            body: dict[str, Any] = {"model": model, "prompt": prompt, "n": n, "size": size}
            if spec.name == "openai":
                body["quality"] = quality
            response = await _request(target, "POST", url, headers=target.headers(), json=body)
            images = [
                {k: v for k, v in item.items() if k in ("url", "b64_json") and v}
                for item in response.json().get("data") or []
            ]

        elif spec.api_style == "replicate":
            # Prefer: wait 让 Replicate 同步等待预测完成
            response = await _request(
                target,
                "POST",
                url,
                headers=target.headers(Prefer="wait"),
                json={"version": model, "input": {"prompt": prompt, "num_outputs": n}},
            )
            output = response.json().get("output") or []
            if isinstance(output, str):
                output = [output]
            images = [{"url": item} for item in output]

        elif spec.api_style == "huggingface":
            # Inference API 直接返回图片二进制
            response = await _request(
                target, "POST", url, headers=target.headers(), json={"inputs": prompt}
            )
            images = [{"b64_json": base64.b64encode(response.content).decode("ascii")}]

        elif spec.api_style == "google":
            response = await _request(
                target,
                "POST",
                url,
                params={"key": target.api_key},
                json={
                    "prompt": {"text": prompt},
                    "number_of_images": n,
                    "aspect_ratio": "1:1" if size == "1024x1024" else "16:9",
                },
            )
            data = response.json()
            if data.get("images"):
                images = [
                    {
                        k: v
                        for k, v in (
                            ("b64_json", img.get("imageData") or img.get("bytesBase64Encoded")),
                            ("url", img.get("uri")),
                        )
                        if v
                    }
                    for img in data["images"]
                ]
            else:
                images = [
                    {"b64_json": img.get("bytesBase64Encoded")}
                    for img in data.get("generatedImages") or []
                ]

        else:
            raise NotImplementedForProviderError(spec.name, "image generation")
        tracker.set_item_count(len(images))

    return {
        "provider": spec.name,
        "model": model,
        "prompt": prompt,
        "images": images,
        "created": int(time.time()),
    }


# ==================== 语音转写 ====================

def validate_audio_file(mime: str | None, size: int) -> None:
    """
    校验音频文件格式和大小

    Raises:
        WorkbenchError: 400 INVALID_AUDIO_FILE
    """
    if (mime or "").split(";")[0].strip().lower() not in SUPPORTED_AUDIO_FORMATS:
        raise WorkbenchError(
            f"Unsupported audio format: {mime}. Supported: {', '.join(SUPPORTED_AUDIO_FORMATS)}",
            status_code=400,
            code="INVALID_AUDIO_FILE",
        )
    if size > MAX_AUDIO_FILE_SIZE:
        raise WorkbenchError(
            f"Audio file too large: {size} bytes (max {MAX_AUDIO_FILE_SIZE})",
            status_code=400,
            code="INVALID_AUDIO_FILE",
        )


async def transcribe_audio(
    target: ProviderTarget,
    model: str,
    *,
    filename: str,
    content: bytes,
    mime: str,
    language: str | None = None,
    prompt: str | None = None,
) -> dict:
    """
    语音转文字

    Returns:
        dict: {provider, model, text, language, duration}
    """
    spec = target.spec
    _require(spec, spec.supports_audio_transcription, "audio transcription")
    validate_audio_file(mime, len(content))
    url = target.url(spec.audio_transcription_endpoint, model=model)

    with track_call("audio", spec.name, model):
        if spec.api_style == "openai":
            form = {"model": model, "response_format": "verbose_json"}
            if language:
                form["language"] = language
            if prompt:
                form["prompt"] = prompt
            response = await _request(
                target,
                "POST",
                url,
                headers=target.headers(),
                files={"file": (filename, content, mime)},
                data=form,
            )
            data = response.json()
            text = data.get("text", "")

        elif spec.api_style == "huggingface":
            response = await _request(
                target,
                "POST",
                url,
                headers=target.headers(**{"Content-Type": mime}),
                content=content,
            )
            data = response.json()
            text = data.get("text") or data.get("transcription") or ""

        elif spec.api_style == "replicate":
            data_uri = f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"
            response = await _request(
                target,
                "POST",
                url,
                headers=target.headers(Prefer="wait"),
                json={"version": model, "input": {"audio": data_uri, "language": language or "en"}},
            )
            data = response.json()
            output = data.get("output")
            text = output.get("transcription", "") if isinstance(output, dict) else (output or "")

        else:
            raise NotImplementedForProviderError(spec.name, "audio transcription")

    return {
        "provider": spec.name,
        "model": model,
        "text": text,
        "language": data.get("language") or language,
        "duration": data.get("duration"),
    }
