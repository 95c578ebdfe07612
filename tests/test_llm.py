"""
提供商请求规范化测试

测试 workbench/infra/llm.py：
- 各提供商对话请求体和响应解析
- <think> 推理内容拆分
- 文本补全、Embedding、图像生成、语音转写
- 上游错误与连接失败的转换
"""

import base64
import json
from types import SimpleNamespace

import httpx
import pytest
from openai import AsyncOpenAI

from workbench.exceptions import (
    CapabilityNotSupportedError,
    ProviderUnreachableError,
    UpstreamError,
    WorkbenchError,
)
from workbench.infra import llm
from workbench.infra.llm import ProviderTarget
from workbench.infra.metrics import metrics_collector
from workbench.infra.providers import get_provider


def target(name: str, api_key: str | None = None, base_url: str | None = None) -> ProviderTarget:
    return ProviderTarget(spec=get_provider(name), api_key=api_key, base_url=base_url)


def body_of(request: httpx.Request) -> dict:
    return json.loads(request.content)


class TestSplitReasoning:
    def test_think_tag_extracted(self):
        content, reasoning = llm.split_reasoning("<think>先想一想</think>\n答案是 42")
        assert content == "答案是 42"
        assert reasoning == "先想一想"

    def test_reasoning_tag_extracted(self):
        content, reasoning = llm.split_reasoning("<reasoning>step</reasoning>done")
        assert content == "done"
        assert reasoning == "step"

    def test_no_tag_keeps_existing_reasoning(self):
        assert llm.split_reasoning("plain", "from-field") == ("plain", "from-field")


class TestChatCompletion:
    @pytest.mark.asyncio
    async def test_ollama_chat(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "message": {"role": "assistant", "content": "<think>嗯</think>你好"},
            "prompt_eval_count": 12,
            "eval_count": 5,
        }))

        result = await llm.chat_completion(
            target("ollama"),
            "qwen3:8b",
            [{"role": "user", "content": "hi"}],
            system_prompt="你是助手",
            temperature=0.2,
        )

        assert result == {
            "content": "你好",
            "reasoning": "嗯",
            "tokens_in": 12,
            "tokens_out": 5,
            "tool_calls": [],
        }
        assert str(requests[0].url) == "http://localhost:11434/api/chat"
        body = body_of(requests[0])
        assert body["stream"] is False
        assert body["messages"][0] == {"role": "system", "content": "你是助手"}
        assert body["options"] == {"temperature": 0.2}

    @pytest.mark.asyncio
    async def test_openai_compatible_chat_uses_sdk(self, mock_openai_sdk):
        message = SimpleNamespace(content="hello", reasoning_content="why", tool_calls=None)
        mock_openai_sdk.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=message)],
            usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4),
        )

        result = await llm.chat_completion(
            target("lmstudio"), "local-model", [{"role": "user", "content": "hi"}], max_tokens=64
        )

        assert result["content"] == "hello"
        assert result["reasoning"] == "why"
        assert (result["tokens_in"], result["tokens_out"]) == (3, 4)
        kwargs = mock_openai_sdk.chat.completions.create.call_args.kwargs
        assert kwargs["max_tokens"] == 64
        assert "temperature" not in kwargs
        # LM Studio 的 SDK base_url 去掉 /chat/completions 后缀
        mock_openai_sdk.factory.assert_called_once_with(None, "http://localhost:1234/v1")

    @pytest.mark.asyncio
    async def test_anthropic_chat(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "content": [
                {"type": "thinking", "thinking": "考虑中"},
                {"type": "text", "text": "结论"},
            ],
            "usage": {"input_tokens": 7, "output_tokens": 9},
        }))

        result = await llm.chat_completion(
            target("anthropic", api_key="sk-ant"),
            "claude-3-5-haiku-20241022",
            [{"role": "user", "content": "hi"}],
            system_prompt="be brief",
        )

        assert result["content"] == "结论"
        assert result["reasoning"] == "考虑中"
        request = requests[0]
        assert request.headers["x-api-key"] == "sk-ant"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = body_of(request)
        assert body["system"] == "be brief"
        assert body["max_tokens"] == llm.ANTHROPIC_DEFAULT_MAX_TOKENS
        assert all(m["role"] != "system" for m in body["messages"])

    @pytest.mark.asyncio
    async def test_google_chat(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "candidates": [{"content": {"parts": [
                {"text": "thinking...", "thought": True},
                {"text": "answer"},
            ]}}],
            "usageMetadata": {"promptTokenCount": 2, "candidatesTokenCount": 1},
        }))

        result = await llm.chat_completion(
            target("google", api_key="g-key"),
            "gemini-1.5-flash",
            [
                {"role": "user", "content": "q1"},
                {"role": "assistant", "content": "a1"},
                {"role": "user", "content": "q2"},
            ],
        )

        assert result["content"] == "answer"
        assert result["reasoning"] == "thinking..."
        request = requests[0]
        assert request.url.path.endswith("/models/gemini-1.5-flash:generateContent")
        assert request.url.params["key"] == "g-key"
        roles = [c["role"] for c in body_of(request)["contents"]]
        assert roles == ["user", "model", "user"]

    @pytest.mark.asyncio
    async def test_cohere_chat(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "text": "hey",
            "meta": {"billed_units": {"input_tokens": 4, "output_tokens": 1}},
        }))

        result = await llm.chat_completion(
            target("cohere", api_key="co"),
            "command-r",
            [{"role": "user", "content": "first"}, {"role": "assistant", "content": "ok"}, {"role": "user", "content": "second"}],
        )

        assert result["content"] == "hey"
        body = body_of(requests[0])
        assert body["message"] == "second"
        assert [m["role"] for m in body["chat_history"]] == ["USER", "CHATBOT"]
        assert requests[0].headers["Authorization"] == "Bearer co"

    @pytest.mark.asyncio
    async def test_capability_not_supported(self):
        with pytest.raises(CapabilityNotSupportedError) as exc_info:
            await llm.chat_completion(target("replicate", api_key="r"), "m", [])
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_upstream_error_passes_status_and_text(self, mock_upstream):
        mock_upstream(lambda r: httpx.Response(429, text="rate limited"))

        with pytest.raises(UpstreamError) as exc_info:
            await llm.chat_completion(target("ollama"), "m", [{"role": "user", "content": "x"}])

        assert exc_info.value.status_code == 429
        assert exc_info.value.detail == "rate limited"
        stats = metrics_collector.get_stats()["calls"]["chat:ollama"]
        assert stats["errors"] == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_502(self, mock_upstream):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        mock_upstream(refuse)

        with pytest.raises(ProviderUnreachableError) as exc_info:
            await llm.chat_completion(target("ollama"), "m", [{"role": "user", "content": "x"}])
        assert exc_info.value.status_code == 502


class TestOpenAICompatibleErrors:
    """走 openai SDK 的提供商：真实 AsyncOpenAI 客户端，底层换成 MockTransport"""

    @pytest.fixture
    def sdk_upstream(self, monkeypatch):
        def install(handler):
            def factory(api_key, base_url):
                return AsyncOpenAI(
                    api_key=api_key,
                    base_url=base_url,
                    max_retries=0,
                    http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
                )

            monkeypatch.setattr(llm, "_get_openai_compatible_client", factory)

        return install

    @pytest.mark.asyncio
    async def test_status_and_body_pass_through(self, sdk_upstream):
        error_body = {"error": {"message": "The model `gpt-x` does not exist", "type": "invalid_request_error"}}
        sdk_upstream(lambda r: httpx.Response(404, json=error_body))

        with pytest.raises(UpstreamError) as exc_info:
            await llm.chat_completion(target("openai", api_key="sk"), "gpt-x", [{"role": "user", "content": "x"}])

        assert exc_info.value.status_code == 404
        assert json.loads(exc_info.value.detail) == error_body
        assert metrics_collector.get_stats()["calls"]["chat:openai"]["errors"] == 1

    @pytest.mark.asyncio
    async def test_embeddings_auth_error(self, sdk_upstream):
        sdk_upstream(lambda r: httpx.Response(401, text="invalid api key"))

        with pytest.raises(UpstreamError) as exc_info:
            await llm.create_embeddings(target("mistral", api_key="bad"), "mistral-embed", ["hi"])

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "invalid api key"

    @pytest.mark.asyncio
    async def test_connection_error_is_502(self, sdk_upstream):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        sdk_upstream(refuse)

        with pytest.raises(ProviderUnreachableError) as exc_info:
            await llm.chat_completion(target("groq", api_key="gsk"), "llama", [{"role": "user", "content": "x"}])
        assert exc_info.value.status_code == 502


class TestCompletionsAndEmbeddings:
    @pytest.mark.asyncio
    async def test_ollama_completion_defaults(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "response": "续写内容",
            "prompt_eval_count": 3,
            "eval_count": 6,
        }))

        result = await llm.text_completion(target("ollama"), "llama3", "从前有座山")

        assert result["completion"] == "续写内容"
        assert result["usage"] == {"prompt_tokens": 3, "completion_tokens": 6, "total_tokens": 9}
        assert body_of(requests[0])["options"] == {"temperature": 0.7, "num_predict": 500}

    @pytest.mark.asyncio
    async def test_ollama_embeddings_one_request_per_input(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={"embedding": [0.1, 0.2]}))

        result = await llm.create_embeddings(target("ollama"), "nomic-embed-text", ["a", "b"])

        assert len(requests) == 2
        assert result["object"] == "list"
        assert [d["index"] for d in result["data"]] == [0, 1]
        assert result["data"][1]["embedding"] == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_cohere_embeddings(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "embeddings": [[1.0, 2.0, 3.0]],
            "meta": {"billed_units": {"input_tokens": 5}},
        }))

        result = await llm.create_embeddings(target("cohere", api_key="k"), "embed-english-v3.0", "hello")

        assert body_of(requests[0])["input_type"] == "search_document"
        assert result["usage"]["prompt_tokens"] == 5
        assert result["data"][0]["embedding"] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_embeddings_not_supported_by_anthropic(self):
        with pytest.raises(CapabilityNotSupportedError):
            await llm.create_embeddings(target("anthropic", api_key="k"), "m", "x")


class TestImagesAndAudio:
    @pytest.mark.asyncio
    async def test_openai_images_include_quality(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "data": [{"url": "https://img/1.png", "revised_prompt": "x"}],
        }))

        result = await llm.generate_images(
            target("openai", api_key="sk"), "dall-e-3", "a cat", quality="hd"
        )

        assert result["images"] == [{"url": "https://img/1.png"}]
        assert result["provider"] == "openai"
        assert isinstance(result["created"], int)
        assert body_of(requests[0])["quality"] == "hd"

    @pytest.mark.asyncio
    async def test_together_images_omit_quality(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={"data": [{"b64_json": "AAA"}]}))

        await llm.generate_images(target("together", api_key="t"), "sdxl", "a dog")

        assert "quality" not in body_of(requests[0])

    @pytest.mark.asyncio
    async def test_replicate_images_wait_header(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(201, json={"output": "https://r/1.png"}))

        result = await llm.generate_images(target("replicate", api_key="r"), "flux", "sky", n=2)

        assert result["images"] == [{"url": "https://r/1.png"}]
        assert requests[0].headers["Prefer"] == "wait"
        assert body_of(requests[0])["input"]["num_outputs"] == 2

    @pytest.mark.asyncio
    async def test_huggingface_images_base64(self, mock_upstream):
        mock_upstream(lambda r: httpx.Response(200, content=b"\x89PNG"))

        result = await llm.generate_images(
            target("huggingface", api_key="hf"), "stabilityai/stable-diffusion-2-1", "tree"
        )

        assert result["images"] == [{"b64_json": base64.b64encode(b"\x89PNG").decode()}]

    def test_validate_audio_file(self):
        llm.validate_audio_file("audio/mpeg", 1024)
        with pytest.raises(WorkbenchError) as exc_info:
            llm.validate_audio_file("video/mp4", 1024)
        assert exc_info.value.code == "INVALID_AUDIO_FILE"
        with pytest.raises(WorkbenchError):
            llm.validate_audio_file("audio/wav", llm.MAX_AUDIO_FILE_SIZE + 1)

    @pytest.mark.asyncio
    async def test_openai_transcription_multipart(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "text": "你好世界",
            "language": "zh",
            "duration": 1.5,
        }))

        result = await llm.transcribe_audio(
            target("groq", api_key="g"),
            "whisper-large-v3",
            filename="a.mp3",
            content=b"ID3",
            mime="audio/mpeg",
        )

        assert result == {
            "provider": "groq",
            "model": "whisper-large-v3",
            "text": "你好世界",
            "language": "zh",
            "duration": 1.5,
        }
        request = requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b"verbose_json" in request.content

    @pytest.mark.asyncio
    async def test_replicate_transcription_defaults_language(self, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(201, json={
            "output": {"transcription": "hello"},
        }))

        result = await llm.transcribe_audio(
            target("replicate", api_key="r"),
            "openai/whisper",
            filename="a.wav",
            content=b"RIFF",
            mime="audio/wav",
        )

        assert result["text"] == "hello"
        audio_input = body_of(requests[0])["input"]
        assert audio_input["language"] == "en"
        assert audio_input["audio"].startswith("data:audio/wav;base64,")
