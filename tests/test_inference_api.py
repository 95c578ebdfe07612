"""
推理接口测试

检查顺序：提供商(400) → 能力(400) → API Key(401)，以及各接口的响应结构。
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest


class TestErrorOrder:
    @pytest.mark.asyncio
    async def test_unknown_provider(self, client):
        resp = await client.post("/api/chat", json={
            "provider": "acme", "model": "m", "messages": [{"role": "user", "content": "hi"}],
        })

        assert resp.status_code == 400
        assert resp.json() == {"detail": "unsupported provider: acme", "code": "UNSUPPORTED_PROVIDER"}

    @pytest.mark.asyncio
    async def test_capability_checked_before_key(self, client):
        # anthropic 没有 embeddings，且未配置 Key：应返回能力错误而不是 401
        resp = await client.post("/api/embeddings", json={
            "provider": "anthropic", "model": "m", "input": "x",
        })

        assert resp.status_code == 400
        assert resp.json()["code"] == "CAPABILITY_NOT_SUPPORTED"

    @pytest.mark.asyncio
    async def test_missing_api_key(self, client):
        resp = await client.post("/api/chat", json={
            "provider": "openai", "model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}],
        })

        assert resp.status_code == 401
        assert resp.json() == {"detail": "API key required for openai", "code": "MISSING_API_KEY"}

    @pytest.mark.asyncio
    async def test_upstream_status_passed_through(self, client, mock_upstream):
        mock_upstream(lambda r: httpx.Response(404, text='{"error":"model not found"}'))

        resp = await client.post("/api/chat", json={
            "provider": "ollama", "model": "missing", "messages": [{"role": "user", "content": "hi"}],
        })

        assert resp.status_code == 404
        assert resp.json() == {"detail": '{"error":"model not found"}', "code": "UPSTREAM_ERROR"}


class TestEndpoints:
    @pytest.mark.asyncio
    async def test_chat(self, client, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={
            "message": {"content": "<think>plan</think>done"},
            "prompt_eval_count": 1,
            "eval_count": 2,
        }))

        resp = await client.post("/api/chat", json={
            "provider": "ollama",
            "model": "qwen3:8b",
            "systemPrompt": "简洁回答",
            "messages": [{"role": "user", "content": "hi"}],
        })

        assert resp.status_code == 200
        body = resp.json()
        assert body["content"] == "done"
        assert body["reasoning"] == "plan"
        assert body["tokens_in"] == 1
        assert body["provider"] == "ollama"
        assert requests[0].url.host == "localhost"

    @pytest.mark.asyncio
    async def test_chat_with_base_url_override(self, client, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={"message": {"content": "ok"}}))

        await client.post("/api/chat", json={
            "provider": "ollama",
            "model": "m",
            "base_url": "http://gpu:11434",
            "messages": [{"role": "user", "content": "hi"}],
        })

        assert str(requests[0].url) == "http://gpu:11434/api/chat"

    @pytest.mark.asyncio
    async def test_completions_with_sdk(self, client, mock_openai_sdk):
        usage = MagicMock()
        usage.model_dump.return_value = {"prompt_tokens": 2, "completion_tokens": 3, "total_tokens": 5}
        mock_openai_sdk.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(text=" world")],
            usage=usage,
        )

        resp = await client.post("/api/completions", json={
            "provider": "lmstudio", "model": "m", "prompt": "hello",
        })

        assert resp.status_code == 200
        assert resp.json() == {
            "completion": " world",
            "usage": {"prompt_tokens": 2, "completion_tokens": 3, "total_tokens": 5},
        }

    @pytest.mark.asyncio
    async def test_embeddings_list_format(self, client, mock_upstream):
        mock_upstream(lambda r: httpx.Response(200, json={"embedding": [0.5, 0.5]}))

        body = (await client.post("/api/embeddings", json={
            "provider": "ollama", "model": "nomic-embed-text", "input": ["a"],
        })).json()

        assert body["object"] == "list"
        assert body["data"] == [{"object": "embedding", "embedding": [0.5, 0.5], "index": 0}]

    @pytest.mark.asyncio
    async def test_responses_passthrough(self, client, mock_upstream):
        upstream = {"id": "resp_1", "output": [{"type": "message"}]}
        requests = mock_upstream(lambda r: httpx.Response(200, json=upstream))

        body = (await client.post("/api/responses", json={
            "model": "local", "prompt": "hi", "instructions": "be nice",
        })).json()

        assert body == upstream
        assert str(requests[0].url) == "http://localhost:1234/v1/responses"

    @pytest.mark.asyncio
    async def test_image_generation_validation(self, client):
        resp = await client.post("/api/images/generate", json={
            "provider": "openai", "model": "dall-e-3", "prompt": "cat", "n": 11,
        })
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_image_generation_unsupported(self, client):
        resp = await client.post("/api/images/generate", json={
            "provider": "ollama", "model": "m", "prompt": "cat",
        })
        assert resp.status_code == 400
        assert resp.json()["code"] == "CAPABILITY_NOT_SUPPORTED"

    @pytest.mark.asyncio
    async def test_image_generation(self, client, mock_upstream, isolated_settings, monkeypatch):
        monkeypatch.setattr(isolated_settings, "openai_api_key", "sk")
        mock_upstream(lambda r: httpx.Response(200, json={"data": [{"url": "https://img/x.png"}]}))

        body = (await client.post("/api/images/generate", json={
            "provider": "openai", "model": "dall-e-3", "prompt": "cat",
        })).json()

        assert body["images"][0]["url"] == "https://img/x.png"
        assert body["prompt"] == "cat"

    @pytest.mark.asyncio
    async def test_audio_transcription(self, client, mock_upstream, isolated_settings, monkeypatch):
        monkeypatch.setattr(isolated_settings, "openai_api_key", "sk")
        mock_upstream(lambda r: httpx.Response(200, json={"text": "hello", "language": "en", "duration": 2.0}))

        resp = await client.post(
            "/api/audio/transcribe",
            data={"provider": "openai", "model": "whisper-1"},
            files={"file": ("clip.mp3", b"ID3data", "audio/mpeg")},
        )

        assert resp.status_code == 200
        assert resp.json()["text"] == "hello"

    @pytest.mark.asyncio
    async def test_audio_invalid_format(self, client, isolated_settings, monkeypatch):
        monkeypatch.setattr(isolated_settings, "openai_api_key", "sk")

        resp = await client.post(
            "/api/audio/transcribe",
            data={"provider": "openai", "model": "whisper-1"},
            files={"file": ("notes.txt", b"text", "text/plain")},
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_AUDIO_FILE"
