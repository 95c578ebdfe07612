"""
对话管理接口测试

覆盖 /api/chats 的 CRUD、消息与附件、自动标题、级联删除。
"""

import pytest
from sqlalchemy import func, select

from workbench.models import Attachment, Message


async def create_chat(client, **payload) -> dict:
    resp = await client.post("/api/chats", json=payload)
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_create_chat_defaults(client):
    chat = await create_chat(client)

    assert chat["title"] == "New Chat"
    assert chat["default_provider"] == "ollama"
    assert chat["tool_server_ids"] == []
    assert chat["message_count"] == 0


@pytest.mark.asyncio
async def test_first_user_message_sets_title(client):
    chat = await create_chat(client)
    long_text = "帮我写一个读取 CSV 并统计每列缺失值的 Python 脚本，要求输出为 Markdown 表格格式并附带说明"

    resp = await client.post(
        f"/api/chats/{chat['id']}/messages",
        json={"role": "user", "content": long_text},
    )
    assert resp.status_code == 201

    detail = (await client.get(f"/api/chats/{chat['id']}")).json()
    assert detail["title"] == long_text[:50] + "..."
    assert detail["message_count"] == 1

    # 第二条用户消息不再修改标题
    await client.post(f"/api/chats/{chat['id']}/messages", json={"role": "user", "content": "另一个问题"})
    detail = (await client.get(f"/api/chats/{chat['id']}")).json()
    assert detail["title"] == long_text[:50] + "..."


@pytest.mark.asyncio
async def test_custom_title_not_overwritten(client):
    chat = await create_chat(client, title="调试 MCP")
    await client.post(f"/api/chats/{chat['id']}/messages", json={"role": "user", "content": "hello"})

    detail = (await client.get(f"/api/chats/{chat['id']}")).json()
    assert detail["title"] == "调试 MCP"


@pytest.mark.asyncio
async def test_message_with_attachments_and_order(client):
    chat = await create_chat(client)
    await client.post(
        f"/api/chats/{chat['id']}/messages",
        json={
            "role": "user",
            "content": "看看这张图",
            "attachments": [{"name": "a.png", "mime": "image/png", "size": 10, "url": "https://files/a.png"}],
        },
    )
    resp = await client.post(
        f"/api/chats/{chat['id']}/messages",
        json={
            "role": "assistant",
            "content": "这是一只猫",
            "reasoning": "图片中有猫耳朵",
            "provider": "ollama",
            "model_id": "llava",
            "tokens_in": 100,
            "tokens_out": 8,
        },
    )
    assert resp.json()["reasoning"] == "图片中有猫耳朵"

    messages = (await client.get(f"/api/chats/{chat['id']}/messages")).json()
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[0]["attachments"][0]["name"] == "a.png"
    assert messages[1]["attachments"] == []

    listing = (await client.get("/api/chats")).json()
    assert listing["total"] == 1
    assert listing["items"][0]["last_message"] == "这是一只猫"


@pytest.mark.asyncio
async def test_update_chat_partial(client):
    chat = await create_chat(client, system_prompt="old")

    resp = await client.patch(f"/api/chats/{chat['id']}", json={"title": "Renamed"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Renamed"
    assert body["system_prompt"] == "old"


@pytest.mark.asyncio
async def test_delete_chat_cascades(client, db_session):
    chat = await create_chat(client)
    await client.post(
        f"/api/chats/{chat['id']}/messages",
        json={
            "role": "user",
            "content": "x",
            "attachments": [{"name": "f.txt", "mime": "text/plain", "size": 1, "url": "u"}],
        },
    )

    resp = await client.delete(f"/api/chats/{chat['id']}")
    assert resp.status_code == 204

    assert (await client.get(f"/api/chats/{chat['id']}")).status_code == 404
    assert (await db_session.execute(select(func.count()).select_from(Message))).scalar() == 0
    assert (await db_session.execute(select(func.count()).select_from(Attachment))).scalar() == 0


@pytest.mark.asyncio
async def test_missing_chat_returns_code(client):
    resp = await client.get("/api/chats/does-not-exist")

    assert resp.status_code == 404
    assert resp.json() == {"detail": "对话不存在", "code": "CHAT_NOT_FOUND"}


@pytest.mark.asyncio
async def test_invalid_role_is_validation_error(client):
    chat = await create_chat(client)

    resp = await client.post(f"/api/chats/{chat['id']}/messages", json={"role": "robot", "content": "x"})

    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_list_pagination(client):
    for i in range(3):
        await create_chat(client, title=f"chat {i}")

    page = (await client.get("/api/chats", params={"limit": 2, "offset": 0})).json()

    assert page["total"] == 3
    assert len(page["items"]) == 2
    assert page["limit"] == 2
