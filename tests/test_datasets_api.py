"""
数据集接口测试

上传（CSV / JSON / JSONL）、预览、删除与向量化。
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from workbench.exceptions import DatasetError
from workbench.models import Dataset
from workbench.services.datasets import delete_dataset, parse_dataset, render_record

CSV_CONTENT = "name,city,score\nAlice,Beijing,90\nBob,Shanghai,85\nCarol,,77\n"


async def upload(client, filename: str, content: bytes, mime: str, **form) -> httpx.Response:
    return await client.post(
        "/api/datasets/upload",
        files={"file": (filename, content, mime)},
        data=form,
    )


class TestParse:
    def test_csv(self):
        records, columns = parse_dataset("people.csv", CSV_CONTENT.encode())
        assert columns == ["name", "city", "score"]
        assert records[0] == {"name": "Alice", "city": "Beijing", "score": "90"}

    def test_json_array_column_order(self):
        content = json.dumps([{"a": 1}, {"b": 2, "a": 3}]).encode()
        records, columns = parse_dataset("x.json", content)
        assert columns == ["a", "b"]
        assert len(records) == 2

    def test_jsonl(self):
        records, columns = parse_dataset("x.jsonl", b'{"q": "hi"}\n\n{"q": "yo"}\n')
        assert [r["q"] for r in records] == ["hi", "yo"]

    @pytest.mark.parametrize("filename,content", [
        ("x.txt", b"hello"),
        ("x.json", b"[1, 2, 3]"),
        ("x.json", b"{broken"),
        ("x.csv", b""),
    ])
    def test_invalid(self, filename, content):
        with pytest.raises(DatasetError):
            parse_dataset(filename, content)

    def test_render_record_skips_empty(self):
        assert render_record({"name": "Carol", "city": "", "score": "77"}) == "name: Carol; score: 77"


class TestDatasetApi:
    @pytest.mark.asyncio
    async def test_upload_and_preview(self, client, isolated_settings):
        resp = await upload(client, "people.csv", CSV_CONTENT.encode(), "text/csv", name="People")

        assert resp.status_code == 201
        dataset = resp.json()
        assert dataset["name"] == "People"
        assert dataset["rows"] == 3
        assert dataset["columns"] == 3
        assert dataset["indexed"] is False
        stored = Path(isolated_settings.dataset_dir) / f"{dataset['id']}.csv"
        assert stored.read_text() == CSV_CONTENT

        preview = (await client.get(f"/api/datasets/{dataset['id']}/preview", params={"rows": 2})).json()
        assert preview["columns"] == ["name", "city", "score"]
        assert len(preview["data"]) == 2
        assert preview["rows"] == 3

        listing = (await client.get("/api/datasets")).json()
        assert [d["id"] for d in listing] == [dataset["id"]]

    @pytest.mark.asyncio
    async def test_file_io_does_not_use_blocking_path_calls(self, client):
        blocked = MagicMock(side_effect=AssertionError("blocking file I/O in request handler"))
        with patch.object(Path, "write_bytes", blocked), patch.object(Path, "read_bytes", blocked):
            dataset = (await upload(client, "people.csv", CSV_CONTENT.encode(), "text/csv")).json()
            preview = (await client.get(f"/api/datasets/{dataset['id']}/preview")).json()

        assert len(preview["data"]) == 3
        blocked.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_rejects_unsupported_type(self, client):
        resp = await upload(client, "notes.txt", b"hello", "text/plain")

        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_DATASET"

    @pytest.mark.asyncio
    async def test_delete_removes_file(self, client, isolated_settings):
        dataset = (await upload(client, "d.json", b'[{"a": 1}]', "application/json")).json()
        stored = Path(isolated_settings.dataset_dir) / f"{dataset['id']}.json"
        assert stored.exists()

        resp = await client.delete(f"/api/datasets/{dataset['id']}")

        assert resp.status_code == 204
        assert not stored.exists()
        assert (await client.get(f"/api/datasets/{dataset['id']}")).json()["code"] == "DATASET_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_file(self, client, db_session, isolated_settings):
        dataset = (await upload(client, "d.json", b'[{"a": 1}]', "application/json")).json()
        stored = Path(isolated_settings.dataset_dir) / f"{dataset['id']}.json"
        row = await db_session.get(Dataset, dataset["id"])

        with patch.object(db_session, "commit", AsyncMock(side_effect=RuntimeError("db down"))):
            with pytest.raises(RuntimeError):
                await delete_dataset(db_session, row)

        assert stored.exists()

    @pytest.mark.asyncio
    async def test_preview_missing_file(self, client, isolated_settings):
        dataset = (await upload(client, "d.csv", CSV_CONTENT.encode(), "text/csv")).json()
        (Path(isolated_settings.dataset_dir) / f"{dataset['id']}.csv").unlink()

        resp = await client.get(f"/api/datasets/{dataset['id']}/preview")

        assert resp.status_code == 404
        assert resp.json()["code"] == "DATASET_FILE_MISSING"

    @pytest.mark.asyncio
    async def test_index_with_ollama(self, client, mock_upstream):
        requests = mock_upstream(lambda r: httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]}))
        dataset = (await upload(client, "people.csv", CSV_CONTENT.encode(), "text/csv")).json()

        resp = await client.post(f"/api/datasets/{dataset['id']}/index")

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "embeddings": {"provider": "ollama", "model": "nomic-embed-text", "dimensions": 3, "count": 3},
        }
        assert json.loads(requests[0].content)["prompt"] == "name: Alice; city: Beijing; score: 90"

        detail = (await client.get(f"/api/datasets/{dataset['id']}")).json()
        assert detail["indexed"] is True
        assert detail["embeddings"]["count"] == 3

    @pytest.mark.asyncio
    async def test_index_requires_embedding_capability(self, client):
        dataset = (await upload(client, "people.csv", CSV_CONTENT.encode(), "text/csv")).json()

        resp = await client.post(
            f"/api/datasets/{dataset['id']}/index",
            json={"provider": "replicate", "model": "x"},
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "CAPABILITY_NOT_SUPPORTED"
