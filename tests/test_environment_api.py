"""
运行环境探测测试

Python 探测使用当前测试解释器（sys.executable）作为真实的可执行文件。
"""

import os
import platform
import sys
from unittest.mock import AsyncMock, patch

import pytest

from workbench.services import environment

CONDA_ENV_LIST = """\
# conda environments:
#
base                  *  /opt/conda
ml                       /opt/conda/envs/ml
                         /home/me/other/env
"""


def fake_which(mapping: dict):
    return lambda name: mapping.get(name)


@pytest.fixture
def no_extra_envs(tmp_path, monkeypatch):
    """只保留系统解释器：没有 venv、pyenv、conda"""
    monkeypatch.setenv("PYENV_ROOT", str(tmp_path / "no-pyenv"))
    with patch.object(environment, "_venv_dirs", return_value=[]):
        yield tmp_path


class TestPythonDetection:
    def test_parse_conda_env_list(self):
        assert environment.parse_conda_env_list(CONDA_ENV_LIST) == [
            ("base", "/opt/conda"),
            ("ml", "/opt/conda/envs/ml"),
            ("env", "/home/me/other/env"),
        ]

    @pytest.mark.asyncio
    async def test_get_version(self):
        assert await environment.get_version(sys.executable) == platform.python_version()
        assert await environment.get_version("/nonexistent/python") is None

    @pytest.mark.asyncio
    async def test_system_python_deduplicated(self, no_extra_envs):
        which = fake_which({"python3": sys.executable, "python": sys.executable})
        with patch.object(environment.shutil, "which", side_effect=which):
            envs = await environment.detect_python_environments()

        assert envs == [{
            "path": sys.executable,
            "version": platform.python_version(),
            "type": "system",
            "name": "Python 3 (System)",
        }]

    @pytest.mark.skipif(sys.platform == "win32", reason="venv 目录结构为 POSIX 布局")
    @pytest.mark.asyncio
    async def test_venv_and_pyenv(self, no_extra_envs, monkeypatch):
        tmp_path = no_extra_envs
        venv_bin = tmp_path / "project" / ".venv" / "bin"
        venv_bin.mkdir(parents=True)
        os.symlink(sys.executable, venv_bin / "python")
        pyenv_bin = tmp_path / "pyenv" / "versions" / "3.12.1" / "bin"
        pyenv_bin.mkdir(parents=True)
        os.symlink(sys.executable, pyenv_bin / "python")
        monkeypatch.setenv("PYENV_ROOT", str(tmp_path / "pyenv"))

        with patch.object(environment.shutil, "which", return_value=None), \
                patch.object(environment, "_venv_dirs", return_value=[tmp_path / "project" / ".venv"]):
            envs = await environment.detect_python_environments()

        assert [(e["type"], e["name"]) for e in envs] == [
            ("venv", "venv: .venv"),
            ("pyenv", "pyenv: 3.12.1"),
        ]

    @pytest.mark.asyncio
    async def test_detect_route(self, client, no_extra_envs):
        with patch.object(environment.shutil, "which", side_effect=fake_which({"python3": sys.executable})):
            body = (await client.get("/api/python/detect")).json()

        assert body["count"] == 1
        assert body["environments"][0]["path"] == sys.executable

    @pytest.mark.asyncio
    async def test_validate_custom_path(self, client, tmp_path):
        resp = await client.post("/api/python/detect", json={"path": sys.executable})
        assert resp.status_code == 200
        assert resp.json()["type"] == "custom"
        assert resp.json()["version"] == platform.python_version()

        resp = await client.post("/api/python/detect", json={"path": "/nonexistent/python"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "PYTHON_NOT_FOUND"

        not_python = tmp_path / "notes.txt"
        not_python.write_text("hello")
        resp = await client.post("/api/python/detect", json={"path": str(not_python)})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_PYTHON"


class TestRuntimeDetection:
    @pytest.mark.asyncio
    async def test_preferences(self):
        which = fake_which({"node": "/usr/bin/node", "npm": "/usr/bin/npm", "pnpm": "/usr/bin/pnpm"})
        with patch.object(environment.shutil, "which", side_effect=which), \
                patch.object(environment, "get_version", AsyncMock(return_value="1.0.0")):
            env = await environment.detect_runtime()

        assert list(env["runtimes"]) == ["node"]
        assert list(env["package_managers"]) == ["npm", "pnpm"]
        assert env["preferred_runtime"] == "node"
        assert env["preferred_package_manager"] == "pnpm"
        assert env["runtimes"]["node"] == {
            "name": "node", "version": "1.0.0", "path": "/usr/bin/node", "available": True,
        }

    @pytest.mark.asyncio
    async def test_bun_preferred_over_node(self):
        which = fake_which({"node": "/usr/bin/node", "bun": "/usr/bin/bun", "npm": "/usr/bin/npm"})
        with patch.object(environment.shutil, "which", side_effect=which), \
                patch.object(environment, "get_version", AsyncMock(return_value="1.1.0")):
            env = await environment.detect_runtime()

        assert env["preferred_runtime"] == "bun"
        assert env["preferred_package_manager"] == "bun"

    @pytest.mark.asyncio
    async def test_runtime_route_defaults(self, client):
        with patch.object(environment.shutil, "which", return_value=None):
            body = (await client.get("/api/runtime", params={"refresh": "true"})).json()

        assert body == {
            "runtimes": {},
            "package_managers": {},
            "preferred_runtime": "node",
            "preferred_package_manager": "npm",
        }
