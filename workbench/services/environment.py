"""
本机运行环境探测

- Python 解释器：系统 python3 / python、常见位置的 venv、conda（或 mamba）环境、pyenv 版本，
  供 Notebook 选择解释器
- JavaScript 运行时与包管理器：node / bun，npm / pnpm / yarn / bun，
  给出安装 MCP 服务器时的推荐选择

版本号通过执行 `<程序> --version` 获取，单个探测失败只跳过该项。
"""

import asyncio
import logging
import os
import shutil
import sys
from pathlib import Path

import aiofiles.os

from workbench.exceptions import WorkbenchError

logger = logging.getLogger(__name__)

VERSION_TIMEOUT = 5.0

RUNTIMES = ("node", "bun")
PACKAGE_MANAGERS = ("npm", "pnpm", "yarn", "bun")
# 推荐顺序
RUNTIME_PREFERENCE = ("bun", "node")
PACKAGE_MANAGER_PREFERENCE = ("pnpm", "bun", "yarn", "npm")


async def _run(*args: str) -> str | None:
    """执行命令并返回输出（stdout 为空时取 stderr），失败返回 None"""
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug(f"无法执行 {args[0]}: {e}")
        return None

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=VERSION_TIMEOUT)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.warning(f"执行超时: {' '.join(args)}")
        return None

    if process.returncode != 0:
        return None
    # Python 2 把版本号打印到 stderr
    return (stdout or stderr).decode("utf-8", errors="replace").strip()


async def get_version(executable: str) -> str | None:
    """`<executable> --version` 输出的第一行，去掉 "Python " 前缀"""
    output = await _run(executable, "--version")
    if not output:
        return None
    return output.splitlines()[0].removeprefix("Python ").strip()


def _venv_python(env_dir: Path) -> Path:
    if sys.platform == "win32":
        return env_dir / "Scripts" / "python.exe"
    return env_dir / "bin" / "python"


async def _python_env(path: Path | str, env_type: str, name: str) -> dict | None:
    path = str(path)
    if not await aiofiles.os.path.exists(path):
        return None
    version = await get_version(path)
    if version is None:
        logger.info(f"[Python] 无法获取版本: {path}")
        return None
    return {"path": path, "version": version, "type": env_type, "name": name}


async def _system_pythons() -> list[dict]:
    found = []
    for command, label in (("python3", "Python 3 (System)"), ("python", "Python (System)")):
        path = shutil.which(command)
        if path:
            found.append(await _python_env(path, "system", label))
    return found


def _venv_dirs() -> list[Path]:
    home = Path.home()
    cwd = Path.cwd()
    return [home / ".venv", home / "venv", home / ".virtualenvs", cwd / "venv", cwd / ".venv"]


async def _venvs() -> list[dict]:
    return [
        await _python_env(_venv_python(env_dir), "venv", f"venv: {env_dir.name}")
        for env_dir in _venv_dirs()
    ]


def parse_conda_env_list(output: str) -> list[tuple[str, str]]:
    """
    解析 `conda env list` 输出为 [(名称, 路径)]

    当前激活的环境带 `*` 标记；未命名环境只有路径一列，用目录名作为名称。
    """
    envs = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = [p for p in line.split() if p != "*"]
        if not parts:
            continue
        env_path = parts[-1]
        name = parts[0] if len(parts) >= 2 else Path(env_path).name
        envs.append((name, env_path))
    return envs


async def _conda_envs() -> list[dict]:
    for command in ("conda", "mamba"):
        if not shutil.which(command):
            continue
        output = await _run(command, "env", "list")
        if output is None:
            continue
        label = "Miniforge3" if command == "mamba" else "Conda"
        found = []
        for name, env_path in parse_conda_env_list(output):
            python = Path(env_path) / ("python.exe" if sys.platform == "win32" else "bin/python")
            display = f"{label}: {name}" if name == "base" else f"Conda: {name}"
            found.append(await _python_env(python, "conda", display))
        return found
    return []


async def _pyenv_versions() -> list[dict]:
    root = Path(os.environ.get("PYENV_ROOT") or Path.home() / ".pyenv") / "versions"
    if not await aiofiles.os.path.isdir(root):
        return []
    return [
        await _python_env(root / version / "bin" / "python", "pyenv", f"pyenv: {version}")
        for version in sorted(await aiofiles.os.listdir(root))
    ]


async def detect_python_environments() -> list[dict]:
    """
    探测本机 Python 环境

    Returns:
        [{path, version, type, name}]，type 为 system / venv / conda / pyenv，按路径去重
    """
    groups = await asyncio.gather(_system_pythons(), _conda_envs(), _venvs(), _pyenv_versions())

    environments: dict[str, dict] = {}
    for env in (e for group in groups for e in group if e):
        environments.setdefault(env["path"], env)
    logger.info(f"[Python] 发现 {len(environments)} 个环境")
    return list(environments.values())


async def validate_python(path: str) -> dict:
    """
    校验自定义解释器路径

    Raises:
        WorkbenchError: 路径不存在（404 PYTHON_NOT_FOUND）或无法获取版本（400 INVALID_PYTHON）
    """
    if not await aiofiles.os.path.exists(path):
        raise WorkbenchError(
            "Python executable not found at specified path", status_code=404, code="PYTHON_NOT_FOUND"
        )
    version = await get_version(path)
    if version is None:
        raise WorkbenchError("Invalid Python executable", status_code=400, code="INVALID_PYTHON")
    return {"valid": True, "path": path, "version": version, "type": "custom", "name": "Custom Python"}


async def _detect_command(name: str) -> dict | None:
    path = shutil.which(name)
    if not path:
        return None
    version = await get_version(path)
    if version is None:
        return None
    return {"name": name, "version": version, "path": path, "available": True}


def _preferred(available: dict, order: tuple[str, ...], default: str) -> str:
    return next((name for name in order if name in available), default)


async def detect_runtime() -> dict:
    """
    探测 JavaScript 运行时和包管理器

    推荐顺序：运行时 bun > node；包管理器 pnpm > bun > yarn > npm；都没有时默认 node / npm。
    """
    names = list(dict.fromkeys(RUNTIMES + PACKAGE_MANAGERS))
    detected = dict(zip(names, await asyncio.gather(*(_detect_command(n) for n in names))))

    runtimes = {name: detected[name] for name in RUNTIMES if detected[name]}
    package_managers = {name: detected[name] for name in PACKAGE_MANAGERS if detected[name]}
    environment = {
        "runtimes": runtimes,
        "package_managers": package_managers,
        "preferred_runtime": _preferred(runtimes, RUNTIME_PREFERENCE, "node"),
        "preferred_package_manager": _preferred(package_managers, PACKAGE_MANAGER_PREFERENCE, "npm"),
    }
    logger.info(
        f"[Runtime] 运行时: {list(runtimes)}, 包管理器: {list(package_managers)}, "
        f"推荐: {environment['preferred_runtime']} / {environment['preferred_package_manager']}"
    )
    return environment
