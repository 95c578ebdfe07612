"""
开发辅助：终端命令与 Python 代码执行

只用于本机开发调试，不是安全沙箱；黑名单规则只拦截明显危险的操作。

- 终端：超时 10 秒，输出上限 1MB（边读边计数，超出即结束进程）
- Notebook：在工作目录中执行代码，超时 30 秒，收集生成的图片和 json/csv/txt 文件

子进程在独立进程组中启动，超时或超出输出上限时整组结束，shell 派生的子进程一并退出。
"""

import asyncio
import base64
import logging
import os
import re
import shutil
import signal
import sys
import time
from pathlib import Path

import aiofiles
import aiofiles.os

from workbench.config import get_settings
from workbench.exceptions import CommandBlockedError, WorkbenchError

logger = logging.getLogger(__name__)

DANGEROUS_COMMAND_PATTERNS = [
    re.compile(r"rm\s+-rf", re.IGNORECASE),
    re.compile(r"del\s+/[sfq]", re.IGNORECASE),
    re.compile(r"format\s+[a-z]:", re.IGNORECASE),
    re.compile(r"shutdown", re.IGNORECASE),
    re.compile(r"reboot", re.IGNORECASE),
    re.compile(r">.*\|"),
    re.compile(r"&\s*$"),
]

DANGEROUS_CODE_PATTERNS = [
    re.compile(r"import\s+os", re.IGNORECASE),
    re.compile(r"from\s+os\s+import", re.IGNORECASE),
    re.compile(r"import\s+subprocess", re.IGNORECASE),
    re.compile(r"from\s+subprocess\s+import", re.IGNORECASE),
    re.compile(r"__import__", re.IGNORECASE),
    re.compile(r"eval\(", re.IGNORECASE),
    re.compile(r"exec\(", re.IGNORECASE),
]

IMAGE_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".svg": "image/svg+xml",
}
ARTIFACT_MIME = {
    ".json": "application/json",
    ".csv": "text/csv",
    ".txt": "text/plain",
}


def is_dangerous_command(command: str) -> bool:
    return any(p.search(command) for p in DANGEROUS_COMMAND_PATTERNS)


def is_dangerous_code(code: str) -> bool:
    return any(p.search(code) for p in DANGEROUS_CODE_PATTERNS)


_READ_CHUNK = 64 * 1024


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace").strip()


def _kill(process: asyncio.subprocess.Process) -> None:
    """结束整个进程组"""
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except (ProcessLookupError, PermissionError):
        pass


async def _collect(process: asyncio.subprocess.Process, limit: int) -> tuple[bytes, bytes, bool]:
    """
    读取 stdout/stderr 直到进程结束

    任一输出超过 limit 字节时结束进程，已读内容截断到 limit。

    Returns:
        (stdout, stderr, truncated)
    """
    overflow = False

    async def read(stream: asyncio.StreamReader) -> bytes:
        nonlocal overflow
        buffer = bytearray()
        while chunk := await stream.read(_READ_CHUNK):
            buffer.extend(chunk)
            if len(buffer) > limit:
                overflow = True
                _kill(process)
                break
        return bytes(buffer[:limit])

    stdout, stderr = await asyncio.gather(read(process.stdout), read(process.stderr))
    await process.wait()
    return stdout, stderr, overflow


async def run_command(command: str) -> dict:
    """
    执行 shell 命令

    Returns:
        成功/失败：{stdout, stderr, success, exit_code}，超出输出上限时带 truncated=True
        超时：{error, stderr}

    Raises:
        CommandBlockedError: 命中黑名单（403）
    """
    if is_dangerous_command(command):
        raise CommandBlockedError("Command not allowed for security reasons")

    settings = get_settings()
    logger.info(f"[Terminal] 执行命令: {command}")
    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
    )
    try:
        stdout, stderr, truncated = await asyncio.wait_for(
            _collect(process, settings.terminal_max_output_bytes),
            timeout=settings.terminal_timeout,
        )
    except asyncio.TimeoutError:
        _kill(process)
        await process.wait()
        logger.warning(f"[Terminal] 命令超时: {command}")
        return {
            "error": "Command execution timed out",
            "stderr": "Process was terminated due to timeout",
        }

    result = {
        "stdout": _decode(stdout),
        "stderr": _decode(stderr),
        "success": process.returncode == 0,
        "exit_code": process.returncode,
    }
    if truncated:
        logger.warning(f"[Terminal] 输出超过 {settings.terminal_max_output_bytes} 字节，已结束进程: {command}")
        result["truncated"] = True
    return result


def resolve_python(python_path: str | None = None) -> str:
    """指定路径 > python3 > python > 当前解释器"""
    if python_path:
        return python_path
    return shutil.which("python3") or shutil.which("python") or sys.executable


async def _collect_outputs(workspace: Path) -> tuple[list[str], list[dict]]:
    images = []
    artifacts = []
    for name in sorted(await aiofiles.os.listdir(workspace)):
        path = workspace / name
        if not await aiofiles.os.path.isfile(path):
            continue
        suffix = path.suffix.lower()
        if suffix in IMAGE_MIME:
            async with aiofiles.open(path, "rb") as f:
                encoded = base64.b64encode(await f.read()).decode("ascii")
            images.append(f"data:{IMAGE_MIME[suffix]};base64,{encoded}")
        elif suffix in ARTIFACT_MIME:
            async with aiofiles.open(path, encoding="utf-8", errors="replace") as f:
                content = await f.read()
            artifacts.append({"name": name, "content": content, "mime": ARTIFACT_MIME[suffix]})
    return images, artifacts


async def run_notebook(
    code: str,
    files: list[dict] | None = None,
    python_path: str | None = None,
) -> dict:
    """
    在工作目录中执行 Python 代码

    Args:
        code: Python 源码
        files: 执行前写入工作目录的文件 [{"name", "content"}]
        python_path: 解释器路径，默认依次尝试 python3 / python

    Returns:
        dict: {stdout, stderr, images, artifacts, error?, truncated?}
    """
    if is_dangerous_code(code):
        raise CommandBlockedError("Code contains potentially dangerous operations")

    settings = get_settings()
    workspace = Path(settings.notebook_workspace_dir).resolve()
    await aiofiles.os.makedirs(workspace, exist_ok=True)

    for file in files or []:
        # 只取文件名，防止写到工作目录之外
        async with aiofiles.open(workspace / Path(file["name"]).name, "w", encoding="utf-8") as f:
            await f.write(file["content"])

    script = workspace / f"script_{time.time_ns()}.py"
    async with aiofiles.open(script, "w", encoding="utf-8") as f:
        await f.write(code)
    python = resolve_python(python_path or settings.notebook_python_path)

    try:
        try:
            process = await asyncio.create_subprocess_exec(
                python,
                str(script),
                cwd=str(workspace),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise WorkbenchError(
                f"Python interpreter not available: {python}",
                status_code=400,
                code="PYTHON_NOT_FOUND",
            ) from e

        try:
            stdout, stderr, truncated = await asyncio.wait_for(
                _collect(process, settings.terminal_max_output_bytes),
                timeout=settings.notebook_timeout,
            )
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            return {
                "stdout": "",
                "stderr": "",
                "images": [],
                "artifacts": [],
                "error": f"Execution timed out after {settings.notebook_timeout:g}s",
            }
    finally:
        try:
            await aiofiles.os.remove(script)
        except FileNotFoundError:
            pass

    result = {
        "stdout": stdout.decode("utf-8", errors="replace"),
        "stderr": stderr.decode("utf-8", errors="replace"),
        "images": [],
        "artifacts": [],
        "truncated": truncated,
    }
    if truncated:
        result["error"] = f"Output exceeded {settings.terminal_max_output_bytes} bytes"
        return result
    if process.returncode != 0:
        result["error"] = f"Process exited with code {process.returncode}"
        return result

    result["images"], result["artifacts"] = await _collect_outputs(workspace)
    return result
