"""
敏感数据加密

提供商 API Key 在数据库中以 Fernet（AES-128-CBC + HMAC-SHA256）密文保存。
Fernet 密钥由配置项 encryption_key 经 SHA-256 派生，修改 encryption_key
后旧密文将无法解密。

使用示例：
    from workbench.infra.encryption import encrypt, decrypt

    token = encrypt("sk-xxx")
    assert decrypt(token) == "sk-xxx"
"""

import base64
import hashlib
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from workbench.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_ENCRYPTION_KEY = "mcp-workbench-dev-encryption-key"


class DecryptionError(Exception):
    """密文无法解密（密钥不匹配或数据损坏）"""


@lru_cache(maxsize=4)
def _get_fernet(secret: str) -> Fernet:
    """由任意长度的密钥字符串派生 Fernet 实例"""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def _current_fernet() -> Fernet:
    settings = get_settings()
    if settings.encryption_key == DEFAULT_ENCRYPTION_KEY and settings.environment == "prod":
        logger.warning("生产环境正在使用默认加密密钥，请设置 ENCRYPTION_KEY 环境变量")
    return _get_fernet(settings.encryption_key)


def encrypt(plaintext: str) -> str:
    """加密字符串，空字符串原样返回"""
    if not plaintext:
        return ""
    return _current_fernet().encrypt(plaintext.encode("utf-8")).decode("ascii")


def decrypt(ciphertext: str) -> str:
    """
    解密字符串

    Raises:
        DecryptionError: 密文无效
    """
    if not ciphertext:
        return ""
    try:
        return _current_fernet().decrypt(ciphertext.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError) as e:
        raise DecryptionError("Failed to decrypt data") from e

