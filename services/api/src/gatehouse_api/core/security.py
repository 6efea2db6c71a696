"""口令哈希与不透明令牌工具。"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from datetime import datetime, timezone

# 与 OWASP 对 PBKDF2-SHA256 的推荐值保持一致。
DEFAULT_PASSWORD_HASH_ITERATIONS = 390000
# 令牌随机字节数，编码前至少 32 字节熵。
TOKEN_BYTES = 32

_HASH_ALGORITHM = "pbkdf2_sha256"


def utc_now() -> datetime:
    """返回当前 UTC 时间（带时区）。"""
    return datetime.now(timezone.utc)


class PasswordHasher:
    """PBKDF2-SHA256 加盐口令哈希。

    存储格式为 ``pbkdf2_sha256$<iterations>$<salt_b64>$<digest_b64>``，
    校验时使用哈希中记录的迭代次数，便于后续调整成本因子。
    """

    def __init__(self, iterations: int = DEFAULT_PASSWORD_HASH_ITERATIONS) -> None:
        if iterations <= 0:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    def hash(self, password: str) -> str:
        """生成口令哈希。"""
        salt = secrets.token_bytes(16)
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, self.iterations)
        salt_b64 = base64.b64encode(salt).decode("ascii")
        digest_b64 = base64.b64encode(digest).decode("ascii")
        return f"{_HASH_ALGORITHM}${self.iterations}${salt_b64}${digest_b64}"

    def verify(self, password: str, password_hash: str | None) -> bool:
        """常量时间比较口令与哈希，任何格式错误都视为不匹配。"""
        if not password_hash:
            return False
        try:
            algorithm, iterations_text, salt_b64, expected_digest_b64 = password_hash.split("$", 3)
            if algorithm != _HASH_ALGORITHM:
                return False
            iterations = int(iterations_text)
            if iterations <= 0:
                return False
            salt = base64.b64decode(salt_b64.encode("ascii"), validate=True)
            expected_digest = base64.b64decode(expected_digest_b64.encode("ascii"), validate=True)
        except (ValueError, TypeError, binascii.Error):
            return False

        actual_digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
        return hmac.compare_digest(actual_digest, expected_digest)


def generate_secure_token(num_bytes: int = TOKEN_BYTES) -> str:
    """生成 URL 安全的高熵随机令牌。"""
    if num_bytes < TOKEN_BYTES:
        raise ValueError(f"token must carry at least {TOKEN_BYTES} bytes of entropy")
    return secrets.token_urlsafe(num_bytes)


def fingerprint_token(secret_key: str, token: str) -> str:
    """计算令牌的带密钥指纹，用于日志与审计关联，避免记录原始令牌。"""
    digest = hmac.new(secret_key.encode("utf-8"), token.encode("utf-8"), hashlib.sha256).hexdigest()
    return digest[:16]

