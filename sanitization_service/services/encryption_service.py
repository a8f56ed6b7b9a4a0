"""
加密服务
用于 encrypt 脱敏动作的预览：AES-256-GCM，相同输入得到相同密文
"""
import base64
import hashlib
import hmac
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_SIZE = 12


class EncryptionService:
    """加密服务类"""

    def __init__(self, key: str, iv: Optional[str] = None):
        """
        初始化加密服务

        Args:
            key: 规则中的加密密钥（任意字符串，经 SHA-256 派生为 32 字节）
            iv: 可选的初始向量字符串，与明文一起派生 nonce
        """
        self.key_bytes = hashlib.sha256(key.encode("utf-8")).digest()
        self.iv = iv
        self.cipher = AESGCM(self.key_bytes)

    def _nonce(self, plaintext: bytes) -> bytes:
        # 同一密钥下不同明文的 nonce 不能重复；iv 只参与派生
        seed = (self.iv or "").encode("utf-8") + plaintext
        return hmac.new(self.key_bytes, seed, hashlib.sha256).digest()[:NONCE_SIZE]

    def encrypt(self, plaintext: str) -> str:
        """
        加密字符串

        Args:
            plaintext: 明文字符串

        Returns:
            URL安全的base64字符串（nonce + 密文）
        """
        data = plaintext.encode("utf-8")
        nonce = self._nonce(data)
        encrypted_bytes = self.cipher.encrypt(nonce, data, None)
        return base64.urlsafe_b64encode(nonce + encrypted_bytes).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        解密字符串

        Args:
            ciphertext: encrypt 的输出

        Returns:
            解密后的明文字符串

        Raises:
            cryptography.exceptions.InvalidTag: 如果密文无效或密钥错误
        """
        raw = base64.urlsafe_b64decode(ciphertext.encode())
        nonce, encrypted_bytes = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        return self.cipher.decrypt(nonce, encrypted_bytes, None).decode("utf-8")
