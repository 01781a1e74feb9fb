"""
TOTP-based multi-factor authentication (RFC 6238).

Compatible with Google Authenticator, Authy and other TOTP apps. Provides
secret generation, QR enrollment payloads, code verification with one
window of clock drift, and one-time backup codes stored only as digests.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import secrets
from io import BytesIO
from typing import List, Optional

import pyotp
import qrcode

from app.config import settings

# Accept the previous and next 30s step as well as the current one
VALID_WINDOW = 1


class MfaService:
    """Stateless TOTP and backup-code helper."""

    def __init__(self, issuer_name: Optional[str] = None, backup_code_count: Optional[int] = None) -> None:
        self.issuer_name = issuer_name or settings.MFA_ISSUER_NAME
        self.backup_code_count = backup_code_count or settings.MFA_BACKUP_CODE_COUNT

    def generate_secret(self) -> str:
        return pyotp.random_base32()

    def provisioning_uri(self, email: str, secret: str) -> str:
        return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=self.issuer_name)

    def generate_qr_code(self, email: str, secret: str) -> str:
        """Render the provisioning URI as a PNG data URL."""
        qr = qrcode.QRCode(version=1, box_size=10, border=5)
        qr.add_data(self.provisioning_uri(email, secret))
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = BytesIO()
        img.save(buffer, format="PNG")
        qr_base64 = base64.b64encode(buffer.getvalue()).decode()
        return f"data:image/png;base64,{qr_base64}"

    def verify(self, code: str, secret: str) -> bool:
        """Check a TOTP code. Never raises; malformed input is simply invalid."""
        if not code or not secret:
            return False
        code = str(code).strip().replace(" ", "")
        if not code.isdigit():
            return False
        try:
            return pyotp.TOTP(secret).verify(code, valid_window=VALID_WINDOW)
        except (binascii.Error, ValueError, TypeError):
            return False

    def generate_backup_codes(self, count: Optional[int] = None) -> List[str]:
        codes = []
        for _ in range(count or self.backup_code_count):
            code = secrets.token_hex(4).upper()
            codes.append(f"{code[:4]}-{code[4:]}")
        return codes

    @staticmethod
    def hash_backup_code(code: str) -> str:
        return hashlib.sha256(code.strip().upper().encode()).hexdigest()


mfa_service = MfaService()
