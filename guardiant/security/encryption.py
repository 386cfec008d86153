import base64
import hashlib
import json

from cryptography.fernet import Fernet
from sqlalchemy.types import Text, TypeDecorator

from guardiant.config import DETAILS_SECRET


# ---------------- KEY GENERATOR ----------------

def generate_key(password: str):

    # Always generate valid 32-byte Fernet key
    digest = hashlib.sha256(password.encode()).digest()

    return base64.urlsafe_b64encode(digest)


_cipher = Fernet(generate_key(DETAILS_SECRET))


# ---------------- ENCRYPT / DECRYPT ----------------

def encrypt_data(data: bytes, cipher: Fernet = None) -> bytes:
    return (cipher or _cipher).encrypt(data)


def decrypt_data(data: bytes, cipher: Fernet = None) -> bytes:
    return (cipher or _cipher).decrypt(data)


# ---------------- COLUMN TYPE ----------------

class EncryptedJSON(TypeDecorator):
    """
    JSON document stored as a Fernet token.

    Used for alert details, which hold trigger metadata such as the
    device coordinates at the time of the alert.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):

        if value is None:
            return None

        raw = json.dumps(value, default=str).encode()

        return encrypt_data(raw).decode()

    def process_result_value(self, value, dialect):

        if value is None:
            return None

        return json.loads(decrypt_data(value.encode()))
