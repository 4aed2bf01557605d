from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import LargeBinary
from sqlalchemy.types import TypeDecorator

from loandesk.core.crypto import get_fernet


class EncryptedString(TypeDecorator):
    """Fernet-encrypted text stored as bytes.

    Values are stripped before encryption so that masked read-backs and
    equality checks in services see the same string the applicant meant.
    Ciphertext is not searchable; look rows up by id, never by value.
    """

    impl = LargeBinary
    cache_ok = True

    def __init__(self, *, secret: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self._secret = secret

    @property
    def fernet(self) -> Fernet:
        return get_fernet(secret=self._secret)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        return self.fernet.encrypt(text.encode("utf-8"))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return self.fernet.decrypt(bytes(value)).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Stored value could not be decrypted with the configured key") from exc


__all__ = ["EncryptedString"]
