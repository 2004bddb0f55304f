from certisure.core.security.crypto import EncryptionError, OpenedText, SealedText, SecurityCipher
from certisure.core.security.dependencies import get_security_cipher

__all__ = ["EncryptionError", "OpenedText", "SealedText", "SecurityCipher", "get_security_cipher"]
