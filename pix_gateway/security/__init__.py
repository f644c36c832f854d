from pix_gateway.security.cipher import CipherError, CredentialCipher, DecryptionError, InvalidKeyError

__all__ = ["CipherError", "CredentialCipher", "DecryptionError", "InvalidKeyError"]
