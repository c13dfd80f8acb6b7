"""
Chiffrement AES-256-GCM des gabarits biométriques
Nonce aléatoire de 96 bits par chiffrement, stocké à côté du texte chiffré.
Les données associées lient le gabarit à son propriétaire et à la version du modèle.
"""
from dataclasses import dataclass
from typing import Optional
import base64
import binascii
import logging
import os

import numpy as np
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.exceptions import DecryptionError, InvalidInput

logger = logging.getLogger(__name__)

SCHEME = "AES-256-GCM"
NONCE_SIZE = 12
EMBEDDING_DTYPE = np.dtype("<f8")


@dataclass(frozen=True)
class EncryptedTemplate:
    """Texte chiffré + paramètres nécessaires au déchiffrement"""
    ciphertext: bytes
    nonce: bytes
    scheme: str = SCHEME


def template_aad(owner_id, model_version: str) -> bytes:
    """Données associées authentifiées (non chiffrées)"""
    return f"{owner_id}|{model_version}".encode()


class TemplateCodec:
    """
    Service de chiffrement/déchiffrement des vecteurs biométriques
    La clé est lue une seule fois depuis la configuration, jamais depuis une requête.
    """

    def __init__(self, encryption_key: Optional[str] = None):
        """
        Args:
            encryption_key: Clé base64 urlsafe de 32 octets, ou phrase secrète
                dérivée par PBKDF2. Si None, clé de développement (NON SÉCURISÉ).
        """
        if not encryption_key:
            logger.warning("Aucune clé de chiffrement fournie - utilisation d'une clé par défaut (NON SÉCURISÉ)")
            encryption_key = "default-encryption-key-change-this"
        self._aead = AESGCM(self._key_bytes(encryption_key))

    @staticmethod
    def _key_bytes(key: str) -> bytes:
        """Clé brute si c'est déjà 32 octets en base64, sinon dérivation PBKDF2"""
        try:
            raw = base64.urlsafe_b64decode(key.encode())
            if len(raw) == 32:
                return raw
        except (binascii.Error, ValueError):
            pass

        # Sel fixe: la clé vient de la configuration, pas d'un mot de passe utilisateur
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b'biovault_template_salt_v1',
            iterations=100000,
        )
        return kdf.derive(key.encode())

    @staticmethod
    def serialize(embedding) -> bytes:
        """Vecteur -> octets float64 little-endian"""
        vector = np.asarray(embedding, dtype=np.float64)
        if vector.ndim != 1 or vector.size == 0:
            raise InvalidInput(f"Vecteur de forme invalide: {vector.shape}")
        return vector.astype(EMBEDDING_DTYPE).tobytes()

    @staticmethod
    def deserialize(data: bytes, dimension: Optional[int] = None) -> np.ndarray:
        """Octets -> vecteur, avec contrôle de la longueur"""
        if len(data) == 0 or len(data) % EMBEDDING_DTYPE.itemsize != 0:
            raise DecryptionError("Gabarit déchiffré de longueur invalide")
        vector = np.frombuffer(data, dtype=EMBEDDING_DTYPE).astype(np.float64)
        if dimension is not None and vector.size != dimension:
            raise DecryptionError(
                f"Dimension du gabarit ({vector.size}) différente de celle attendue ({dimension})"
            )
        return vector

    def encode(self, embedding, associated_data: bytes = b"") -> EncryptedTemplate:
        """
        Chiffrer un vecteur

        Returns:
            EncryptedTemplate (texte chiffré avec tag GCM, nonce)
        """
        plaintext = self.serialize(embedding)
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext, associated_data or None)
        logger.debug(f"Gabarit chiffré: {len(plaintext)} bytes -> {len(ciphertext)} bytes")
        return EncryptedTemplate(ciphertext=ciphertext, nonce=nonce)

    def decode(
        self,
        encrypted: EncryptedTemplate,
        associated_data: bytes = b"",
        dimension: Optional[int] = None
    ) -> np.ndarray:
        """
        Déchiffrer un vecteur

        Raises:
            DecryptionError: clé incorrecte, données corrompues ou schéma inconnu
        """
        if encrypted.scheme != SCHEME:
            raise DecryptionError(f"Schéma de chiffrement non supporté: {encrypted.scheme}")
        if len(encrypted.nonce) != NONCE_SIZE:
            raise DecryptionError("Nonce de taille invalide")

        try:
            plaintext = self._aead.decrypt(encrypted.nonce, encrypted.ciphertext, associated_data or None)
        except InvalidTag:
            logger.error("Échec du déchiffrement: tag invalide (clé incorrecte ou données corrompues)")
            raise DecryptionError()
        return self.deserialize(plaintext, dimension)

    @staticmethod
    def generate_key() -> str:
        """
        Génère une nouvelle clé de chiffrement sécurisée (base64 urlsafe, 32 octets)
        """
        return base64.urlsafe_b64encode(os.urandom(32)).decode()
