"""
Taxonomie des erreurs du noyau d'identité

Chaque erreur porte un `kind` stable (préservé de bout en bout pour l'audit)
et le code HTTP avec lequel elle est présentée à l'appelant.
Les rejets biométriques attendus (qualité, seuil...) ne sont PAS des
exceptions : ils sont retournés comme décisions (voir ReasonCode).
"""
from fastapi import status


class BioVaultError(Exception):
    """Erreur de base"""
    kind = "Error"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__ or self.kind
        super().__init__(self.message)


# --- Erreurs d'entrée (faute de l'appelant) ---

class InvalidInput(BioVaultError):
    """Entrée invalide"""
    kind = "InvalidInput"
    status_code = 422


class VersionMismatch(BioVaultError):
    """Versions de modèle d'extraction incompatibles"""
    kind = "VersionMismatch"
    status_code = status.HTTP_409_CONFLICT


class DegenerateEmbedding(BioVaultError):
    """Vecteur de caractéristiques de norme nulle"""
    kind = "DegenerateEmbedding"
    status_code = 422


class UnknownSubject(BioVaultError):
    """Sujet inconnu"""
    kind = "UnknownSubject"
    status_code = status.HTTP_404_NOT_FOUND


class SubjectInactive(BioVaultError):
    """Compte du sujet inactif"""
    kind = "SubjectInactive"
    status_code = status.HTTP_403_FORBIDDEN


class ResourceNotFound(BioVaultError):
    """Ressource (séance ou service) introuvable"""
    kind = "ResourceNotFound"
    status_code = status.HTTP_404_NOT_FOUND


class ResourceInactive(BioVaultError):
    """Ressource inactive"""
    kind = "ResourceInactive"
    status_code = status.HTTP_400_BAD_REQUEST


# --- Signaux de l'extracteur (convertis en décisions par le moteur) ---

class NoSubjectDetected(BioVaultError):
    """Aucun visage détecté dans l'image"""
    kind = "NoSubjectDetected"


class MultipleSubjectsDetected(BioVaultError):
    """Plusieurs visages détectés dans l'image"""
    kind = "MultipleSubjectsDetected"


# --- Erreurs de jeton ---

class TokenError(BioVaultError):
    """Erreur de jeton d'identité"""
    kind = "TokenError"


class TokenNotFound(TokenError):
    """Code inconnu ou remplacé par un jeton plus récent"""
    kind = "TokenNotFound"
    status_code = status.HTTP_404_NOT_FOUND


class TokenExpired(TokenError):
    """Jeton expiré"""
    kind = "TokenExpired"
    status_code = status.HTTP_410_GONE


class TokenExhausted(TokenError):
    """Jeton déjà utilisé"""
    kind = "TokenExhausted"
    status_code = status.HTTP_409_CONFLICT


# --- Conflits d'état de présence ---

class StateConflict(BioVaultError):
    """Conflit d'état de présence"""
    kind = "StateConflict"
    status_code = status.HTTP_409_CONFLICT


class AlreadyCheckedIn(StateConflict):
    """Le sujet est déjà à l'intérieur. Veuillez d'abord sortir."""
    kind = "AlreadyCheckedIn"


class NotCheckedIn(StateConflict):
    """Aucune entrée ouverte pour ce sujet"""
    kind = "NotCheckedIn"


class CapacityExceeded(StateConflict):
    """Capacité maximale atteinte"""
    kind = "CapacityExceeded"


# --- Fautes système (journalisées, réessayables) ---

class SystemFault(BioVaultError):
    """Erreur interne"""
    kind = "SystemFault"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = True


class DecryptionError(SystemFault):
    """Impossible de déchiffrer le gabarit (clé incorrecte ou données corrompues)"""
    kind = "DecryptionError"


class NoSuchTemplate(SystemFault):
    """Gabarit biométrique introuvable"""
    kind = "NoSuchTemplate"
    status_code = status.HTTP_404_NOT_FOUND
    retryable = False
