"""
Erreurs métier levées par les services.

Toutes héritent de ValueError : les routers les traduisent en HTTPException
(404 / 400 / 409) et le code appelant qui attrape ValueError continue de fonctionner.
Une présence déjà existante n'est pas une erreur : voir attendance_service.OUTCOME_ALREADY_PRESENT.
"""


class NotFoundError(ValueError):
    """Étudiant, cours, support ou présence introuvable."""


class InvalidInputError(ValueError):
    """Donnée hors domaine (support non vidéo, rôle incorrect, déclencheur désactivé...)."""


class ConflictError(ValueError):
    """Saisie manuelle en double pour un même (étudiant, cours, date)."""
