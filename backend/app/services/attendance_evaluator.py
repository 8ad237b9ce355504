"""
Décision de déclenchement de la présence automatique.

Fonctions pures : aucune lecture ni écriture en base. Le seuil global est injecté
par l'appelant (settings.VIDEO_COMPLETION_THRESHOLD) pour rester testable isolément.
"""

from app.models.course_material import CourseMaterial
from app.models.video_progress import VideoProgress


def resolve_threshold(material: CourseMaterial, default_threshold: float) -> float:
    """Seuil propre au support s'il est défini (0 compris), sinon le seuil global."""
    if material.attendance_threshold is not None:
        return float(material.attendance_threshold)
    return float(default_threshold)


def should_trigger_attendance(
    progress: VideoProgress,
    material: CourseMaterial,
    default_threshold: float,
    ignore_triggered_flag: bool = False,
) -> bool:
    """
    Retourne True si ce rapport de progression doit produire une présence.

    Conditions cumulatives :
    - le support est marqué is_attendance_trigger
    - la progression n'a pas encore déclenché de présence
      (ignore_triggered_flag : réservé à la reprise après sinistre)
    - watched_percentage >= seuil résolu

    Une progression qui repasse sous le seuil après déclenchement ne change rien.
    """
    if not material.is_attendance_trigger:
        return False
    if progress.has_triggered_attendance and not ignore_triggered_flag:
        return False
    return (progress.watched_percentage or 0.0) >= resolve_threshold(material, default_threshold)
