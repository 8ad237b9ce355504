# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.
# Sans cet import, les FK comme course_materials.course_id → courses.id échouent
# avec NoReferencedTableError si course.py n'est pas chargé avant course_material.py.

from app.models.user import User  # noqa: F401  (doit précéder course)
from app.models.course import Course, CourseStudent  # noqa: F401
from app.models.course_material import CourseMaterial  # noqa: F401
from app.models.video_progress import VideoProgress  # noqa: F401
from app.models.attendance import Attendance  # noqa: F401
