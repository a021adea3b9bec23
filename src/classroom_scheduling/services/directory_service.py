from __future__ import annotations

import sqlite3
from typing import Iterable, Optional

from classroom_scheduling.data import Database
from classroom_scheduling.data.records import fetch_class, fetch_curriculum, fetch_user, user_from_row
from classroom_scheduling.errors import AuthorizationError, NotFoundError, ValidationError
from classroom_scheduling.logging import get_logger
from classroom_scheduling.models import (
    STUDENT,
    TEACHER,
    TUTOR,
    Actor,
    ClassEntity,
    User,
)
from classroom_scheduling.models.scheduling import ROLES
from classroom_scheduling.permissions import ADMIN_ROLES, require_admin, require_manage_class

logger = get_logger(__name__)

LESSON_AUTHOR_ROLES = ADMIN_ROLES | {TEACHER}


class DuplicateUserError(ValidationError):
    """Raised when a user with the same email already exists."""


class StudentAlreadyEnrolledError(ValidationError):
    """Raised when a student is already on the class roster."""


class DirectoryService:
    """Users, curriculums, lessons and class rosters the scheduling core resolves against."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def create_user(
        self,
        email: str,
        role: str,
        *,
        first_name: str = "",
        last_name: str = "",
    ) -> int:
        cleaned_role = role.strip().lower()
        if cleaned_role not in ROLES:
            raise ValidationError(f"Unknown role: {role!r}")

        with self._database.connect() as connection:
            try:
                cursor = connection.execute(
                    """
                    INSERT INTO users (email, first_name, last_name, role)
                    VALUES (?, ?, ?, ?)
                    """,
                    (email.strip().lower(), first_name.strip(), last_name.strip(), cleaned_role),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateUserError("A user with this email already exists.") from exc
            return int(cursor.lastrowid)

    def get_user(self, user_id: int) -> User:
        with self._database.connect() as connection:
            return fetch_user(connection, user_id)

    def list_users(self, role: Optional[str] = None) -> list[User]:
        query = "SELECT id, email, first_name, last_name, role, is_active FROM users"
        params: tuple = ()
        if role is not None:
            query += " WHERE role = ?"
            params = (role,)
        query += " ORDER BY LOWER(last_name), LOWER(first_name), id"

        with self._database.connect() as connection:
            rows = connection.execute(query, params).fetchall()
        return [user_from_row(row) for row in rows]

    def create_curriculum(
        self,
        actor: Actor,
        title: str,
        *,
        code: Optional[str] = None,
        color: Optional[str] = None,
    ) -> int:
        require_admin(actor, "create curriculums")
        with self._database.connect() as connection:
            cursor = connection.execute(
                "INSERT INTO curriculums (title, code, color) VALUES (?, ?, ?)",
                (title.strip(), code.strip() if code else None, color),
            )
            return int(cursor.lastrowid)

    def create_lesson(
        self,
        actor: Actor,
        curriculum_id: int,
        title: str,
        *,
        description: Optional[str] = None,
        order: Optional[int] = None,
    ) -> int:
        if actor.role not in LESSON_AUTHOR_ROLES:
            raise AuthorizationError("Only administrators or teachers can create lessons.")

        with self._database.connect() as connection:
            fetch_curriculum(connection, curriculum_id)
            if order is None:
                order = int(
                    connection.execute(
                        "SELECT COALESCE(MAX(lesson_order), 0) + 1 FROM lessons WHERE curriculum_id = ?",
                        (curriculum_id,),
                    ).fetchone()[0]
                )
            cursor = connection.execute(
                """
                INSERT INTO lessons (curriculum_id, title, description, lesson_order)
                VALUES (?, ?, ?, ?)
                """,
                (curriculum_id, title.strip(), description, order),
            )
            return int(cursor.lastrowid)

    def create_class(
        self,
        actor: Actor,
        name: str,
        *,
        curriculum_id: int,
        teacher_id: int,
        tutor_id: Optional[int] = None,
        students: Iterable[int] = (),
    ) -> int:
        require_admin(actor, "create classes")
        student_ids = sorted({int(student_id) for student_id in students})

        with self._database.connect() as connection:
            fetch_curriculum(connection, curriculum_id)
            self._require_role(connection, teacher_id, TEACHER, "Invalid teacher")
            if tutor_id is not None:
                self._require_role(connection, tutor_id, TUTOR, "Invalid tutor")
            for student_id in student_ids:
                self._require_role(connection, student_id, STUDENT, "One or more invalid student IDs")

            cursor = connection.execute(
                """
                INSERT INTO classes (name, curriculum_id, teacher_id, tutor_id)
                VALUES (?, ?, ?, ?)
                """,
                (name.strip(), curriculum_id, teacher_id, tutor_id),
            )
            class_id = int(cursor.lastrowid)
            connection.executemany(
                "INSERT INTO class_students (class_id, student_id) VALUES (?, ?)",
                [(class_id, student_id) for student_id in student_ids],
            )

        logger.info("class_created", class_id=class_id, teacher_id=teacher_id, students=len(student_ids))
        return class_id

    def get_class(self, class_id: int) -> ClassEntity:
        with self._database.connect() as connection:
            return fetch_class(connection, class_id)

    def set_class_active(self, actor: Actor, class_id: int, is_active: bool) -> None:
        require_admin(actor, "update classes")
        with self._database.connect() as connection:
            fetch_class(connection, class_id)
            connection.execute(
                "UPDATE classes SET is_active = ? WHERE id = ?",
                (int(is_active), class_id),
            )

    def add_student(self, actor: Actor, class_id: int, student_id: int) -> None:
        with self._database.connect() as connection:
            class_entity = fetch_class(connection, class_id)
            require_manage_class(actor, class_entity, "add students")
            self._require_role(connection, student_id, STUDENT, "Invalid student")
            if class_entity.has_student(student_id):
                raise StudentAlreadyEnrolledError("Student already enrolled in this class")
            connection.execute(
                "INSERT INTO class_students (class_id, student_id) VALUES (?, ?)",
                (class_id, student_id),
            )

    def remove_student(self, actor: Actor, class_id: int, student_id: int) -> None:
        with self._database.connect() as connection:
            class_entity = fetch_class(connection, class_id)
            require_manage_class(actor, class_entity, "remove students")
            connection.execute(
                "DELETE FROM class_students WHERE class_id = ? AND student_id = ?",
                (class_id, student_id),
            )

    @staticmethod
    def _require_role(connection: sqlite3.Connection, user_id: int, role: str, message: str) -> User:
        try:
            user = fetch_user(connection, user_id)
        except NotFoundError as exc:
            raise ValidationError(message) from exc
        if user.role != role:
            raise ValidationError(message)
        return user

