"""Utility script to create an administrator and print an access token."""

from __future__ import annotations

import argparse
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from app.domain.entities import User
from app.domain.entities.user import ADMIN_ROLES, ROLE_ADMIN
from app.infrastructure.database import SessionLocal, initialize_database
from app.infrastructure.repositories import UserRepository
from app.infrastructure.security import create_user_access_token


def parse_args() -> argparse.Namespace:
    """Parse command line arguments for user creation."""

    parser = argparse.ArgumentParser(
        description="Create an administrator for the marketplace notification service.",
    )
    parser.add_argument(
        "--name",
        default="Administrador",
        help="Nombre completo del usuario (por defecto: Administrador)",
    )
    parser.add_argument(
        "--email",
        default="admin@example.com",
        help="Correo electrónico del usuario (por defecto: admin@example.com)",
    )
    parser.add_argument(
        "--role",
        default=ROLE_ADMIN,
        choices=sorted(ADMIN_ROLES),
        help="Rol administrativo del usuario (por defecto: admin)",
    )
    parser.add_argument(
        "--token-days",
        type=int,
        default=30,
        help="Días de validez del token de acceso generado (por defecto: 30)",
    )
    return parser.parse_args()


def main() -> None:
    """Create the administrator, or reuse it when the email already exists."""

    args = parse_args()
    initialize_database()

    session = SessionLocal()
    try:
        repository = UserRepository(session)
        user = repository.get_by_email(args.email)
        if user is None:
            user = repository.create(
                User(id=None, name=args.name, email=args.email, role=args.role)
            )
    except SQLAlchemyError as exc:
        session.rollback()
        raise SystemExit(f"Error al guardar el usuario en la base de datos: {exc}") from exc
    finally:
        session.close()

    token = create_user_access_token(user.id, timedelta(days=args.token_days))
    print(
        "Usuario administrador disponible:\n"
        f"  ID: {user.id}\n"
        f"  Nombre: {user.name}\n"
        f"  Email: {user.email}\n"
        f"  Rol: {user.role}\n"
        f"  Token: {token}"
    )


if __name__ == "__main__":
    main()
