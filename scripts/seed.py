"""Seed a client, a freelancer and one open project with an accepted proposal."""
from __future__ import annotations

from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

from milestone_escrow.config import get_settings  # noqa: E402
from milestone_escrow.db import init_engine, session_scope  # noqa: E402
from milestone_escrow.models.project import TokenType  # noqa: E402
from milestone_escrow.models.user import User, UserRole  # noqa: E402
from milestone_escrow.schemas.project import MilestoneIn, ProjectCreate  # noqa: E402
from milestone_escrow.services import projects as project_service  # noqa: E402
from milestone_escrow.services import proposals as proposal_service  # noqa: E402


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    init_engine()
    with session_scope() as session:
        alice = User(
            stx_address="ST2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG",
            username="alice",
            role=UserRole.CLIENT,
            is_active=True,
        )
        bob = User(
            stx_address="ST2JHG361ZXG51QTKY2NQCVBPPRRE2KZB1HR05NNC",
            username="bob",
            role=UserRole.FREELANCER,
            is_active=True,
        )
        session.add_all([alice, bob])
        session.flush()

        project = project_service.create_project(
            session,
            ProjectCreate(
                title="Marketing site",
                description="Design and build a landing page.",
                category="design",
                token_type=TokenType.STX,
                milestones=[
                    MilestoneIn(title="Wireframes", amount=Decimal("50")),
                    MilestoneIn(title="Build", amount=Decimal("150")),
                ],
            ),
            client=alice,
            actor="seed",
        )
        proposal = proposal_service.submit(
            session, project, freelancer_id=bob.id, cover_letter="I can start Monday.", actor="seed"
        )
        proposal_service.accept(session, proposal, project, actor="seed")
        session.commit()
        print(f"Seed data inserted: project {project.id} is ready for activation.")


if __name__ == "__main__":
    main()
