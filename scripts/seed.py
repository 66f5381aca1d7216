#!/usr/bin/env python3
"""
Seed script: creates demo users with API keys, a training master with its
first revision and assessment, and governance configuration v1.
Run after migrations: python scripts/seed.py
"""

import asyncio
import os
import sys
from datetime import datetime, timezone

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from ctms.auth.credentials import hash_password
from ctms.auth.identity import Actor
from ctms.auth.middleware import hash_api_key
from ctms.database import async_session_maker
from ctms.models import User
from ctms.schemas.assessment import CreateAssessmentRequest, QuestionIn
from ctms.schemas.governance import GovernanceUpdateRequest
from ctms.schemas.training import CreateTrainingMasterRequest, CreateTrainingRequest
from ctms.services.container import build_services
from ctms.storage.repositories import get_active_governance, get_master_by_code

DEMO_PASSWORD = "ChangeMe123!"
DEMO_USERS = [
    # (email, name, department, role, api key)
    ("admin@example.com", "Alex Admin", "Quality", "Administrator", "sk_demo_ctms_admin"),
    ("qa@example.com", "Quinn QA", "Quality", "QA", "sk_demo_ctms_qa"),
    ("employee@example.com", "Eve Employee", "Production", "Employee", "sk_demo_ctms_employee"),
]


async def seed():
    services = build_services(async_session_maker)
    now = datetime.now(timezone.utc)

    async with async_session_maker() as session:
        users = {}
        for email, name, department, role, api_key in DEMO_USERS:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user:
                print(f"User {email} already exists, using existing.")
            else:
                user = User(
                    email=email,
                    name=name,
                    department=department,
                    role=role,
                    password_hash=hash_password(DEMO_PASSWORD),
                    api_key_hash=hash_api_key(api_key),
                    created_at=now,
                )
                session.add(user)
                await session.commit()
            users[role] = user

        admin = Actor(user_id=users["Administrator"].id, role="Administrator")

        master = await get_master_by_code(session, "SOP-QA-001")
        if master:
            print("Training master SOP-QA-001 already exists.")
        else:
            master = await services.catalogue.create_master(
                session,
                admin,
                CreateTrainingMasterRequest(
                    training_code="SOP-QA-001",
                    title="Good Documentation Practice",
                    training_type="Document-driven",
                    validity_period=1,
                    validity_unit="years",
                ),
            )
            created = await services.catalogue.create_training(
                session,
                admin,
                CreateTrainingRequest(
                    code="SOP-QA-001",
                    revision="1.0",
                    title="Good Documentation Practice",
                    master_id=master.id,
                    document_url="/documents/sop-qa-001-r1.pdf",
                ),
            )
            await services.assessments.create_config(
                session,
                admin,
                CreateAssessmentRequest(
                    training_id=created.training.id,
                    pass_percentage=80,
                    max_attempts=3,
                    questions=[
                        QuestionIn(
                            question_text="How must an error on a GMP record be corrected?",
                            options=[
                                "Overwrite it",
                                "Single line, initial and date",
                                "Use correction fluid",
                                "Tear out the page",
                            ],
                            correct_answer="Single line, initial and date",
                        ),
                        QuestionIn(
                            question_text="When should entries be recorded?",
                            options=[
                                "At the end of the shift",
                                "Contemporaneously",
                                "Weekly",
                                "When convenient",
                            ],
                            correct_answer="Contemporaneously",
                        ),
                    ],
                ),
            )
            print(f"Created training SOP-QA-001 rev 1.0 ({created.training.id}) with assessment.")

        if await get_active_governance(session):
            print("Governance configuration already present.")
        else:
            config = await services.governance.update(
                session,
                admin,
                GovernanceUpdateRequest(
                    name="Initial governance",
                    description="Seeded defaults",
                    config={"ai_question_generation": False, "pass_threshold": 35},
                    signature_password=DEMO_PASSWORD,
                    signature_reason="Initial system configuration",
                ),
            )
            print(f"Governance configuration v{config.version} active.")

    print("\n--- Demo API keys (use as Bearer token) ---")
    for email, _, _, role, api_key in DEMO_USERS:
        print(f"{role:<14} {email:<24} {api_key}")
    print(f"Signature password for all demo users: {DEMO_PASSWORD}")


if __name__ == "__main__":
    asyncio.run(seed())
