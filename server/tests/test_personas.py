from sqlalchemy import select

from adjudicator.database.models import Judge
from adjudicator.engine.personas import PERSONAS, build_system_prompt, seed_judges


def test_system_prompt_carries_scoring_rules():
    prompt = build_system_prompt(PERSONAS[0])
    assert prompt.startswith("You are The Empiricist")
    assert "winner gets 75-95" in prompt
    assert "the quality of their evidence" in prompt


async def test_seeding_is_idempotent(session_factory):
    async with session_factory() as session:
        assert await seed_judges(session) == len(PERSONAS)
    async with session_factory() as session:
        assert await seed_judges(session) == 0
        names = (await session.execute(select(Judge.name))).scalars().all()
    assert sorted(names) == sorted(persona["name"] for persona in PERSONAS)
