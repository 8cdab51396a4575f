"""
Tests for linking user profiles to canonical skills.
"""
import json

from sqlalchemy import select

from conftest import FakeLLMClient
from skillnorm.db.models import Skill, UserProfile, UserSkill
from skillnorm.pipeline.user_skills import link_user_skills, profile_text, run_user_skills


def test_profile_text_skips_blank_fields():
    p = UserProfile(user_id="u1", technical_skills="Python", soft_skills="  ", personal_projects="Built a bot")
    assert profile_text(p) == "Python\nBuilt a bot"


def test_link_user_skills_matches_and_creates(session):
    session.add(Skill(skill_name="Python", canonical_key="python", total_references=7))
    session.commit()
    corpus = ["python"]

    created, links = link_user_skills(session, "u1", ["Python ", "Docker", "docker", ""], corpus)
    session.commit()

    assert (created, links) == (1, 2)
    assert corpus == ["python", "docker"]
    skills = {sk.canonical_key: sk for sk in session.execute(select(Skill)).scalars()}
    assert skills["docker"].total_references == 0
    assert skills["python"].total_references == 7
    assert len(session.execute(select(UserSkill)).all()) == 2

    # same answer again links nothing new
    assert link_user_skills(session, "u1", ["python", "Docker"], corpus) == (0, 0)


async def test_run_user_skills(session_factory):
    with session_factory() as s:
        s.add_all([
            UserProfile(user_id="u1", technical_skills="Python, SQL"),
            UserProfile(user_id="u2"),
            UserProfile(user_id="u3", soft_skills="Leadership"),
        ])
        s.commit()

    def reply(system, user):
        skills = [name for name in ("Python", "SQL", "Leadership") if name in user]
        return json.dumps({"skills": skills})

    llm = FakeLLMClient(handler=reply)
    summary = await run_user_skills(session_factory, llm, batch_size=2)

    assert summary.users == 3
    assert summary.skipped == 1
    assert summary.linked_users == 2
    assert summary.new_skills == 3
    assert summary.links_created == 3
    assert len(llm.calls) == 2
