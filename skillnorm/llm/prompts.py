# skillnorm/llm/prompts.py
import json

EXTRACT_SYSTEM = (
    "You extract professional skills from job descriptions and whether each is "
    "required or optional. Return valid JSON only."
)

EXTRACT_PROMPT = """You are an information extraction engine.
Read the following part of a job description and extract every **distinct skill** mentioned.
For each skill, determine if it is *required* (essential for the role) or *optional*
(nice to have, or something the candidate will learn on the job).

Return valid JSON only in this format:
{{
  "skills": [
    {{ "skill": "Skill Name", "required": true }},
    {{ "skill": "Skill Name", "required": false }}
  ]
}}

Job description:
\"\"\"{text}\"\"\"
"""

NORMALIZE_SYSTEM = (
    "You are a skill normalization engine. Output valid JSON only with a 'mappings' object."
)

NORMALIZE_PROMPT = """You are cleaning and unifying professional skill names.

For each skill, choose the best match from the provided "possible_matches" if it represents the same concept.
If none of the matches are correct, output the skill unchanged.

Return valid JSON only:
{{
  "mappings": {{
    "raw_skill": "Normalized Skill"
  }}
}}

Here are the tasks:
{tasks}
"""

USER_SKILLS_SYSTEM = (
    "You extract concise, distinct skill names. Output valid JSON with a 'skills' array only."
)

USER_SKILLS_PROMPT = """Extract specific professional, technical, and transferable skills from the following text.

Return ONLY valid JSON in the form:
{{
  "skills": ["Skill 1", "Skill 2", "Skill 3"]
}}

Text:
{text}
"""


def extraction_prompt(text: str) -> str:
    return EXTRACT_PROMPT.format(text=text)


def normalization_prompt(tasks: list[dict]) -> str:
    return NORMALIZE_PROMPT.format(tasks=json.dumps(tasks, indent=2, ensure_ascii=False))


def user_skills_prompt(text: str) -> str:
    return USER_SKILLS_PROMPT.format(text=text)
