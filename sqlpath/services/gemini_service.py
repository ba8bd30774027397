"""
sqlpath/services/gemini_service.py
Generative content service (Google Gemini)

Everything the platform asks the model for: practice and course
challenges, course outlines, module refinement, grading, tutor replies,
business briefs and bundle metadata.

All calls go through with_retry (quota errors back off exponentially).
JSON responses are parsed here and challenge bodies validated through the
challenge union before they leave this module.

The client is configured lazily so the app can start without an API key;
calls then fail with ContentServiceError (HTTP 503).
"""
import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

import google.generativeai as genai

from sqlpath.constants import ChallengeDefinition, PERSONALIZED_INDUSTRY, MCQ_CORRECT_POINTS
from sqlpath.exceptions import ContentServiceError, ContentQuotaError, ChallengePayloadError
from sqlpath.schemas.challenge import (
    Challenge,
    McqChallenge,
    SqlChallenge,
    ValidationVerdict,
    parse_challenge,
    challenge_to_dict,
)
from sqlpath.services.retry import with_retry, is_quota_error

logger = logging.getLogger(__name__)

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

_configured = False


def _get_model(system_instruction: Optional[str] = None) -> genai.GenerativeModel:
    """Configure the SDK on first use and build a model handle."""
    global _configured

    if not _configured:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            logger.error("GEMINI_API_KEY environment variable not set")
            raise ContentServiceError("AI service is not configured")
        genai.configure(api_key=api_key)
        _configured = True
        logger.info("Gemini API configured successfully")

    if system_instruction:
        return genai.GenerativeModel(model_name=GEMINI_MODEL, system_instruction=system_instruction)
    return genai.GenerativeModel(GEMINI_MODEL)


async def _generate_text(prompt: str, json_mode: bool = True) -> str:
    """
    One generation call with retry.

    Raises:
        ContentQuotaError: quota errors persisted through every attempt
        ContentServiceError: any other failure or an empty response
    """
    model = _get_model()
    generation_config = None
    if json_mode:
        generation_config = genai.types.GenerationConfig(response_mime_type="application/json")

    async def call():
        response = await model.generate_content_async(prompt, generation_config=generation_config)
        return response.text

    result = await with_retry(call)
    if not result.ok:
        if is_quota_error(result.error):
            raise ContentQuotaError(result.attempts)
        raise ContentServiceError(f"AI service error: {result.error}")

    if not result.value:
        raise ContentServiceError("Empty response from AI service")
    return result.value


async def _generate_json(prompt: str) -> Dict[str, Any]:
    text = await _generate_text(prompt, json_mode=True)
    try:
        data = json.loads(text.strip())
    except ValueError as e:
        raise ContentServiceError(f"AI service returned invalid JSON: {e}")
    if not isinstance(data, dict):
        raise ContentServiceError("AI service returned a non-object JSON document")
    return data


# ================= PROMPT HELPERS =================

def effective_context(industry: Optional[str], custom_context: Optional[str] = None) -> str:
    """A personalised track is framed by the learner's own context."""
    if industry == PERSONALIZED_INDUSTRY and custom_context:
        return custom_context
    return industry or ""


def describe_schema(challenge: Challenge) -> str:
    blocks = []
    for table in challenge.tables:
        header = " | ".join(table.columns)
        rows = "\n".join(" | ".join(row) for row in table.data)
        blocks.append(f"Table: {table.table_name}\n{header}\n{rows}")
    return "\n\n".join(blocks)


CHALLENGE_JSON_SHAPE = """{
  "title": "Short business title",
  "type": "%(type)s",
  "scenario": "1-2 sentences context",
  "task": "Specific instruction on what to query",
  "schema": [
    {
      "tableName": "users",
      "columns": ["id", "name", "email"],
      "data": [["1", "Alice", "alice@example.com"]]
    }
  ],
  "requiredConcepts": ["SQL keywords expected"],
  "topic": "%(topic)s"%(extra)s
}"""

TYPE_EXTRA_FIELDS = {
    "mcq": ',\n  "options": ["A", "B", "C", "D"],\n  "correctAnswer": "A"',
    "debug": ',\n  "initialCode": "SELECT ... (broken query)"',
    "completion": ',\n  "initialCode": "SELECT ... -- TODO"',
}

TYPE_REQUIREMENTS = {
    "mcq": """Requirements for MCQ:
1. Create a multiple choice question testing the Skill Focus.
2. Provide 4 realistic options.
3. correctAnswer must be exactly one of the options.
4. A schema is optional and only for context.""",
    "debug": """Requirements for Debugging Task:
1. Provide a scenario and a specific task.
2. 'initialCode' MUST contain a broken SQL query related to the task.
3. Use syntax or logic errors common for beginners.
4. Provide schema and data to test the fixed query.""",
    "completion": """Requirements for Code Completion:
1. Provide a scenario and a task.
2. 'initialCode' is a partial SQL query with -- TODO markers for the missing parts.
3. Keep the query properly indented over several lines.
4. Provide schema and data.""",
    "sql": """Requirements for Standard SQL Task:
1. Provide scenario, task, schema, and data.
2. Task must be solvable with standard SQL.""",
}


def _challenge_shape(challenge_type: str, topic: str) -> str:
    return CHALLENGE_JSON_SHAPE % {
        "type": challenge_type,
        "topic": topic,
        "extra": TYPE_EXTRA_FIELDS.get(challenge_type, ""),
    }


def unavailable_challenge(definition: ChallengeDefinition, difficulty: str) -> SqlChallenge:
    """Placeholder shown when a practice challenge cannot be generated."""
    return SqlChallenge(
        id=definition.id,
        title=f"Error Loading Challenge {definition.id}",
        topic=definition.topic,
        scenario="System is temporarily unavailable due to high traffic.",
        task="Please retry later.",
        difficulty=difficulty,
    )


# ================= CHALLENGE GENERATION =================

async def generate_challenge(
    definition: ChallengeDefinition,
    industry: str,
    difficulty: str,
    custom_context: Optional[str] = None
) -> Challenge:
    """
    Practice-track challenge for one curriculum slot.

    Never raises: failures return the 'temporarily unavailable' placeholder.
    """
    context = effective_context(industry, custom_context)
    prompt = f"""Create a SQL assessment challenge.
Context:
- Industry/Domain: {context}
- Difficulty: {difficulty}
- Technical Topic: {definition.topic}
- Learning Objective: {definition.description}

Requirements:
1. Define a realistic business scenario relevant to the context "{context}".
2. Define a task that requires using the Technical Topic.
3. If the Technical Topic does NOT mention "JOIN", the task MUST be solvable using a SINGLE table.
4. Define a minimal database schema (1-2 tables) with columns relevant to the task.
5. Provide 5-8 rows of REALISTIC sample data for each table.
6. DO NOT provide the solution query.

Output JSON Schema:
{_challenge_shape("sql", definition.topic)}"""

    try:
        data = await _generate_json(prompt)
        data.update({"id": definition.id, "difficulty": difficulty, "topic": definition.topic})
        return parse_challenge(data)
    except (ContentServiceError, ChallengePayloadError) as e:
        logger.error(f"Failed to generate challenge {definition.id} ({definition.topic}): {e.message}")
        return unavailable_challenge(definition, difficulty)


async def generate_admin_challenge(topic: str, industry: str, difficulty: str, context: str) -> Challenge:
    """Standalone challenge for the admin library. Raises on failure."""
    prompt = f"""Act as a Senior Data Science Lead and Technical Content Architect.
Create a detailed SQL assessment challenge.

Input Parameters:
- Target Industry: {industry}
- Role Context: {context}
- Key Skill Focus: {topic}
- Difficulty Level: {difficulty}

STRICT CONTENT RULES:
1. The challenge MUST test the Key Skill Focus ({topic}). Do NOT introduce unrelated concepts.
2. The scenario must replicate a real-world business problem faced by data teams.
3. Generate a schema (1-3 tables) with realistic column names.
4. Provide 5-10 rows of realistic sample data per table.
5. Ensure the task is clear and solvable with standard SQL.

Output JSON Schema:
{_challenge_shape("sql", topic)}"""

    data = await _generate_json(prompt)
    data.setdefault("id", int(time.time() * 1000))
    data["difficulty"] = difficulty
    data.setdefault("topic", topic)
    return parse_challenge(data)


async def generate_course_challenge(
    item: Dict[str, Any],
    industry: str,
    context: str,
    challenge_type: str = "sql"
) -> Challenge:
    """
    Challenge for one course module outline item
    (title, skill_focus, task_description, difficulty). Raises on failure.
    """
    skill_focus = item.get("skill_focus") or item.get("title") or ""
    prompt = f"""Context:
- Domain: {industry}
- Course Context: {context}
- Module Title: {item.get("title")}
- Skill Focus: {skill_focus}
- Task Description: {item.get("task_description")}
- Difficulty: {item.get("difficulty")}

Generate a {challenge_type.upper()} Challenge.

{TYPE_REQUIREMENTS.get(challenge_type, TYPE_REQUIREMENTS["sql"])}

Output JSON Schema:
{_challenge_shape(challenge_type, skill_focus)}"""

    data = await _generate_json(prompt)
    data.setdefault("id", int(time.time() * 1000))
    if item.get("difficulty"):
        data["difficulty"] = item["difficulty"]
    data["type"] = challenge_type
    return parse_challenge(data)


async def refine_challenge_content(challenge: Challenge, instruction: str) -> Challenge:
    """Apply an admin instruction to a challenge. id and type are preserved."""
    current = challenge_to_dict(challenge)
    prompt = f"""Act as a SQL Content Developer.
Modify the following SQL Challenge JSON based on the user instruction.

User Instruction: "{instruction}"

Current Challenge JSON:
{json.dumps(current)}

Tasks:
1. Apply the user's instruction to the challenge content.
2. Keep the JSON structure valid and identical in shape.
3. Keep the existing "type" ({challenge.type}).

Output JSON Schema:
{_challenge_shape(challenge.type, challenge.topic)}"""

    data = await _generate_json(prompt)
    merged = {**current, **data, "type": challenge.type}
    if challenge.id is not None:
        merged["id"] = challenge.id
    return parse_challenge(merged)


# ================= COURSE AUTHORING =================

async def generate_course_outline(
    title: str,
    industry: str,
    role: str,
    level: str,
    prompt_text: str
) -> Dict[str, Any]:
    """
    Business scenario plus 6-10 outline items. Falls back to the admin's
    own prompt and an empty outline.
    """
    prompt = f"""Act as a World-Class Data Science Instructor and Curriculum Architect.
Design a compelling, job-ready SQL learning path.

Input Parameters:
- Course Title: {title}
- Industry: {industry}
- Target Role: {role}
- Skill Level: {level}
- Specific Topic Request: {prompt_text}

Task:
1. Write a professional "Business Scenario" (2-3 sentences) describing the data team and its mission.
2. Define a structured SQL curriculum (6-10 modules).

Output JSON Schema:
{{
  "scenario": "The generated business scenario text...",
  "modules": [
    {{
      "title": "Action-Oriented Title",
      "skillFocus": "Main SQL concept (e.g., INNER JOIN)",
      "taskDescription": "Short description of the business task",
      "expectedOutcome": "What the learner produces",
      "difficulty": "Difficulty label",
      "estimatedTime": "e.g., 10 mins"
    }}
  ]
}}"""

    try:
        data = await _generate_json(prompt)
    except ContentServiceError as e:
        logger.error(f"Failed to generate outline for '{title}': {e.message}")
        return {"scenario": prompt_text, "modules": []}

    modules = []
    for raw in data.get("modules") or []:
        if not isinstance(raw, dict) or not raw.get("title"):
            continue
        modules.append({
            "title": raw.get("title"),
            "skill_focus": raw.get("skillFocus") or raw.get("skill_focus"),
            "task_description": raw.get("taskDescription") or raw.get("task_description"),
            "expected_outcome": raw.get("expectedOutcome") or raw.get("expected_outcome"),
            "difficulty": raw.get("difficulty"),
            "estimated_time": raw.get("estimatedTime") or raw.get("estimated_time"),
        })

    return {"scenario": data.get("scenario") or prompt_text, "modules": modules}


MODULE_FIELDS = ("title", "skill_focus", "task_description", "expected_outcome", "estimated_time")


async def refine_course_module(module: Dict[str, Any], course_context: str, instruction: str) -> List[Dict[str, Any]]:
    """
    Rewrite one module per the admin's instruction; the model may split it
    into several. Falls back to the unchanged module.
    """
    original = {key: module.get(key) for key in MODULE_FIELDS}
    prompt = f"""Act as a Curriculum Editor.
Refine the following course module based on the Admin's specific instruction.

Course Context: {course_context}
Admin Instruction: "{instruction}"

Current Module:
Title: {original["title"]}
Skill Focus: {original["skill_focus"]}
Task: {original["task_description"]}
Outcome: {original["expected_outcome"]}
Estimated Time: {original["estimated_time"]}

Requirements:
1. Execute the Admin's instruction precisely.
2. If the instruction implies splitting the lesson, return multiple modules.

Output JSON Schema:
{{
  "modules": [
    {{"title": "", "skill_focus": "", "task_description": "", "expected_outcome": "", "estimated_time": ""}}
  ]
}}"""

    try:
        data = await _generate_json(prompt)
    except ContentServiceError as e:
        logger.error(f"Failed to refine module '{original['title']}': {e.message}")
        return [original]

    refined = [
        {key: raw.get(key) for key in MODULE_FIELDS}
        for raw in data.get("modules") or []
        if isinstance(raw, dict) and raw.get("title")
    ]
    return refined or [original]


async def generate_business_brief(custom_context: str) -> str:
    """Mission brief for a personalised track. Falls back to the context itself."""
    prompt = f"""Role: Technical Content Generator.
Task: Create a professional, immersive mission brief (2-3 sentences).
Context: "{custom_context}".
Output: Just the text."""

    try:
        text = await _generate_text(prompt, json_mode=False)
    except ContentServiceError as e:
        logger.error(f"Failed to generate brief: {e.message}")
        return custom_context
    return text.strip() or custom_context


async def generate_bundle_metadata(topic: str) -> Dict[str, str]:
    """title / industry / target_role / description for a learning path. Raises on failure."""
    prompt = f"""Act as a Senior Curriculum Architect.
Based on the topic: "{topic}", generate metadata for a SQL Learning Path Bundle.

Output JSON Schema:
{{
  "title": "Professional title",
  "industry": "Industry string",
  "target_role": "Role",
  "description": "Description"
}}"""

    data = await _generate_json(prompt)
    return {key: str(data.get(key) or "") for key in ("title", "industry", "target_role", "description")}


# ================= GRADING =================

def grade_mcq(challenge: McqChallenge, answer: str) -> ValidationVerdict:
    is_correct = answer == challenge.correct_answer
    return ValidationVerdict(
        is_correct=is_correct,
        feedback="Correct! Well done." if is_correct else f"Incorrect. The correct answer was {challenge.correct_answer}.",
        best_practice="Review the concept to strengthen understanding.",
        points=MCQ_CORRECT_POINTS if is_correct else 0,
        data=[],
    )


def system_error_verdict() -> ValidationVerdict:
    return ValidationVerdict(
        is_correct=False,
        feedback="System error during validation.",
        best_practice="Verify syntax.",
        points=0,
        data=[],
    )


async def validate_submission(
    challenge: Challenge,
    answer: str,
    industry: Optional[str],
    custom_context: Optional[str] = None
) -> ValidationVerdict:
    """
    Grade an answer. MCQs are graded locally; everything else is judged
    by the model. Never raises: failures produce a zero-point verdict.
    """
    if isinstance(challenge, McqChallenge):
        return grade_mcq(challenge, answer)

    context = effective_context(industry, custom_context)
    prompt = f"""Act as a Senior Data Engineer and SQL Instructor.

Context:
- Domain: {context}
- Challenge Type: {challenge.type}
- Task: {challenge.task}
- Schema (Sample Data):
{describe_schema(challenge)}
- Required Concepts: {", ".join(challenge.required_concepts)}

User Submission:
```sql
{answer}
```

Tasks:
1. Validate if the SQL is syntactically correct.
2. Check if the query solves the business task.
3. Check if the query uses the required concepts.
4. Generate a dummy result set.
5. Assign points (0-100).
6. Provide a "Best Practice" tip.

Output JSON Schema:
{{
  "isCorrect": true,
  "feedback": "Concise feedback.",
  "bestPractice": "Professional SQL tip.",
  "points": 0,
  "data": [{{"col1": "val1"}}]
}}"""

    try:
        data = await _generate_json(prompt)
        return ValidationVerdict.model_validate(data)
    except ContentServiceError as e:
        logger.error(f"Validation failed: {e.message}")
        return system_error_verdict()
    except ValueError as e:
        logger.error(f"Validation returned an unusable verdict: {e}")
        return system_error_verdict()


# ================= TUTORING =================

def build_tutor_instruction(challenge: Challenge, industry: Optional[str], custom_context: Optional[str] = None) -> str:
    return f"""You are an expert SQL Instructor.
Context:
- Industry: {effective_context(industry, custom_context)}
- Topic: {challenge.topic}
- Type: {challenge.type}
- Task: {challenge.task}
- Schema:
{describe_schema(challenge)}

If Type is mcq: help them reason about the options.
If Type is debug: help them find the bug without giving the fixed code immediately.
If Type is completion: guide them on what goes in the blanks.

Goal: guide to the solution without giving the full answer. Be conversational."""


def build_live_instructor_instruction(
    challenge: Challenge,
    industry: Optional[str],
    custom_context: Optional[str] = None,
    current_code: Optional[str] = None
) -> str:
    """System instruction handed to the client's live voice session."""
    return f"""You are a patient SQL Mentor for {effective_context(industry, custom_context)}.
Challenge: "{challenge.title}" ({challenge.type}).
Task: "{challenge.task}".
Topic: "{challenge.topic}".
User Code: "{current_code or 'None'}"

Guide them to the solution. If debug/completion, hint at the specific error or missing part."""


async def tutor_reply(
    challenge: Challenge,
    history: List[Dict[str, str]],
    message: str,
    industry: Optional[str],
    custom_context: Optional[str] = None
) -> str:
    """
    One turn of the AI tutor chat.

    history: previous turns as {"role": "user" | "model", "text": "..."}
    """
    model = _get_model(system_instruction=build_tutor_instruction(challenge, industry, custom_context))
    chat_history = [
        {"role": "model" if turn.get("role") == "model" else "user", "parts": [turn.get("text", "")]}
        for turn in history
        if turn.get("text")
    ]

    async def call():
        chat = model.start_chat(history=chat_history)
        response = await chat.send_message_async(message)
        return response.text

    result = await with_retry(call)
    if not result.ok:
        if is_quota_error(result.error):
            raise ContentQuotaError(result.attempts)
        raise ContentServiceError(f"AI tutor error: {result.error}")
    return (result.value or "").strip()
