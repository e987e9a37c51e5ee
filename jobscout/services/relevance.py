"""
Relevance classification of job titles against the stored preference profile.
"""
import asyncio
import json
import logging
from typing import Any, Mapping, Optional, Protocol

from openai import AsyncOpenAI
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jobscout.models.job import Job
from jobscout.schemas.relevance import RelevanceVerdict
from jobscout.services.job_utils import describe_error
from jobscout.services.llm_metrics import LLMMetricsBuffer
from jobscout.services.profile import PreferencesProvider
from jobscout.services.state_machine import JobNotFoundError

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are an expert career advisor. Your task is to determine if a given job title "
    "is relevant to the user's job preferences.\n"
    "Respond with a JSON object containing a boolean field 'isRelevant' and a string field "
    "'reasoning'. For example: "
    '{"isRelevant": true, "reasoning": "The job title aligns with preferred roles."}'
)


class RelevanceClassifier(Protocol):
    async def classify(self, title: str, profile: Mapping[str, Any]) -> RelevanceVerdict:
        ...


def build_user_prompt(title: str, profile: Mapping[str, Any]) -> str:
    return (
        f'Job Title: "{title}"\n\n'
        "User's Job Preferences:\n"
        f"{json.dumps(dict(profile), indent=2, default=str)}\n\n"
        "Is this job title relevant based on these preferences? "
        "Provide your answer in the specified JSON format."
    )


def parse_verdict(raw: str) -> RelevanceVerdict:
    """
    Parse the model's reply.

    Anything that is not the expected shape yields a deterministic
    not-relevant verdict carrying the raw output, never an exception.
    """
    try:
        return RelevanceVerdict.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.error(f"Error parsing AI response: {e}")
        logger.error(f"Raw AI response: {raw!r}")
        return RelevanceVerdict(
            is_relevant=False,
            reasoning=f"Failed to parse AI response. Raw: {raw}",
        )


class OpenAIRelevanceClassifier:
    """Classify one title per chat completion call."""

    def __init__(
        self,
        model: str = "gpt-4o",
        client: Optional[AsyncOpenAI] = None,
        metrics: Optional[LLMMetricsBuffer] = None,
    ):
        self.model = model
        self.client = client or AsyncOpenAI()
        self.metrics = metrics if metrics is not None else LLMMetricsBuffer()

    async def classify(self, title: str, profile: Mapping[str, Any]) -> RelevanceVerdict:
        async with self.metrics.track("job_relevance", self.model) as tracker:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(title, profile)},
                ],
                response_format={"type": "json_object"},
            )
            tracker.record_usage(completion.usage)

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ValueError("OpenAI response content is null or undefined.")

        return parse_verdict(content)


def failed_verdict(reason: str) -> RelevanceVerdict:
    return RelevanceVerdict(is_relevant=False, reasoning=f"Analysis failed: {reason}")


async def analyze_job_title(
    classifier: RelevanceClassifier,
    title: str,
    profile: Mapping[str, Any],
    timeout: Optional[float] = None,
) -> RelevanceVerdict:
    """Classify one title. Any error or timeout degrades to a not-relevant verdict."""
    try:
        return await asyncio.wait_for(classifier.classify(title, profile), timeout=timeout)
    except Exception as e:
        reason = describe_error(e, timeout)
        logger.error(f"Error analyzing job {title}: {reason}")
        return failed_verdict(reason)


async def rerun_job_analysis(
    db: AsyncSession,
    job_id: int,
    classifier: RelevanceClassifier,
    preferences_provider: PreferencesProvider,
    timeout: Optional[float] = None,
) -> Job:
    """
    Classify a stored job's title again against the current preferences.

    Updates ``is_relevant`` and ``relevance_reasoning``; a failed analysis is
    stored as not relevant with the failure as reasoning.

    Raises:
        JobNotFoundError: If the job does not exist
    """
    result = await db.execute(select(Job).where(Job.id == job_id))
    job = result.scalar_one_or_none()
    if not job:
        raise JobNotFoundError(f"Job {job_id} not found")

    try:
        profile = await preferences_provider()
    except Exception as e:
        logger.error(f"Error getting job preferences: {e}")
        verdict = failed_verdict(describe_error(e))
    else:
        verdict = await analyze_job_title(classifier, job.title, profile, timeout)

    job.is_relevant = verdict.is_relevant
    job.relevance_reasoning = verdict.reasoning or None
    await db.commit()
    await db.refresh(job)

    logger.info(f"Re-analyzed job {job_id}: relevant={job.is_relevant}")
    return job
