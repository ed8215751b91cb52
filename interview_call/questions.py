"""
Interview Question Generator using OpenAI Agents SDK.

Generates the question list read aloud by the voice assistant. The agent
returns a structured list of questions; the generator strips characters that
break speech synthesis before handing them on.

Supports both OpenAI and Azure OpenAI backends:
  - OpenAI: Set OPENAI_API_KEY (and optionally OPENAI_MODEL)
  - Azure OpenAI: Set AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_KEY, AZURE_OPENAI_DEPLOYMENT
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Optional, Union

from agents import Agent, ModelSettings, OpenAIChatCompletionsModel, Runner
from openai import AsyncAzureOpenAI
from pydantic import BaseModel, Field

from .models import GenerateInterviewRequest, InterviewRecord

if TYPE_CHECKING:
    from interview_platform.persistence import SupabaseInterviewStore


__all__ = [
    "GeneratedQuestions",
    "QuestionGenerator",
    "build_question_prompt",
    "clean_questions",
    "generate_interview",
]


logger = logging.getLogger(__name__)


# Characters the voice assistant reads badly.
SPEECH_UNSAFE_CHARACTERS = ("/", "*")

DEFAULT_MODEL = "gpt-5-mini"


def _get_openai_config() -> tuple[str, Optional[AsyncAzureOpenAI]]:
    """
    Determine OpenAI configuration based on environment variables.

    Returns:
        Tuple of (model_name, azure_client_or_none)

    Raises:
        ValueError: If Azure OpenAI is requested but only partially configured.
    """
    azure_endpoint = os.environ.get("AZURE_OPENAI_ENDPOINT")
    azure_key = os.environ.get("AZURE_OPENAI_KEY")
    azure_deployment = os.environ.get("AZURE_OPENAI_DEPLOYMENT")
    api_type = os.environ.get("OPENAI_API_TYPE", "").lower()

    if api_type == "azure" or (azure_endpoint and azure_key and azure_deployment):
        if not all([azure_endpoint, azure_key, azure_deployment]):
            raise ValueError(
                "Azure OpenAI requires AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_KEY, "
                "and AZURE_OPENAI_DEPLOYMENT environment variables"
            )
        logger.info("Using Azure OpenAI: %s, deployment: %s", azure_endpoint, azure_deployment)
        azure_client = AsyncAzureOpenAI(
            azure_endpoint=azure_endpoint,
            api_key=azure_key,
            api_version=os.environ.get("AZURE_OPENAI_API_VERSION", "2024-08-01-preview"),
        )
        return azure_deployment, azure_client

    model = os.environ.get("OPENAI_MODEL", DEFAULT_MODEL)
    logger.info("Using OpenAI: model %s", model)
    return model, None


# =============================================================================
# Structured Output Model for Agent
# =============================================================================


class GeneratedQuestions(BaseModel):
    """Structured output of the question generation agent."""

    questions: list[str] = Field(
        ...,
        description="Interview questions in the order they should be asked, plain text only",
    )


QUESTION_GENERATOR_INSTRUCTIONS = """You prepare questions for a spoken mock job interview.

Rules:
- Return only the questions, without numbering or any additional text.
- The questions are read aloud by a voice assistant. Do not use "/" or "*" or any
  other special characters that might break the voice assistant.
- Match the requested experience level and stay within the requested tech stack.
- Respect the requested balance between behavioural and technical questions."""


def build_question_prompt(request: GenerateInterviewRequest) -> str:
    """
    Build the generation prompt for one interview.

    Args:
        request: Role, level, tech stack, focus and desired count.

    Returns:
        Prompt string for the agent.
    """
    tech_stack = ", ".join(request.techstack) if request.techstack else "not specified"
    parts = [
        "Prepare questions for a job interview.",
        f"The job role is {request.role}.",
        f"The job experience level is {request.level}.",
        f"The tech stack used in the job is: {tech_stack}.",
        f"The focus between behavioural and technical questions should lean towards: {request.type}.",
        f"The amount of questions required is: {request.amount}.",
    ]
    return "\n".join(parts)


def clean_questions(questions: list[str]) -> list[str]:
    """Remove speech-unsafe characters and drop blank questions."""
    cleaned = []
    for question in questions:
        for char in SPEECH_UNSAFE_CHARACTERS:
            question = question.replace(char, "")
        question = " ".join(question.split())
        if question:
            cleaned.append(question)
    return cleaned


class QuestionGenerator:
    """
    Generates interview questions with an openai-agents Agent.

    Example:
        >>> generator = QuestionGenerator()
        >>> questions = await generator.generate(
        ...     GenerateInterviewRequest(
        ...         role="Frontend Developer", level="Junior", type="Technical",
        ...         techstack="React, TypeScript", amount=3, user_id="u1",
        ...     )
        ... )
        >>> len(questions)
        3
    """

    def __init__(
        self,
        model: Optional[str] = None,
        azure_client: Optional[AsyncAzureOpenAI] = None,
        reasoning_effort: Optional[str] = None,
    ) -> None:
        """
        Initialize the generator.

        Args:
            model: Model/deployment to use. If None, resolved from the environment.
            azure_client: Optional Azure OpenAI client.
            reasoning_effort: Reasoning effort for reasoning models (default: low).
        """
        if model is None:
            model, env_client = _get_openai_config()
            azure_client = azure_client or env_client
        self.model = model
        self.reasoning_effort = reasoning_effort or os.environ.get("OPENAI_REASONING_EFFORT", "low")

        model_settings = None
        if any(tag in self.model.lower() for tag in ("gpt-5", "o1", "o3")):
            model_settings = ModelSettings(reasoning={"effort": self.reasoning_effort})

        agent_model: Union[str, OpenAIChatCompletionsModel] = self.model
        if azure_client is not None:
            agent_model = OpenAIChatCompletionsModel(model=self.model, openai_client=azure_client)

        self._agent = Agent(
            name="Interview Question Generator",
            instructions=QUESTION_GENERATOR_INSTRUCTIONS,
            model=agent_model,
            output_type=GeneratedQuestions,
            model_settings=model_settings or ModelSettings(),
        )
        logger.info(
            "QuestionGenerator initialized with %s, model: %s",
            "Azure OpenAI" if azure_client else "OpenAI",
            self.model,
        )

    async def generate(self, request: GenerateInterviewRequest) -> list[str]:
        """
        Generate questions for one interview.

        Args:
            request: Generation input.

        Returns:
            Cleaned questions, at most `request.amount` of them.

        Raises:
            Exception: Whatever the agent run raises; there is no retry.
        """
        prompt = build_question_prompt(request)
        logger.debug("Generating %d questions for role '%s'", request.amount, request.role)
        result = await Runner.run(self._agent, prompt)
        output: GeneratedQuestions = result.final_output_as(GeneratedQuestions)
        questions = clean_questions(output.questions)[: request.amount]
        logger.info("Generated %d questions for role '%s'", len(questions), request.role)
        return questions


async def generate_interview(
    generator: QuestionGenerator,
    store: "SupabaseInterviewStore",
    request: GenerateInterviewRequest,
) -> InterviewRecord:
    """
    Generate questions and persist them as a finalized interview record.

    Args:
        generator: Question source.
        store: Interview store the record is inserted into.
        request: Generation input.

    Returns:
        The record as inserted.

    Raises:
        PersistenceError: If the insert fails.
    """
    questions = await generator.generate(request)
    record = InterviewRecord(
        role=request.role,
        type=request.type,
        level=request.level,
        techstack=list(request.techstack),
        questions=questions,
        userid=request.user_id,
        finalized=True,
    )
    await store.insert_interview(record)
    logger.info("Stored generated interview for user %s (%d questions)", request.user_id, len(questions))
    return record
