"""
Ebook Content Helpers
=====================

Prompt builders for the ebook workflow (brainstorming, outlining, drafting,
humanizing) on top of ``AIService.generate``. Key problems are raised
unchanged so the caller can point the user at their settings; any other
failure is wrapped in ``ContentGenerationError``.
"""

import json
import logging
import re
from dataclasses import dataclass

from .errors import (
    AIServiceError,
    ContentGenerationError,
    KeyValidationError,
    NoUsableKeysError,
)
from .orchestrator import AIService, GenerationRequest
from .registry import AUTO, ProviderId, is_auto, parse_provider
from .validation import KeyValidator

logger = logging.getLogger(__name__)

BRAINSTORM_PROMPT = """You are a bestselling ebook author and publishing expert. \
Generate 5 compelling, marketable book titles and a detailed chapter outline for \
a book about: {topic}

Requirements:
- Titles should be attention-grabbing and marketable
- Outline should have 8-12 chapters with descriptive titles
- Each chapter should have 3-5 section topics
- Focus on practical, actionable content
- Consider SEO and keyword optimization

Return your response as JSON with this exact structure:
{{
  "titles": ["Title 1", "Title 2", "Title 3", "Title 4", "Title 5"],
  "outline": {{
    "title": "Main Book Title",
    "subtitle": "Compelling Subtitle",
    "chapters": [
      {{
        "number": 1,
        "title": "Chapter Title",
        "sections": ["Section 1", "Section 2", "Section 3"]
      }}
    ]
  }}
}}"""

IMPROVE_OUTLINE_PROMPT = """You are a bestselling author and book structure expert. \
Analyze and improve this book outline to make it more comprehensive, engaging, \
and marketable.

Current Outline:
{outline}

Instructions:
- Enhance chapter titles to be more compelling and specific
- Add missing chapters that would strengthen the book
- Improve the logical flow and progression
- Add 3-5 section topics under each chapter
- Ensure the structure appeals to readers and provides clear value
- Maintain the core topic and intent
- Return the improved outline in a clear, structured format

Provide the enhanced outline:"""

EBOOK_PROMPT = """You are a professional ghostwriter and bestselling author. \
Write a complete, detailed ebook on the topic: {topic}.

Requirements:
- Target word count: {word_count} words
- {tone_instruction}
- Target audience: {audience}
- Include: Title Page, Table of Contents, Introduction, Multiple Chapters (8-15), \
Conclusion, Resources/References
- Format in clean Markdown with proper heading structure
- Use H1 for main title, H2 for major sections, H3 for chapters
- Write engaging, valuable content that provides real insights
- Include practical examples, actionable advice, and clear explanations
- Ensure content flows logically from chapter to chapter{outline_section}

Generate the complete ebook content now in Markdown format."""

CHAPTER_PROMPT = """You are a professional author writing Chapter {number} of a book.

Chapter Details:
- Title: "{title}"
- Target word count: {word_count} words
- Tone: {tone}
- Audience: {audience}

Book Context:
{outline}

Instructions:
- Write a complete, engaging chapter that fits within the overall book structure
- Include practical examples, actionable advice, and clear explanations
- Use subheadings to organize content (H3 and H4 levels)
- Ensure the chapter flows well and provides real value
- Write in Markdown format
- Start with the chapter title as H2: ## Chapter {number}: {title}

Generate the complete chapter content now."""

HUMANIZE_PROMPT = """You are an expert editor specializing in making AI-generated \
content sound more natural and human-written. Transform this content through a \
comprehensive humanization process:

CONTENT TO HUMANIZE:
{content}

HUMANIZATION REQUIREMENTS:
1. STRUCTURAL REWRITE: Vary sentence lengths, merge short sentences, break up long ones
2. LEXICAL IMPROVEMENTS: Replace AI clichés and robotic phrases with natural language
3. PERSONALITY INJECTION: Add contractions, personal touches, conversational elements
4. FLOW ENHANCEMENT: Improve transitions and logical connections between ideas

BANNED AI PHRASES TO REPLACE:
- "delve into" → "explore" or "examine"
- "leverage" → "use" or "apply"
- "tapestry" → "mix" or "blend"
- "navigate" → "handle" or "manage"
- "robust" → "strong" or "solid"
- "pivotal" → "key" or "important"
- "moreover" → "also" or "plus"
- "furthermore" → "what's more" or "additionally"

STYLE GUIDELINES:
- Use contractions (don't, can't, it's, you're)
- Add occasional rhetorical questions
- Include personal pronouns (you, we, I)
- Vary paragraph lengths
- Use active voice over passive
- Add transitional phrases that sound natural

Return the fully humanized content that reads as if written by a skilled human author."""

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_NUMBERED_LINE = re.compile(r"^\d+\.")
_NUMBER_PREFIX = re.compile(r"^\d+\.?\s*")
_TITLE_LABEL = re.compile(r"Title\s*\d*:?\s*", re.IGNORECASE)


@dataclass
class BrainstormResult:
    titles: list[str]
    outline: str


def fallback_titles(topic: str) -> list[str]:
    return [
        f"The Complete Guide to {topic}",
        f"Mastering {topic}: A Practical Approach",
        f"{topic} for Beginners and Experts",
        f"The Ultimate {topic} Handbook",
        f"Transform Your Life with {topic}",
    ]


def parse_brainstorm(topic: str, content: str) -> BrainstormResult:
    """
    Read a brainstorm answer.

    The JSON shape requested in the prompt is preferred. Free-form answers
    fall back to numbered or "Title" lines, and to templated titles when
    nothing usable is found. The raw answer then serves as the outline.
    """
    text = content.strip()
    fenced = _FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None

    if isinstance(parsed, dict) and parsed.get("titles") and parsed.get("outline"):
        outline = parsed["outline"]
        if not isinstance(outline, str):
            outline = json.dumps(outline, indent=2)
        titles = [str(title) for title in parsed["titles"]]
        return BrainstormResult(titles=titles, outline=outline)

    logger.warning("Brainstorm answer was not the expected JSON, extracting titles")

    candidates = [
        line
        for line in content.splitlines()
        if line.strip() and ("Title" in line or _NUMBERED_LINE.match(line))
    ]
    titles = []
    for line in candidates[:5]:
        title = _TITLE_LABEL.sub("", _NUMBER_PREFIX.sub("", line), count=1).strip()
        if title:
            titles.append(title)

    return BrainstormResult(titles=titles or fallback_titles(topic), outline=content)


class ContentGenerator:
    """Ebook workflow prompts routed through an AIService"""

    def __init__(self, service: AIService) -> None:
        self.service = service

    @staticmethod
    def _cache_label(provider: ProviderId | str) -> str:
        return AUTO if is_auto(provider) else parse_provider(provider).value

    def _check_key(self, provider: ProviderId | str, api_key: str | None) -> None:
        if is_auto(provider):
            return
        provider_id = parse_provider(provider)
        error = KeyValidator.explain(
            provider_id, self.service.lookup_key(provider_id, api_key)
        )
        if error:
            raise KeyValidationError(provider_id.value, error)

    async def _generate(
        self,
        action: str,
        prompt: str,
        provider: ProviderId | str,
        model: str,
        api_key: str | None,
        max_tokens: int,
        temperature: float,
    ) -> str:
        request = GenerationRequest(
            prompt=prompt,
            provider=provider,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            api_key=api_key,
        )
        try:
            result = await self.service.generate(request)
        except (KeyValidationError, NoUsableKeysError):
            raise
        except AIServiceError as e:
            raise ContentGenerationError(f"Failed to {action}: {e.message}") from e
        return result.content

    async def brainstorm(
        self,
        topic: str,
        provider: ProviderId | str = AUTO,
        model: str = AUTO,
        api_key: str | None = None,
    ) -> BrainstormResult:
        """Five candidate titles and a chapter outline for a topic"""
        self._check_key(provider, api_key)
        label = self._cache_label(provider)

        cached = self.service.cache.get_brainstorm(topic, label)
        if cached is not None:
            return cached

        content = await self._generate(
            "generate brainstorm ideas",
            BRAINSTORM_PROMPT.format(topic=topic),
            provider,
            model,
            api_key,
            max_tokens=3000,
            temperature=0.8,
        )
        result = parse_brainstorm(topic, content)
        self.service.cache.put_brainstorm(topic, label, result)
        return result

    async def improve_outline(
        self,
        outline: str,
        provider: ProviderId | str = AUTO,
        model: str = AUTO,
        api_key: str | None = None,
    ) -> str:
        self._check_key(provider, api_key)
        return await self._generate(
            "improve outline",
            IMPROVE_OUTLINE_PROMPT.format(outline=outline),
            provider,
            model,
            api_key,
            max_tokens=2000,
            temperature=0.6,
        )

    async def generate_ebook(
        self,
        topic: str,
        word_count: int,
        tone: str,
        audience: str,
        outline: str | None = None,
        custom_tone: str | None = None,
        provider: ProviderId | str = AUTO,
        model: str = AUTO,
        api_key: str | None = None,
    ) -> str:
        """Full Markdown manuscript for a topic"""
        self._check_key(provider, api_key)

        if tone == "custom" and custom_tone:
            tone_instruction = f"Writing style: {custom_tone}"
        else:
            tone_instruction = f"Tone: {tone}"
        outline_section = (
            f"\n\nUse this outline as your structure:\n{outline}" if outline else ""
        )

        prompt = EBOOK_PROMPT.format(
            topic=topic,
            word_count=word_count,
            tone_instruction=tone_instruction,
            audience=audience,
            outline_section=outline_section,
        )
        return await self._generate(
            "generate ebook",
            prompt,
            provider,
            model,
            api_key,
            max_tokens=min(8000, word_count // 2),
            temperature=0.7,
        )

    async def generate_chapter(
        self,
        chapter_title: str,
        chapter_number: int,
        outline: str,
        tone: str,
        audience: str,
        word_count: int,
        provider: ProviderId | str = AUTO,
        model: str = AUTO,
        api_key: str | None = None,
    ) -> str:
        self._check_key(provider, api_key)

        cache = self.service.cache
        label = self._cache_label(provider)
        cached = cache.get_chapter(chapter_title, chapter_number, outline, label)
        if cached is not None:
            return cached

        prompt = CHAPTER_PROMPT.format(
            number=chapter_number,
            title=chapter_title,
            word_count=word_count,
            tone=tone,
            audience=audience,
            outline=outline,
        )
        content = await self._generate(
            "generate chapter",
            prompt,
            provider,
            model,
            api_key,
            max_tokens=min(4000, word_count // 2),
            temperature=0.7,
        )
        cache.put_chapter(chapter_title, chapter_number, outline, label, content)
        return content

    async def humanize_content(
        self,
        content: str,
        provider: ProviderId | str = AUTO,
        model: str = AUTO,
        api_key: str | None = None,
    ) -> str:
        """Rewrite machine-sounding prose in a more natural voice"""
        self._check_key(provider, api_key)

        cache = self.service.cache
        label = self._cache_label(provider)
        cached = cache.get_humanization(content, label)
        if cached is not None:
            return cached

        humanized = await self._generate(
            "humanize content",
            HUMANIZE_PROMPT.format(content=content),
            provider,
            model,
            api_key,
            max_tokens=min(4000, len(content) * 2),
            temperature=0.3,
        )
        cache.put_humanization(content, label, humanized)
        return humanized
