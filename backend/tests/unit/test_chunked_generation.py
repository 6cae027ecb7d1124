"""Tests for Stage 1 chunked guide generation."""

import pytest

from src.llm.errors import ProviderError
from src.models.insight import BookAnalysis, PremiumSection, SectionType
from src.services.chunked_generation import (
    MIN_SECTION_COUNT,
    MIN_TOTAL_WORDS,
    generate_guide_chunked,
    validate_guide_content,
)
from src.services.errors import ChunkGenerationError, ContentValidationError
from src.services.section_normalizer import normalize_section


def make_sections(count: int, words_each: int, types: list[SectionType] | None = None) -> list[PremiumSection]:
    types = types or [SectionType.quickGlance, SectionType.foundationalNarrative, SectionType.executiveSummary]
    sections = []
    for n in range(count):
        section_type = types[n] if n < len(types) else SectionType.conceptExplanation
        sections.append(PremiumSection(
            id=f"section-{n + 1}",
            type=section_type,
            title=f"Section {n + 1}",
            content=" ".join(["word"] * words_each),
        ))
    return sections


@pytest.fixture
def analysis(analysis_payload) -> BookAnalysis:
    return BookAnalysis.model_validate(analysis_payload())


class TestValidateGuideContent:
    """Tests for the hard guide minimums."""

    def test_valid_guide_passes(self):
        validate_guide_content(make_sections(20, 450))

    def test_word_minimum_boundary(self):
        sections = make_sections(20, 450)
        sections[-1] = sections[-1].model_copy(update={"content": " ".join(["word"] * 449)})

        with pytest.raises(ContentValidationError) as exc_info:
            validate_guide_content(sections)
        assert exc_info.value.word_count == MIN_TOTAL_WORDS - 1
        assert "8999 words" in str(exc_info.value)

    def test_section_minimum_boundary(self):
        with pytest.raises(ContentValidationError) as exc_info:
            validate_guide_content(make_sections(MIN_SECTION_COUNT - 1, 500))
        assert exc_info.value.section_count == 19
        assert "19 sections" in str(exc_info.value)

    def test_word_check_reported_first(self):
        with pytest.raises(ContentValidationError) as exc_info:
            validate_guide_content(make_sections(5, 10))
        assert "words" in str(exc_info.value)

    @pytest.mark.parametrize(
        "missing",
        [SectionType.quickGlance, SectionType.foundationalNarrative, SectionType.executiveSummary],
    )
    def test_each_required_type(self, missing):
        present = [t for t in (
            SectionType.quickGlance, SectionType.foundationalNarrative, SectionType.executiveSummary,
        ) if t != missing]

        with pytest.raises(ContentValidationError) as exc_info:
            validate_guide_content(make_sections(20, 450, types=present))
        assert exc_info.value.missing_types == [missing.value]
        assert missing.value in str(exc_info.value)

    def test_action_steps_do_not_count_toward_words(self):
        sections = make_sections(20, 450)
        last = sections[-1]
        sections[-1] = PremiumSection(
            id=last.id,
            type=SectionType.actionBox,
            title="Act",
            content=" ".join(["word"] * 449),
            metadata={"actionSteps": ["Start today", "Repeat tomorrow"]},
        )

        with pytest.raises(ContentValidationError) as exc_info:
            validate_guide_content(sections)
        assert exc_info.value.word_count == MIN_TOTAL_WORDS - 1

    def test_steps_recovered_from_content_not_double_counted(self):
        sections = make_sections(19, 450)
        steps = "\n".join(f"{n}. Write down one small habit today" for n in range(1, 6))
        section = normalize_section(
            {"type": "actionBox", "title": "Act", "content": steps + "\n" + " ".join(["word"] * 414)},
            "section-20",
        )
        assert len(section.action_steps) == 5

        # 35 list words + 414 = 449 content words, one short of 9000
        with pytest.raises(ContentValidationError) as exc_info:
            validate_guide_content(sections + [section])
        assert exc_info.value.word_count == MIN_TOTAL_WORDS - 1


class TestGenerateGuideChunked:
    """Tests for the three-chunk generation flow."""

    @pytest.mark.asyncio
    async def test_assembles_guide(self, fake_llm, analysis):
        client = fake_llm()
        guide = await generate_guide_chunked(analysis, "book text", client=client)

        assert client.stages_called() == ["foundation", "core", "application"]
        assert guide.title == "Insight Atlas Guide: Atomic Habits"
        assert guide.bookAuthor == "James Clear"
        assert len(guide.sections) == 21
        assert [s.id for s in guide.sections] == [f"section-{n}" for n in range(1, 22)]
        assert guide.wordCount == 9018
        assert [e.id for e in guide.tableOfContents] == [s.id for s in guide.sections]

    @pytest.mark.asyncio
    async def test_chunk_calls_use_truncation(self, fake_llm, analysis):
        client = fake_llm()
        await generate_guide_chunked(analysis, "book text", client=client)

        for call in client.calls:
            assert call["max_tokens"] == 8192
            assert call["truncate_input"] is True

    @pytest.mark.asyncio
    async def test_application_prompt_sees_earlier_sections(self, fake_llm, analysis):
        client = fake_llm()
        await generate_guide_chunked(analysis, "book text", client=client)

        application_prompt = client.calls[2]["user_prompt"]
        assert "quickGlance: Quick Glance" in application_prompt
        assert "actionBox: Action 2" in application_prompt

    @pytest.mark.asyncio
    async def test_on_chunk_callback(self, fake_llm, analysis):
        seen = []

        async def on_chunk(result, index, total):
            seen.append((result.spec.name, index, total, result.below_target))

        await generate_guide_chunked(analysis, "book text", client=fake_llm(), on_chunk=on_chunk)

        assert seen == [
            ("Foundation", 1, 3, False),
            ("Core Concepts", 2, 3, True),
            ("Application", 3, 3, False),
        ]

    @pytest.mark.asyncio
    async def test_chunk_failure_raises(self, fake_llm, analysis):
        client = fake_llm(core=ProviderError("all providers down"))

        with pytest.raises(ChunkGenerationError) as exc_info:
            await generate_guide_chunked(analysis, "book text", client=client)

        assert exc_info.value.chunk == "Core Concepts"
        assert client.stages_called() == ["foundation", "core"]

    @pytest.mark.asyncio
    async def test_unparseable_chunk_raises(self, fake_llm, analysis):
        with pytest.raises(ChunkGenerationError):
            await generate_guide_chunked(analysis, "text", client=fake_llm(foundation="not json at all"))

    @pytest.mark.asyncio
    async def test_short_guide_fails_validation(self, fake_llm, make_section, analysis):
        client = fake_llm(application={"sections": [make_section("keyTakeaways", 100)]})

        with pytest.raises(ContentValidationError):
            await generate_guide_chunked(analysis, "text", client=client)

    @pytest.mark.asyncio
    async def test_sections_without_content_dropped(self, fake_llm, make_section, analysis):
        application = {
            "sections": [
                make_section("selfAssessment", 1000),
                make_section("trackingTemplate", 1000),
                make_section("keyTakeaways", 1000),
                {"type": "structureMap", "title": "Empty", "content": ""},
                {"type": "unknownKind", "title": "Odd", "content": "text"},
                make_section("reflectionPrompts", 10),
                make_section("dialogueScript", 10),
            ]
        }
        guide = await generate_guide_chunked(analysis, "text", client=fake_llm(application=application))

        assert len(guide.sections) == 20
        assert all(s.title != "Empty" for s in guide.sections)
