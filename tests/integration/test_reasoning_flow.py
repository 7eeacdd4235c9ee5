"""
REASONING FLOW TESTS
====================

End-to-end through ReasoningService against in-memory SQLite:
start -> append (trunk, branch, conclusion) -> completion side effects.
"""
import pytest
from sqlalchemy import func, select

from exceptions import BlankInput, SequenceAlreadyComplete, SequenceNotFound, ThoughtLimitExceeded, ThoughtNotFound
from models import InsightQueueEntry, Memory, Project, ReasoningSession, ThinkingBranch, ThinkingSequence, Thought
from reasoning_service import ReasoningService


async def _all(session_factory, stmt):
    async with session_factory() as session:
        return list((await session.execute(stmt)).scalars().all())


async def _thoughts(session_factory, sequence_id):
    return await _all(
        session_factory,
        select(Thought).where(Thought.sequence_id == sequence_id)
        .order_by(Thought.thought_number, Thought.revision_number)
    )


class TestDesignAuthFlowScenario:
    """start -> observation -> alternative -> conclusion"""

    async def test_full_scenario(self, reasoning_service, session_factory, dispatched):
        started = await reasoning_service.start(goal="Design auth flow", project_name="demo")
        assert started.sequence_id == 1
        assert started.goal == "Design auth flow"

        first = await reasoning_service.add_thought(1, "JWT is stateless", "observation")
        assert first.thought_number == 1
        assert first.is_complete is False
        assert first.branch_created is False
        assert first.branch_id is None

        second = await reasoning_service.add_thought(1, "Consider session-based alt", "alternative")
        assert second.branch_created is True
        assert second.thought_number == 2
        assert second.thought_type == "hypothesis"
        assert second.branch_id.startswith("branch-")
        assert len(second.branch_id) == len("branch-") + 12
        assert "2. [hypothesis] [Branch: Alternative 2] Consider session-based alt" in second.content

        third = await reasoning_service.add_thought(1, "Therefore use JWT.", "conclusion")
        assert third.thought_number == 3
        assert third.is_complete is True

        branches = await _all(session_factory, select(ThinkingBranch))
        assert len(branches) == 1
        assert branches[0].branch_name == "Alternative 2"
        assert branches[0].branch_id == second.branch_id
        assert branches[0].rationale == "Consider session-based alt"
        assert branches[0].description == "Alternative approach: Consider session-based alt..."

        memories = await _all(session_factory, select(Memory))
        assert len(memories) == 1
        memory = memories[0]
        assert memory.memory_type == "decision"
        assert memory.importance_score == pytest.approx(0.8)
        assert memory.thinking_sequence_id == 1
        assert memory.metadata_ == {"goal": "Design auth flow", "thought_count": 3, "sequence_id": 1}
        assert memory.content.startswith("# Decision: Therefore use JWT.\n\n## Goal\nDesign auth flow\n")
        assert "2. [hypothesis] [Branch: Alternative 2] Consider session-based alt" in memory.content

        projects = await _all(session_factory, select(Project).where(Project.id == memory.project_id))
        assert projects[0].name == "demo"

        sessions = await _all(session_factory, select(ReasoningSession).where(ReasoningSession.id == memory.session_id))
        assert sessions[0].session_name == "decisions"
        assert sessions[0].session_type == "memory"

        entries = await _all(session_factory, select(InsightQueueEntry))
        assert len(entries) == 1
        assert entries[0].status == "pending"
        assert entries[0].source_ids == [1]
        assert entries[0].task_type == "thinking_sequence_insights"
        assert entries[0].task_priority == 5
        assert entries[0].task_payload["processing_type"] == "thinking_summary"
        assert entries[0].task_payload["project_name"] == "demo"
        assert len(entries[0].task_payload["sequence"]["thoughts"]) == 3
        assert dispatched == [entries[0].id]

    async def test_append_after_completion_fails(self, reasoning_service):
        started = await reasoning_service.start("Design auth flow", "demo")
        await reasoning_service.add_thought(started.sequence_id, "JWT is stateless", "observation")
        await reasoning_service.add_thought(started.sequence_id, "Therefore use JWT.", "conclusion")

        with pytest.raises(SequenceAlreadyComplete) as exc_info:
            await reasoning_service.add_thought(started.sequence_id, "One more idea", "reasoning")
        assert "start a new sequence" in exc_info.value.message

        # still terminal on a second attempt
        with pytest.raises(SequenceAlreadyComplete):
            await reasoning_service.add_thought(started.sequence_id, "Another", "conclusion")

    async def test_unknown_type_stored_as_general(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Anything", "demo")
        result = await reasoning_service.add_thought(started.sequence_id, "Odd label", "foobar")

        assert result.thought_type == "general"
        rows = await _thoughts(session_factory, started.sequence_id)
        assert rows[0].thought_type == "general"
        assert rows[0].metadata_ == {"original_type": "foobar"}


class TestStart:

    async def test_start_creates_project_and_dated_session(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Pick a broker", "infra")

        sequences = await _all(session_factory, select(ThinkingSequence))
        assert len(sequences) == 1
        sequence = sequences[0]
        assert sequence.id == started.sequence_id
        assert sequence.sequence_name == "Reasoning: Pick a broker"
        assert sequence.description == "Pick a broker"
        assert sequence.state == "active"
        assert sequence.is_complete is False

        projects = await _all(session_factory, select(Project))
        assert projects[0].name == "infra"
        assert projects[0].description == "Auto-created project: infra"

        sessions = await _all(session_factory, select(ReasoningSession))
        assert sessions[0].session_name.startswith("reasoning-")
        assert sessions[0].session_type == "thinking"

    async def test_project_and_session_reused(self, reasoning_service, session_factory):
        await reasoning_service.start("one", "infra")
        await reasoning_service.start("two", "infra")

        assert len(await _all(session_factory, select(Project))) == 1
        assert len(await _all(session_factory, select(ReasoningSession))) == 1
        assert len(await _all(session_factory, select(ThinkingSequence))) == 2

    async def test_state_not_assignable(self, reasoning_service, session_factory):
        await reasoning_service.start("Pick a broker", "infra")
        sequence = (await _all(session_factory, select(ThinkingSequence)))[0]
        with pytest.raises(RuntimeError, match="DIRECT STATE ASSIGNMENT BLOCKED"):
            sequence.state = "complete"


class TestAppend:

    async def test_missing_sequence(self, reasoning_service):
        with pytest.raises(SequenceNotFound):
            await reasoning_service.add_thought(999, "hello")

    async def test_blank_input_rejected_before_storage(self, reasoning_service, session_factory):
        with pytest.raises(BlankInput) as exc_info:
            await reasoning_service.start("Pick a broker", "   ")
        assert exc_info.value.details == {"field": "project_name"}
        with pytest.raises(BlankInput):
            await reasoning_service.start(" ", "infra")

        started = await reasoning_service.start("Pick a broker", "infra")
        with pytest.raises(BlankInput):
            await reasoning_service.add_thought(started.sequence_id, "   ", "observation")
        first = await reasoning_service.add_thought(started.sequence_id, "Redis is deployed", "observation")
        with pytest.raises(BlankInput):
            await reasoning_service.revise_thought(first.thought_id, "\n")

        # blank content is rejected even for a missing sequence
        with pytest.raises(BlankInput):
            await reasoning_service.add_thought(999, "")

        assert len(await _all(session_factory, select(Project))) == 1
        rows = await _thoughts(session_factory, started.sequence_id)
        assert [r.content for r in rows] == ["Redis is deployed"]

    async def test_numbering_is_global_across_branches(self, reasoning_service):
        started = await reasoning_service.start("Pick a broker", "infra")
        sid = started.sequence_id

        numbers = []
        numbers.append((await reasoning_service.add_thought(sid, "Redis is deployed", "observation")).thought_number)
        numbers.append((await reasoning_service.add_thought(sid, "Kafka instead", "option")).thought_number)
        numbers.append((await reasoning_service.add_thought(sid, "What about SQS?", "question")).thought_number)
        numbers.append((await reasoning_service.add_thought(sid, "Or NATS", "fork")).thought_number)

        assert numbers == [1, 2, 3, 4]

    async def test_branch_origin_is_most_recent_thought(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Pick a broker", "infra")
        sid = started.sequence_id
        first = await reasoning_service.add_thought(sid, "Redis is deployed", "observation")
        second = await reasoning_service.add_thought(sid, "It supports streams", "reasoning")
        forked = await reasoning_service.add_thought(sid, "Kafka instead", "alternative")

        branches = await _all(session_factory, select(ThinkingBranch))
        assert len(branches) == 1
        assert branches[0].branch_from_thought_id == second.thought_id
        assert branches[0].branch_name == "Alternative 3"

        rows = await _thoughts(session_factory, sid)
        branch_thought = rows[-1]
        assert branch_thought.id == forked.thought_id
        assert branch_thought.branch_from_thought_id == second.thought_id
        assert branch_thought.metadata_["branch_intent"] == "alternative"
        assert first.thought_id != second.thought_id

    async def test_branch_on_empty_sequence_lands_on_trunk(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Pick a broker", "infra")
        result = await reasoning_service.add_thought(started.sequence_id, "Kafka?", "alternative")

        assert result.branch_created is False
        assert result.branch_id is None
        assert result.thought_type == "hypothesis"
        assert await _all(session_factory, select(ThinkingBranch)) == []

    async def test_named_branch_and_continuation(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Pick a broker", "infra")
        sid = started.sequence_id
        await reasoning_service.add_thought(sid, "Redis is deployed", "observation")
        forked = await reasoning_service.add_thought(sid, "Kafka instead", "alternative", branch_name="Kafka route")
        follow = await reasoning_service.add_thought(sid, "Kafka needs zookeeper", "reasoning", branch_name="Kafka route")
        trunk = await reasoning_service.add_thought(sid, "Back to Redis", "reasoning", branch_name="no such branch")

        assert forked.branch_created is True
        assert follow.branch_created is False
        assert follow.branch_id == forked.branch_id
        assert trunk.branch_id is None
        assert "3. [reasoning] [Branch: Kafka route] Kafka needs zookeeper" in trunk.content

        branches = await _all(session_factory, select(ThinkingBranch))
        assert [b.branch_name for b in branches] == ["Kafka route"]

    async def test_confidence_and_estimates(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Pick a broker", "infra")
        sid = started.sequence_id
        await reasoning_service.add_thought(sid, "Redis is deployed", "observation")
        await reasoning_service.add_thought(sid, "Use Redis", "conclusion")

        rows = await _thoughts(session_factory, sid)
        assert [r.confidence_level for r in rows] == [pytest.approx(0.7), pytest.approx(0.9)]
        assert [r.next_thought_needed for r in rows] == [True, False]
        assert [r.total_thoughts for r in rows] == [1, 2]

    async def test_phrase_conclusion_sets_summary(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Pick a broker", "infra")
        result = await reasoning_service.add_thought(
            started.sequence_id, "Decision: go with Redis", "reasoning"
        )

        assert result.is_complete is True
        sequence = (await _all(session_factory, select(ThinkingSequence)))[0]
        assert sequence.is_complete is True
        assert sequence.completion_summary == "Decision: go with Redis"

    async def test_explicit_policy_ignores_phrases(self, explicit_service, session_factory):
        started = await explicit_service.start("Pick a broker", "infra")
        result = await explicit_service.add_thought(started.sequence_id, "Therefore Redis", "reasoning")

        assert result.is_complete is False
        assert await _all(session_factory, select(Memory)) == []

        concluded = await explicit_service.add_thought(started.sequence_id, "Redis it is", "conclusion")
        assert concluded.is_complete is True

    async def test_thought_limit(self, session_factory, dispatched):
        service = ReasoningService(session_factory, max_thoughts=2, dispatch=dispatched.append)
        started = await service.start("Pick a broker", "infra")
        await service.add_thought(started.sequence_id, "one")
        await service.add_thought(started.sequence_id, "two")

        with pytest.raises(ThoughtLimitExceeded):
            await service.add_thought(started.sequence_id, "three")

        async with session_factory() as session:
            count = (await session.execute(select(func.count(Thought.id)))).scalar_one()
        assert count == 2

    async def test_transcript_rendering(self, reasoning_service):
        started = await reasoning_service.start("Pick a broker", "infra")
        sid = started.sequence_id
        await reasoning_service.add_thought(sid, "Redis is deployed", "observation")
        result = await reasoning_service.add_thought(sid, "Why not Kafka?", "question")

        assert result.content == (
            "# Reasoning: Pick a broker\n"
            "\n"
            "## Goal\n"
            "Pick a broker\n"
            "\n"
            "## Thoughts\n"
            "1. [observation] Redis is deployed\n"
            "2. [question] Why not Kafka?"
        )


class TestRevision:

    async def test_revision_appends_new_row(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Pick a broker", "infra")
        sid = started.sequence_id
        original = await reasoning_service.add_thought(sid, "Redis is deployed", "observation")
        await reasoning_service.add_thought(sid, "It supports streams", "reasoning")

        revised = await reasoning_service.revise_thought(
            original.thought_id, "Redis runs in production", reason="more precise"
        )
        assert revised.thought_number == 1
        assert revised.revision_number == 1
        assert revised.revises_thought_id == original.thought_id
        assert revised.confidence_level == pytest.approx(0.7)
        assert revised.is_complete is False
        assert "1. [observation] (revised) Redis runs in production" in revised.content
        assert "Redis is deployed" not in revised.content

        again = await reasoning_service.revise_thought(original.thought_id, "Redis 7 runs in production")
        assert again.revision_number == 2

        rows = await _thoughts(session_factory, sid)
        assert [(r.thought_number, r.revision_number) for r in rows] == [(1, 0), (1, 1), (1, 2), (2, 0)]
        first_revision = rows[1]
        assert first_revision.is_revision is True
        assert first_revision.revises_thought_id == original.thought_id
        assert first_revision.thought_type == "observation"
        assert first_revision.metadata_["revision_reason"] == "more precise"
        assert first_revision.metadata_["original_content"] == "Redis is deployed"
        assert rows[0].content == "Redis is deployed"

    async def test_revision_does_not_shift_numbering(self, reasoning_service):
        started = await reasoning_service.start("Pick a broker", "infra")
        sid = started.sequence_id
        first = await reasoning_service.add_thought(sid, "Redis is deployed", "observation")
        await reasoning_service.revise_thought(first.thought_id, "Redis runs in production")

        nxt = await reasoning_service.add_thought(sid, "It supports streams", "reasoning")
        assert nxt.thought_number == 2

    async def test_revision_with_conclusion_phrase_does_not_complete(self, reasoning_service, session_factory):
        started = await reasoning_service.start("Pick a broker", "infra")
        first = await reasoning_service.add_thought(started.sequence_id, "Redis is deployed", "observation")

        revised = await reasoning_service.revise_thought(first.thought_id, "Therefore Redis")
        assert revised.is_complete is False
        sequence = (await _all(session_factory, select(ThinkingSequence)))[0]
        assert sequence.is_complete is False

    async def test_revision_of_missing_thought(self, reasoning_service):
        with pytest.raises(ThoughtNotFound):
            await reasoning_service.revise_thought(12345, "nope")

    async def test_revision_on_completed_sequence(self, reasoning_service):
        started = await reasoning_service.start("Pick a broker", "infra")
        first = await reasoning_service.add_thought(started.sequence_id, "Redis is deployed", "observation")
        await reasoning_service.add_thought(started.sequence_id, "Use Redis", "conclusion")

        with pytest.raises(SequenceAlreadyComplete):
            await reasoning_service.revise_thought(first.thought_id, "Redis runs in production")


class TestExplicitCompletion:

    async def test_complete_with_generated_summary(self, reasoning_service, session_factory, dispatched):
        started = await reasoning_service.start("Pick a broker", "infra")
        sid = started.sequence_id
        await reasoning_service.add_thought(sid, "Redis is deployed", "observation")

        result = await reasoning_service.complete(sid)
        assert result.is_complete is True
        assert result.summary.startswith('Thinking sequence "Reasoning: Pick a broker" completed with 1 thoughts.')
        assert result.memory_id is not None
        assert result.insight_entry_id == dispatched[0]

        sequence = (await _all(session_factory, select(ThinkingSequence)))[0]
        assert sequence.completion_summary == result.summary

        with pytest.raises(SequenceAlreadyComplete):
            await reasoning_service.add_thought(sid, "late thought")

    async def test_complete_with_summary(self, reasoning_service):
        started = await reasoning_service.start("Pick a broker", "infra")
        result = await reasoning_service.complete(started.sequence_id, "Going with Redis")
        assert result.summary == "Going with Redis"

    async def test_complete_twice(self, reasoning_service):
        started = await reasoning_service.start("Pick a broker", "infra")
        await reasoning_service.complete(started.sequence_id, "done")

        with pytest.raises(SequenceAlreadyComplete):
            await reasoning_service.complete(started.sequence_id, "done again")
        with pytest.raises(SequenceAlreadyComplete):
            await reasoning_service.complete(started.sequence_id)

    async def test_complete_missing(self, reasoning_service):
        with pytest.raises(SequenceNotFound):
            await reasoning_service.complete(404)
        with pytest.raises(SequenceNotFound):
            await reasoning_service.complete(404, "summary")
