"""
Tests for Discord Bot Module

Tests the Discord bot integration with the RAG chain and agent.
Uses mocking to avoid actual Discord API calls.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, Mock, PropertyMock, patch

import discord
import pytest

from config.settings import Settings
from rag_assistant.discord_bot import GENERIC_ERROR, DiscordBot, create_bot
from rag_assistant.errors import GenerationError
from rag_assistant.rag_chain import RAGResponse
from rag_assistant.retriever import DocumentMetadata, RetrievedDocument

BOT_USER = Mock(id=999, name="support-bot")


def doc(source, section, score):
    return RetrievedDocument(
        id=f"{source}#0", text="t", score=score, metadata=DocumentMetadata(source=source, section=section),
    )


def rag_response(answer="Use File > Export.", sources=()):
    return RAGResponse(answer=answer, sources=list(sources), query="q")


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def agent():
    agent = Mock()
    agent.chat = AsyncMock(return_value="Pro is $10/month.")
    return agent


@pytest.fixture
def rag_chain():
    chain = Mock()
    chain.answer = AsyncMock(return_value=rag_response(sources=[doc("guide.md", "Exporting", 0.8)]))
    return chain


@pytest.fixture
def bot(settings, rag_chain, agent):
    bot = DiscordBot(settings, rag_chain=rag_chain, agent=agent)
    with patch.object(DiscordBot, "user", new_callable=PropertyMock, return_value=BOT_USER):
        yield bot


def make_message(content, author_id=1, previous=()):
    """Fake discord.Message; ``previous`` is the channel history, oldest first."""
    message = Mock()
    message.content = content
    message.author = Mock(id=author_id, bot=False)
    message.mentions = [BOT_USER]
    message.reply = AsyncMock()

    async def history(limit, before):
        for item in list(reversed(previous))[:limit]:
            yield item

    channel = MagicMock()
    channel.history = history
    message.channel = channel
    return message


def past(content, author):
    return Mock(content=content, author=author)


class TestDiscordBot:
    """Tests for DiscordBot setup and helpers."""

    def test_initialization(self, settings):
        bot = DiscordBot(settings)

        assert bot._rag_chain is None  # Lazy initialization
        assert bot._agent is None
        assert bot._is_ready is False
        assert bot._rate_limit_seconds == 3
        assert bot._stats["questions_answered"] == 0

    def test_initialization_with_prefix(self, settings):
        assert DiscordBot(settings, command_prefix="?").command_prefix == "?"

    def test_history_limit_from_settings(self, settings):
        settings.chat.max_conversation_history = 6
        assert DiscordBot(settings).history_limit == 6

    def test_rate_limit_first_request(self, bot):
        assert bot._check_rate_limit(123456) is True

    def test_rate_limit_blocks_rapid_requests(self, bot):
        assert bot._check_rate_limit(123456) is True
        assert bot._check_rate_limit(123456) is False

    def test_rate_limit_different_users(self, bot):
        assert bot._check_rate_limit(123456) is True
        assert bot._check_rate_limit(789012) is True

    def test_rate_limit_allows_after_window(self, bot):
        bot._rate_limits[123456] = datetime.now() - timedelta(seconds=10)
        assert bot._check_rate_limit(123456) is True

    def test_rate_limit_prunes_expired_entries(self, bot):
        stale = datetime.now() - timedelta(seconds=10)
        bot._rate_limits.update({user_id: stale for user_id in range(100)})

        assert bot._check_rate_limit(123456) is True
        assert list(bot._rate_limits) == [123456]

    def test_strip_mention(self, bot):
        assert bot._strip_mention("<@999> what's the pricing?") == "what's the pricing?"
        assert bot._strip_mention("<@!999>   ") == ""


class TestResponseEmbed:
    """Tests for the /ask embed."""

    @pytest.mark.parametrize("score, color", [
        (0.75, discord.Color.green()),
        (0.5, discord.Color.yellow()),
        (0.3, discord.Color.orange()),
    ])
    def test_color_by_top_score(self, bot, score, color):
        response = rag_response(sources=[doc("guide.md", "Exporting", score)])
        embed = bot._format_response_embed("How?", response)
        assert embed.color == color

    def test_no_sources_is_orange(self, bot):
        embed = bot._format_response_embed("Weather?", rag_response(answer="Not in the docs."))

        assert embed.color == discord.Color.orange()
        assert not any("Sources" in field.name for field in embed.fields)

    def test_sources_deduplicated_and_capped(self, bot):
        response = rag_response(sources=[
            doc("guide.md", "Exporting", 0.9),
            doc("guide.md", "Exporting", 0.85),
            doc("faq.md", "Export", 0.8),
            doc("billing.md", "Plans", 0.7),
            doc("limits.md", "Quotas", 0.6),
        ])

        embed = bot._format_response_embed("How?", response)

        sources_field = next(f for f in embed.fields if "Sources" in f.name)
        lines = sources_field.value.split("\n")
        assert len(lines) == 3
        assert lines[0] == "• guide.md - Exporting"
        assert lines == [f"• {label}" for label in response.source_labels()[:3]]

    def test_truncates_long_answer(self, bot):
        embed = bot._format_response_embed("Question?", rag_response(answer="A" * 5000))
        assert len(embed.description) <= 4000


class TestSlashAsk:
    """Tests for the /ask flow."""

    @pytest.mark.asyncio
    async def test_answers_with_embed(self, bot, rag_chain):
        interaction = AsyncMock()
        interaction.user = Mock(id=123456)

        await bot._handle_question(interaction, "How do I export?")

        interaction.response.defer.assert_awaited_once()
        rag_chain.answer.assert_awaited_once_with("How do I export?")
        embed = interaction.followup.send.call_args.kwargs["embed"]
        assert "File > Export" in embed.description
        assert bot._stats["questions_answered"] == 1

    @pytest.mark.asyncio
    async def test_rate_limited(self, bot, rag_chain):
        bot._rate_limits[123456] = datetime.now()
        interaction = AsyncMock()
        interaction.user = Mock(id=123456)

        await bot._handle_question(interaction, "Test question?")

        assert interaction.response.send_message.call_args.kwargs.get("ephemeral") is True
        rag_chain.answer.assert_not_called()

    @pytest.mark.asyncio
    async def test_error_shows_user_message(self, bot, rag_chain):
        rag_chain.answer.side_effect = GenerationError("429", kind="rate_limit")
        interaction = AsyncMock()
        interaction.user = Mock(id=1)

        await bot._handle_question(interaction, "Q?")

        sent = interaction.followup.send.call_args.args[0]
        assert "Rate limit exceeded" in sent
        assert bot._stats["errors"] == 1


class TestMentionChat:
    """Tests for mentions and DMs handled by the agent."""

    @pytest.mark.asyncio
    async def test_history_roles(self, bot, agent):
        user = Mock(id=1, bot=False)
        message = make_message("<@999> and the Team plan?", previous=[
            past("<@999> what's the pricing?", user),
            past("Pro is $10/month.", BOT_USER),
        ])

        await bot._handle_message_question(message, "and the Team plan?")

        conversation = agent.chat.call_args.args[0]
        assert [(m.role, m.content) for m in conversation] == [
            ("user", "what's the pricing?"),
            ("assistant", "Pro is $10/month."),
            ("user", "and the Team plan?"),
        ]
        message.reply.assert_awaited_once_with("Pro is $10/month.")

    @pytest.mark.asyncio
    async def test_history_respects_limit(self, bot, agent, settings):
        settings.chat.max_conversation_history = 1
        user = Mock(id=1, bot=False)
        message = make_message("q", previous=[past("old", user), past("recent", user)])

        await bot._handle_message_question(message, "q")

        conversation = agent.chat.call_args.args[0]
        assert [m.content for m in conversation] == ["recent", "q"]

    @pytest.mark.asyncio
    async def test_reply_truncated(self, bot, agent):
        agent.chat.return_value = "x" * 3000
        message = make_message("q")

        await bot._handle_message_question(message, "q")

        assert len(message.reply.call_args.args[0]) == 2000

    @pytest.mark.asyncio
    async def test_unexpected_error(self, bot, agent):
        agent.chat.side_effect = RuntimeError("boom")
        message = make_message("q")

        await bot._handle_message_question(message, "q")

        message.reply.assert_awaited_once_with(GENERIC_ERROR)

    @pytest.mark.asyncio
    async def test_on_message_mention_routes_to_agent(self, bot):
        message = make_message("<@999> what's the pricing?")
        bot._handle_message_question = AsyncMock()
        bot.process_commands = AsyncMock()

        await bot.on_message(message)

        bot._handle_message_question.assert_awaited_once_with(message, "what's the pricing?")

    @pytest.mark.asyncio
    async def test_on_message_ignores_bots(self, bot):
        message = make_message("<@999> hi")
        message.author.bot = True
        bot._handle_message_question = AsyncMock()

        await bot.on_message(message)

        bot._handle_message_question.assert_not_called()


class TestCreateBot:
    """Tests for the create_bot factory function."""

    def test_create_bot(self, settings):
        assert isinstance(create_bot(settings), DiscordBot)

    def test_create_bot_with_kwargs(self, settings):
        assert create_bot(settings, command_prefix=">>").command_prefix == ">>"
