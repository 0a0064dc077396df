"""
Discord Bot Module

Puts the support assistant on Discord.

Features:
- /ask: direct RAG answer with a sources embed
- Mentions and DMs: agentic chat, the model decides whether to search
- /help and /status slash commands
- Per-user rate limiting

Design Rationale:
- Uses discord.py for Discord API integration
- The bot keeps no conversation memory: for mentions and DMs the recent
  channel history is read from Discord on every request
- Errors are logged; users only see the error's non-sensitive message

Usage:
    python run_bot.py
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from config.settings import Settings
from rag_assistant.errors import AssistantError
from rag_assistant.memory import ChatMessage
from rag_assistant.rag_agent import RAGAgent, create_agent
from rag_assistant.rag_chain import RAGChain, RAGResponse, create_rag_chain
from rag_assistant.retriever import Retriever, build_retriever

# Configure logging
logger = logging.getLogger(__name__)

GENERIC_ERROR = "❌ Sorry, I encountered an error processing your question. Please try again later."


class DiscordBot(commands.Bot):
    """
    Discord Bot answering support questions.

    The RAG chain and agent are created lazily on first use unless passed in.
    """

    def __init__(
        self,
        settings: Settings,
        command_prefix: str = "!",
        rag_chain: Optional[RAGChain] = None,
        agent: Optional[RAGAgent] = None,
        **kwargs
    ):
        """
        Initialize the Discord Bot.

        Args:
            settings: Application settings
            command_prefix: Prefix for text commands (default: "!")
            rag_chain: Optional pre-configured RAG chain (/ask)
            agent: Optional pre-configured agent (mentions and DMs)
            **kwargs: Additional arguments for commands.Bot
        """
        # MESSAGE_CONTENT is a privileged intent, enable it in the Developer Portal
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            **kwargs
        )

        self.settings = settings
        self._rag_chain = rag_chain
        self._agent = agent
        self._retriever: Optional[Retriever] = None
        self._is_ready = False

        # Rate limiting (simple in-memory)
        self._rate_limits: Dict[int, datetime] = {}
        self._rate_limit_seconds = 3

        self._stats = {
            "questions_answered": 0,
            "errors": 0,
            "start_time": None,
        }

        logger.info("DiscordBot initialized")

    def _shared_retriever(self) -> Retriever:
        if self._retriever is None:
            self._retriever = build_retriever(self.settings)
        return self._retriever

    @property
    def rag_chain(self) -> RAGChain:
        if self._rag_chain is None:
            logger.info("Initializing RAG chain...")
            self._rag_chain = create_rag_chain(self.settings, retriever=self._shared_retriever())
        return self._rag_chain

    @property
    def agent(self) -> RAGAgent:
        if self._agent is None:
            logger.info("Initializing RAG agent...")
            self._agent = create_agent(self.settings, retriever=self._shared_retriever())
        return self._agent

    @property
    def history_limit(self) -> int:
        """Prior channel messages sent to the agent along with the question."""
        return max(self.settings.chat.max_conversation_history, 0)

    async def setup_hook(self):
        """Called when the bot is starting up."""
        await self._register_commands()
        logger.info("Slash commands registered")

    async def _register_commands(self):
        """Register slash commands with Discord."""

        @self.tree.command(name="ask", description="Ask a question about the product")
        @app_commands.describe(question="Your question")
        async def ask_command(interaction: discord.Interaction, question: str):
            await self._handle_question(interaction, question)

        @self.tree.command(name="help", description="Get help using the support bot")
        async def help_command(interaction: discord.Interaction):
            await self._send_help(interaction)

        @self.tree.command(name="status", description="Check bot status and statistics")
        async def status_command(interaction: discord.Interaction):
            await self._send_status(interaction)

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync commands: {e}")

    async def on_ready(self):
        """Called when the bot is ready and connected."""
        self._is_ready = True
        self._stats["start_time"] = datetime.now()

        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

        activity = discord.Activity(
            type=discord.ActivityType.listening,
            name="your questions | /ask"
        )
        await self.change_presence(activity=activity)

    async def on_message(self, message: discord.Message):
        """Handle incoming messages."""
        if message.author == self.user or message.author.bot:
            return

        is_mentioned = self.user in message.mentions
        is_dm = isinstance(message.channel, discord.DMChannel)

        if is_mentioned or is_dm:
            content = self._strip_mention(message.content)
            if content:
                await self._handle_message_question(message, content)
            else:
                await message.reply(
                    "👋 Hi! Ask me anything about the product.\n"
                    "Use `/ask` or just mention me with your question."
                )

        await self.process_commands(message)

    def _strip_mention(self, content: str) -> str:
        content = content.replace(f"<@{self.user.id}>", "")
        content = content.replace(f"<@!{self.user.id}>", "")
        return content.strip()

    async def _channel_history(self, message: discord.Message) -> List[ChatMessage]:
        """Recent channel messages before this one, oldest first."""
        if self.history_limit == 0:
            return []

        history = []
        async for previous in message.channel.history(limit=self.history_limit, before=message):
            text = self._strip_mention(previous.content)
            if not text:
                continue
            role = "assistant" if previous.author == self.user else "user"
            history.append(ChatMessage(role=role, content=text))
        history.reverse()
        return history

    async def _handle_message_question(self, message: discord.Message, question: str):
        """Handle a question from a mention or DM with the agent."""
        if not self._check_rate_limit(message.author.id):
            await message.reply(
                "⏳ Please wait a few seconds before asking another question.",
                delete_after=5
            )
            return

        async with message.channel.typing():
            try:
                history = await self._channel_history(message)
                reply = await self.agent.chat([*history, ChatMessage(role="user", content=question)])
                await message.reply(reply[:2000] or "🤔 I don't have an answer for that.")
                self._stats["questions_answered"] += 1
            except AssistantError as e:
                logger.error(f"Error handling message: {e}")
                self._stats["errors"] += 1
                await message.reply(f"❌ {e.user_message}")
            except Exception as e:
                logger.exception(f"Unexpected error handling message: {e}")
                self._stats["errors"] += 1
                await message.reply(GENERIC_ERROR)

    async def _handle_question(self, interaction: discord.Interaction, question: str):
        """Handle a question from the /ask slash command."""
        if not self._check_rate_limit(interaction.user.id):
            await interaction.response.send_message(
                "⏳ Please wait a few seconds before asking another question.",
                ephemeral=True
            )
            return

        # Shows "thinking..."
        await interaction.response.defer()

        try:
            response = await self.rag_chain.answer(question)
            embed = self._format_response_embed(question, response)
            await interaction.followup.send(embed=embed)
            self._stats["questions_answered"] += 1
        except AssistantError as e:
            logger.error(f"Error handling slash command: {e}")
            self._stats["errors"] += 1
            await interaction.followup.send(f"❌ {e.user_message}")
        except Exception as e:
            logger.exception(f"Unexpected error handling slash command: {e}")
            self._stats["errors"] += 1
            await interaction.followup.send(GENERIC_ERROR)

    def _format_response_embed(self, question: str, response: RAGResponse) -> discord.Embed:
        """Format a RAG response as a Discord embed, colored by the best match score."""
        top_score = max((doc.score for doc in response.sources), default=0.0)

        if top_score >= 0.6:
            color = discord.Color.green()
        elif top_score >= 0.4:
            color = discord.Color.yellow()
        else:
            color = discord.Color.orange()

        embed = discord.Embed(
            title="📚 Support Assistant",
            description=response.answer[:4000],  # Discord limit is 4096
            color=color,
            timestamp=datetime.now()
        )

        embed.add_field(name="❓ Question", value=question[:1000], inline=False)

        labels = response.source_labels()
        if labels:
            embed.add_field(
                name="📄 Sources",
                value="\n".join(f"• {label}" for label in labels[:3])[:1000],
                inline=False
            )

        embed.set_footer(text="Support Assistant | Use /help for more info")
        return embed

    async def _send_help(self, interaction: discord.Interaction):
        """Send help information."""
        embed = discord.Embed(
            title="🤖 Support Assistant - Help",
            description="I answer questions using the product documentation.",
            color=discord.Color.blue()
        )

        embed.add_field(
            name="💬 How to Ask Questions",
            value=(
                "**Option 1:** Use `/ask` for an answer with sources\n"
                "**Option 2:** Mention me with your question\n"
                "**Option 3:** Send me a DM"
            ),
            inline=False
        )

        embed.add_field(
            name="⚡ Commands",
            value=(
                "`/ask` - Ask a question\n"
                "`/help` - Show this help message\n"
                "`/status` - Bot status and stats"
            ),
            inline=False
        )

        embed.set_footer(text="Built with RAG (Retrieval-Augmented Generation)")

        await interaction.response.send_message(embed=embed)

    async def _send_status(self, interaction: discord.Interaction):
        """Send bot status information."""
        uptime = "N/A"
        if self._stats["start_time"]:
            delta = datetime.now() - self._stats["start_time"]
            hours, remainder = divmod(int(delta.total_seconds()), 3600)
            minutes, seconds = divmod(remainder, 60)
            uptime = f"{hours}h {minutes}m {seconds}s"

        try:
            index_stats = await self.rag_chain.retriever.vector_store.describe()
            knowledge_base = f"{index_stats.get('total_vector_count', 0)} chunks"
        except Exception as e:
            logger.error(f"Failed to read index stats: {e}")
            knowledge_base = "unavailable"

        embed = discord.Embed(
            title="📊 Bot Status",
            color=discord.Color.green() if self._is_ready else discord.Color.red()
        )
        embed.add_field(name="🟢 Status", value="Online" if self._is_ready else "Initializing...", inline=True)
        embed.add_field(name="⏱️ Uptime", value=uptime, inline=True)
        embed.add_field(name="🏠 Servers", value=str(len(self.guilds)), inline=True)
        embed.add_field(name="❓ Questions Answered", value=str(self._stats["questions_answered"]), inline=True)
        embed.add_field(name="📚 Knowledge Base", value=knowledge_base, inline=True)
        embed.add_field(name="🤖 LLM Provider", value=self.settings.llm.provider.capitalize(), inline=True)

        embed.set_footer(text=f"Latency: {round(self.latency * 1000)}ms")

        await interaction.response.send_message(embed=embed)

    def _check_rate_limit(self, user_id: int) -> bool:
        """Check if user is rate limited."""
        now = datetime.now()

        # only users still inside their window are kept
        self._rate_limits = {
            uid: last for uid, last in self._rate_limits.items()
            if (now - last).total_seconds() < self._rate_limit_seconds
        }

        if user_id in self._rate_limits:
            return False

        self._rate_limits[user_id] = now
        return True

    def run_bot(self, token: Optional[str] = None):
        """
        Run the bot with the given token.

        Args:
            token: Discord bot token (default from settings)
        """
        token = token or self.settings.discord_bot_token

        if not token:
            raise ValueError(
                "Discord bot token not provided. "
                "Set DISCORD_BOT_TOKEN environment variable or pass token directly."
            )

        logger.info("Starting Discord bot...")
        # logging is configured by the entry point
        self.run(token, log_handler=None)


def create_bot(settings: Settings, **kwargs) -> DiscordBot:
    """Factory function to create a configured Discord bot."""
    return DiscordBot(settings, **kwargs)
