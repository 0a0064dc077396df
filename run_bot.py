"""
Run Discord Bot - Direct launch script
"""
import sys
import logging

from config.settings import load_settings
from rag_assistant.errors import ConfigurationError

try:
    settings = load_settings()
except ConfigurationError as e:
    print(f"❌ {e}")
    sys.exit(1)

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

print("=" * 60)
print("  🤖 Support Assistant Discord Bot - Starting...")
print("=" * 60)

from rag_assistant.discord_bot import create_bot

print("""
Bot Commands:
  /ask <question>  - Ask a question, answered with sources
  /help            - Show help information
  /status          - Show bot status

You can also mention the bot or DM it with your question.

Press Ctrl+C to stop the bot.
""")

token = settings.discord_bot_token

if not token:
    print("❌ DISCORD_BOT_TOKEN not set in .env!")
    sys.exit(1)

# Remove quotes if present
token = token.strip('"').strip("'")

bot = create_bot(settings)
bot.run_bot(token)
