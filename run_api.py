"""
Run HTTP API - Direct launch script

    python run_api.py            # serves on 0.0.0.0:8000
    HOST=127.0.0.1 PORT=9000 python run_api.py
"""
import sys
import logging
import os

import uvicorn

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
print("  🌐 Support Assistant API - Starting...")
print("=" * 60)

from rag_assistant.api import create_app

print("""
Endpoints:
  POST /api/ask   - Answer with sources     {message, conversationHistory}
  POST /api/chat  - Agent chat              {messages}
  GET  /health    - Liveness check
""")

app = create_app(settings)

uvicorn.run(
    app,
    host=os.getenv("HOST", "0.0.0.0"),
    port=int(os.getenv("PORT", "8000")),
    log_config=None,
)
