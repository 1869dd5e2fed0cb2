"""Global pytest configuration."""

import os

# Never call a real model from tests, whatever the local .env says
os.environ["AI_USE_MOCK"] = "true"
os.environ.pop("OPENAI_API_KEY", None)
