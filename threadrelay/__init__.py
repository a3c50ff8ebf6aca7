"""threadrelay -- Telegram to OpenAI Assistants relay."""
