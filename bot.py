# linkkeeper/bot.py
import logging
import os
import re
from typing import Optional

import httpx
from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(
    r"https?://(www\.)?[-a-zA-Z0-9@:%._\+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"([-a-zA-Z0-9()@:%_\+.~#?&/=]*)"
)
SUBMIT_TIMEOUT = 60.0  # API enriches before answering

WELCOME_TEXT = (
    "Welcome to LinkKeeper Bot! 🔗\n\n"
    "Send me any URL, and I will save it to your collection for easy access later."
)
HELP_TEXT = (
    "📚 How to use LinkKeeper Bot:\n\n"
    "• Simply send me any URL\n"
    "• I will automatically save it to your collection\n"
    "• Access your saved links through the web interface\n\n"
    "That's it! No commands needed, just send URLs! 🚀"
)
NO_URL_TEXT = (
    "🤔 Please send a valid URL starting with http:// or https://\n\n"
    "Example: https://example.com"
)
AUTH_ERROR_TEXT = "❌ Authentication error. Please contact the administrator."
SERVER_ERROR_TEXT = "❌ Server error. Please try again later."
GENERIC_ERROR_TEXT = "❌ Failed to save URL. Please try again."


def extract_url(text: Optional[str]) -> Optional[str]:
    match = URL_PATTERN.search(text or "")
    return match.group(0) if match else None


def reply_for_status(status_code: Optional[int], url: str) -> str:
    """Chat reply for the API answer; None means no answer at all."""
    if status_code is not None and 200 <= status_code < 300:
        return (
            f"✅ Link saved to LinkKeeper!\n\n🔗 {url}\n\n"
            "You can access all your saved links through the web interface."
        )
    if status_code == 401:
        logger.error("API authentication failed - check INTERNAL_API_KEY")
        return AUTH_ERROR_TEXT
    if status_code is not None and status_code >= 500:
        return SERVER_ERROR_TEXT
    return GENERIC_ERROR_TEXT


async def submit_url(
    client: httpx.AsyncClient, api_url: str, api_key: str, url: str
) -> Optional[int]:
    """POST the URL to the API. Returns the status code, or None on transport errors."""
    try:
        response = await client.post(
            api_url,
            json={"url": url},
            headers={"X-API-Key": api_key},
            timeout=SUBMIT_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.error(f"Error reaching API for {url}: {e!r}")
        return None
    return response.status_code


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user = update.effective_user
    logger.info(f"Bot started by user: {user.username if user else 'Unknown'}")
    await update.message.reply_text(WELCOME_TEXT)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(HELP_TEXT)


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE):
    message = update.message
    user = update.effective_user
    username = user.username if user else "Unknown"

    url = extract_url(message.text)
    if url is None:
        logger.debug(f"Non-URL message from {username}")
        await message.reply_text(NO_URL_TEXT)
        return

    logger.info(f"Processing URL from {username}: {url}")
    settings = context.bot_data
    status_code = await submit_url(
        settings["http_client"], settings["api_url"], settings["api_key"], url
    )
    if status_code is not None and status_code >= 300:
        logger.error(f"API answered {status_code} for URL from {username}: {url}")
    await message.reply_text(reply_for_status(status_code, url))


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error(f"Bot error: {context.error}")


def build_application(token: str, api_url: str, api_key: str) -> Application:
    async def post_init(application: Application):
        application.bot_data["http_client"] = httpx.AsyncClient()

    async def post_shutdown(application: Application):
        client = application.bot_data.get("http_client")
        if client is not None:
            await client.aclose()

    application = (
        Application.builder()
        .token(token)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    application.bot_data["api_url"] = api_url
    application.bot_data["api_key"] = api_key

    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    application.add_error_handler(on_error)
    return application


def main():
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    token = os.environ.get("TELEGRAM_BOT_TOKEN")
    api_key = os.environ.get("INTERNAL_API_KEY")
    if not token:
        raise SystemExit("TELEGRAM_BOT_TOKEN must be provided in environment variables")
    if not api_key:
        raise SystemExit("INTERNAL_API_KEY must be provided in environment variables")

    api_url = os.environ.get("API_URL", "http://localhost:8000/api/urls")
    application = build_application(token, api_url, api_key)
    logger.info("LinkKeeper Telegram bot launching")
    application.run_polling()


if __name__ == "__main__":
    main()
