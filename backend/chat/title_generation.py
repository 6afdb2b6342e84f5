# status: complete

import re
import threading
from typing import Optional

from chat.messages import strip_think_prefix
from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)

TITLE_SYSTEM_PROMPT = """You are a title generator. Given a user's message, generate a short, descriptive title (3-7 words max) that captures the essence of the conversation topic.
Rules:
- Be concise and descriptive
- Don't use quotes around the title
- Don't include phrases like "Title:" or "Topic:"
- Just output the title directly
- Use sentence case (capitalize first word only unless proper nouns)
- Examples of good titles: "Python debugging help", "Recipe for chocolate cake", "Travel plans for Paris", "Understanding quantum physics\""""


def clean_message_for_title(message: str) -> str:
    return strip_think_prefix(message or "").strip()


def clean_title(raw: str, max_length: Optional[int] = None) -> str:
    """Strip think blocks, quotes and Title:/Topic: prefixes from a model reply."""
    max_length = max_length or Config.get_title_max_length()
    title = re.sub(r"<think>[\s\S]*?(?:</think>|$)", "", raw or "", flags=re.IGNORECASE)
    title = re.sub(r"</?think>", "", title, flags=re.IGNORECASE)
    title = title.strip()
    title = re.sub(r"^[\"']|[\"']$", "", title)
    title = re.sub(r"^Title:\s*", "", title, flags=re.IGNORECASE)
    title = re.sub(r"^Topic:\s*", "", title, flags=re.IGNORECASE)
    return title.strip()[:max_length]


def fallback_title(message: str) -> str:
    return message[:50] + ("..." if len(message) > 50 else "")


def generate_title(first_message: str, client) -> str:
    """Ask the model for a short title; fall back to the start of the message."""
    message = clean_message_for_title(first_message)
    result = client.complete([
        {"role": "system", "content": TITLE_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": "/no_think Generate a short title for a conversation that starts with this "
                       f"message: \"{message[:500]}\"",
        },
    ])

    if result.get("error"):
        logger.warning(f"Title generation failed, using fallback: {result['error']}")
    title = clean_title(result.get("text") or "")
    return title or fallback_title(message)


def spawn_title_generation(thread_id: str, owner: str, first_message: str, client, db_manager=None) -> Optional[threading.Thread]:
    """
    Generate and store a thread title on a daemon thread.

    Failures are logged and never reach the chat request.
    """
    if not Config.is_title_generation_enabled():
        return None

    if db_manager is None:
        from utils.db_utils import db as db_manager

    def worker():
        try:
            title = generate_title(first_message, client)
            db_manager.update_thread_title(thread_id, owner, title)
            logger.info(f"Generated title for thread {thread_id}: {title}")
        except Exception as e:
            logger.error(f"Title generation for thread {thread_id} failed: {e}")

    thread = threading.Thread(target=worker, name=f"title-{thread_id}", daemon=True)
    thread.start()
    return thread
