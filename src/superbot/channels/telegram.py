"""
Telegram bot adapter (long polling via python-telegram-bot).
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from telegram import Update
from telegram.constants import ChatAction
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from superbot.bus.events import OutboundMessage
from superbot.bus.queue import MessageBus
from superbot.channels.base import BaseChannel

logger = logging.getLogger(__name__)

PHOTO_SUFFIXES = (".jpg", ".jpeg", ".png", ".gif", ".webp")
AUDIO_SUFFIXES = (".mp3", ".m4a", ".wav", ".flac")


def chunk_message(text: str, limit: int = 4096) -> list[str]:
    """
    Split text into pieces of at most `limit` characters.

    Prefers paragraph breaks, then sentence ends, then spaces; hard-cuts
    only when none is available.
    """
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text
    while len(remaining) > limit:
        window = remaining[:limit]
        split_at = window.rfind("\n\n")
        if split_at <= 0:
            split_at = window.rfind(". ")
            if split_at > 0:
                split_at += 1
        if split_at <= 0:
            split_at = window.rfind(" ")
        if split_at <= 0:
            split_at = limit

        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip()

    if remaining:
        chunks.append(remaining)
    return chunks


class TelegramChannel(BaseChannel):
    """
    Telegram channel using python-telegram-bot v20+ long polling.

    Handles:
    - Text messages
    - Photos, documents, voice and audio (downloaded to the workspace)
    - Commands: /start, /reset, /help

    Sender ids are "<user id>|<username>" so allow-lists can use either.
    """

    MAX_MESSAGE_LENGTH = 4096

    def __init__(self, name: str, bus: MessageBus, config: dict[str, Any]):
        super().__init__(name, bus, config)
        self._app: Application | None = None
        self._media_dir: Path | None = None

    @property
    def token(self) -> str:
        return self.config.get("token", "")

    async def start(self) -> None:
        """Start long polling. Raises if the bot can't connect."""
        if not self.token:
            raise ValueError("Telegram token not configured")

        self._app = Application.builder().token(self.token).build()
        self._register_handlers(self._app)

        await self._app.initialize()
        await self._app.start()
        assert self._app.updater is not None
        await self._app.updater.start_polling()

        workspace = self.config.get("workspace", "~/.superbot/workspace")
        self._media_dir = Path(workspace).expanduser().resolve() / "media" / "telegram"
        self._media_dir.mkdir(parents=True, exist_ok=True)

        self._running = True
        logger.info(f"Telegram bot polling (token {self.token[:8]}...)")

    def _register_handlers(self, app: Application) -> None:
        media_filter = (
            (filters.TEXT & ~filters.COMMAND)
            | filters.PHOTO
            | filters.Document.ALL
            | filters.VOICE
            | filters.AUDIO
        )
        app.add_handler(MessageHandler(media_filter, self._on_message))
        app.add_handler(CommandHandler(["start", "help", "reset"], self._on_command))

    @staticmethod
    def _sender_id(update: Update) -> str:
        user = update.effective_user
        if user.username:
            return f"{user.id}|{user.username}"
        return str(user.id)

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.effective_user or not update.message:
            return

        sender_id = self._sender_id(update)
        if not self.is_allowed(sender_id):
            await update.message.reply_text("Sorry, you're not authorized to use this bot.")
            return

        await update.effective_chat.send_action(ChatAction.TYPING)

        message = update.message
        content = message.text or message.caption or ""
        media: list[str] = []

        if message.photo:
            path = await self._download_file(message.photo[-1].file_id, "photo", ".jpg")
            if path:
                media.append(path)
            content = content or "[Photo attached]"

        if message.document:
            doc = message.document
            ext = Path(doc.file_name).suffix if doc.file_name else ""
            path = await self._download_file(doc.file_id, "doc", ext)
            if path:
                media.append(path)
            content = content or f"[Document attached: {doc.file_name or 'file'}]"

        if message.voice:
            path = await self._download_file(message.voice.file_id, "voice", ".ogg")
            if path:
                media.append(path)
            content = content or "[Voice message attached]"

        if message.audio:
            audio = message.audio
            ext = Path(audio.file_name).suffix if audio.file_name else ".mp3"
            path = await self._download_file(audio.file_id, "audio", ext)
            if path:
                media.append(path)
            content = content or f"[Audio attached: {audio.file_name or 'audio'}]"

        self._handle_message(
            sender_id=sender_id,
            chat_id=str(update.effective_chat.id),
            content=content,
            media=media,
            metadata={
                "update_id": update.update_id,
                "message_id": message.message_id,
                "username": update.effective_user.username,
            },
        )

    async def _on_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.effective_user or not update.message or not update.message.text:
            return

        sender_id = self._sender_id(update)
        if not self.is_allowed(sender_id):
            await update.message.reply_text("Sorry, you're not authorized to use this bot.")
            return

        command = update.message.text.split()[0].split("@")[0]
        if command == "/start":
            await update.message.reply_text(
                "👋 Hi! I'm superbot, your personal AI assistant.\n\n"
                "Just send me a message and I'll respond!"
            )
        elif command == "/help":
            await update.message.reply_text(
                "📖 *Available commands:*\n\n"
                "/start - Start the bot\n"
                "/help - Show this help\n"
                "/reset - Reset conversation\n\n"
                "Just send any message to chat with me!",
                parse_mode="Markdown",
            )
        elif command == "/reset":
            self._handle_message(
                sender_id=sender_id,
                chat_id=str(update.effective_chat.id),
                content="/reset",
                metadata={"command": "reset"},
            )
            await update.message.reply_text("🔄 Conversation reset!")

    async def _download_file(self, file_id: str, prefix: str, ext: str) -> str | None:
        if not self._media_dir or not self._app:
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        dest = self._media_dir / f"{prefix}_{timestamp}_{file_id[:8]}{ext}"
        try:
            tg_file = await self._app.bot.get_file(file_id)
            await tg_file.download_to_drive(dest)
        except Exception as e:
            logger.error(f"Error downloading Telegram file {file_id}: {e}")
            return None
        logger.debug(f"Downloaded {dest.name}")
        return str(dest)

    async def stop(self) -> None:
        self._running = False
        if not self._app:
            return
        if self._app.updater and self._app.updater.running:
            await self._app.updater.stop()
        if self._app.running:
            await self._app.stop()
        await self._app.shutdown()
        self._app = None

    async def send(self, msg: OutboundMessage) -> None:
        """Send text (chunked) then any attachments."""
        if not self._app:
            logger.warning("Telegram app not initialized")
            return

        bot = self._app.bot
        for chunk in chunk_message(msg.content, self.MAX_MESSAGE_LENGTH) if msg.content else []:
            await bot.send_message(chat_id=msg.chat_id, text=chunk)

        for media_path in msg.media:
            path = Path(media_path)
            if not path.exists():
                logger.warning(f"Media file not found: {media_path}")
                continue

            suffix = path.suffix.lower()
            with open(path, "rb") as f:
                if suffix in PHOTO_SUFFIXES:
                    await bot.send_photo(chat_id=msg.chat_id, photo=f)
                elif suffix == ".ogg":
                    await bot.send_voice(chat_id=msg.chat_id, voice=f)
                elif suffix in AUDIO_SUFFIXES:
                    await bot.send_audio(chat_id=msg.chat_id, audio=f)
                else:
                    await bot.send_document(chat_id=msg.chat_id, document=f)
