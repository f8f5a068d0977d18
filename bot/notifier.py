# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                        DISCORD NOTIFIER MODULE                             ║
# ║    Thin discord.py wrapper: log in, wait until ready, post plain text      ║
# ║    to a channel. Every delivery failure surfaces as SendError.             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
notifier.py: Outbound chat messages.
"""
import asyncio
from typing import Optional

import discord

from utils.error_handling import SendError
from utils.logging import logger
from utils.message_formatter import split_message

READY_TIMEOUT = 60.0

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ DISCORD NOTIFIER                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class DiscordNotifier:
    # --- __init__ ---
    # Args:
    #     token: The bot token.
    #     client: Optional pre-built discord.Client (tests pass a double).
    #     ready_timeout: Seconds to wait for the gateway READY event.
    def __init__(self, token: str, client: Optional[discord.Client] = None, ready_timeout: float = READY_TIMEOUT):
        self._token = token
        # Posting to a channel needs no privileged intents
        self._client = client or discord.Client(intents=discord.Intents.default())
        self._ready_timeout = ready_timeout
        self._runner: Optional[asyncio.Task] = None

    @property
    def client(self) -> discord.Client:
        return self._client

    # --- start ---
    # Logs in and runs the gateway connection in the background.
    # Raises: SendError if login fails or READY does not arrive in time.
    async def start(self) -> None:
        try:
            await self._client.login(self._token)
        except discord.LoginFailure as e:
            raise SendError(f"Discord rejected the bot token: {e}") from e
        except (discord.HTTPException, OSError) as e:
            raise SendError(f"Could not log in to Discord: {e}") from e

        self._runner = asyncio.create_task(self._client.connect(reconnect=True), name="discord-gateway")
        ready = asyncio.create_task(self._client.wait_until_ready())
        done, _ = await asyncio.wait({self._runner, ready}, timeout=self._ready_timeout,
                                     return_when=asyncio.FIRST_COMPLETED)
        if ready not in done:
            ready.cancel()
            if self._runner in done and self._runner.exception() is not None:
                raise SendError(f"Discord gateway connection failed: {self._runner.exception()}")
            raise SendError(f"Discord client not ready after {self._ready_timeout}s")
        logger.info(f"✅ Logged in to Discord as {self._client.user}")

    # --- close ---
    async def close(self) -> None:
        await self._client.close()
        if self._runner is not None:
            try:
                await asyncio.wait_for(self._runner, timeout=10)
            except asyncio.TimeoutError:
                logger.warning("Discord gateway task did not stop within 10s")
            except (discord.DiscordException, OSError) as e:
                logger.debug(f"Discord gateway ended with: {e}")
            self._runner = None

    # --- _resolve_channel ---
    async def _resolve_channel(self, channel_id: int):
        channel = self._client.get_channel(channel_id)
        if channel is None:
            channel = await self._client.fetch_channel(channel_id)
        if not hasattr(channel, "send"):
            raise SendError(f"Channel {channel_id} cannot receive messages")
        return channel

    # --- send_message ---
    # Posts `content`, split on line boundaries to fit the 2000-char limit.
    # Raises: SendError if the channel is unknown or any chunk fails.
    async def send_message(self, channel_id: int, content: str) -> None:
        chunks = split_message(content)
        if not chunks:
            return
        try:
            channel = await self._resolve_channel(channel_id)
            for chunk in chunks:
                await channel.send(chunk)
        except SendError:
            raise
        except (discord.DiscordException, OSError, asyncio.TimeoutError) as e:
            raise SendError(f"Failed to send to channel {channel_id}: {e}") from e
        logger.debug(f"Sent {len(chunks)} message(s) to channel {channel_id}")
