"""Speech synthesis for audio narration.

Uses OpenAI text-to-speech and writes MP3 files under AUDIO_DIR. The
service is optional: without a usable key `generate_audio_narration`
returns None and the pipeline skips audio.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from pathlib import Path
from typing import List, Optional

import aiofiles
from openai import AsyncOpenAI

from src.models.book import AudioNarration
from src.models.insight import count_words

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "nova"
DEFAULT_MODEL = "tts-1"
AUDIO_DIR = Path(os.environ.get("AUDIO_DIR", "audio"))
AUDIO_BASE_URL = os.environ.get("AUDIO_BASE_URL", "/audio")

# Speech endpoint input limit is 4096 characters
MAX_TTS_INPUT_CHARS = 4000
WORDS_PER_MINUTE = 150
MIN_API_KEY_LENGTH = 10

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def estimate_duration_seconds(text: str) -> int:
    """Spoken length at 150 words per minute."""
    return round(count_words(text) / WORDS_PER_MINUTE * 60)


def split_for_speech(text: str, max_chars: int = MAX_TTS_INPUT_CHARS) -> List[str]:
    """Split text at sentence boundaries into pieces of at most max_chars."""
    pieces: List[str] = []
    current = ""
    for sentence in _SENTENCE_END.split(text.strip()):
        while len(sentence) > max_chars:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(sentence[:max_chars])
            sentence = sentence[max_chars:]
        candidate = f"{current} {sentence}".strip() if current else sentence
        if len(candidate) > max_chars:
            pieces.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


class NarrationService:
    """Text-to-speech via OpenAI's audio API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        default_voice: Optional[str] = None,
        audio_dir: Optional[Path] = None,
        base_url: Optional[str] = None,
    ):
        """Initialize the narration service.

        Args:
            api_key: Defaults to SPEECH_API_KEY, then OPENAI_API_KEY.
            model: Defaults to NARRATION_MODEL env var or tts-1.
            default_voice: Defaults to NARRATION_VOICE env var or nova.
            audio_dir: Directory for generated files.
            base_url: URL prefix the files are served under.
        """
        self._api_key = api_key or os.environ.get("SPEECH_API_KEY") or os.environ.get("OPENAI_API_KEY")
        self.model = model or os.environ.get("NARRATION_MODEL", DEFAULT_MODEL)
        self.default_voice = default_voice or os.environ.get("NARRATION_VOICE", DEFAULT_VOICE)
        self.audio_dir = audio_dir or AUDIO_DIR
        self.base_url = (base_url or AUDIO_BASE_URL).rstrip("/")
        self._client: Optional[AsyncOpenAI] = None

    def is_configured(self) -> bool:
        return bool(self._api_key) and len(self._api_key.strip()) > MIN_API_KEY_LENGTH

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def _synthesize(self, text: str, voice: str) -> bytes:
        audio = bytearray()
        for piece in split_for_speech(text):
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=voice,
                input=piece,
            )
            # MP3 frames concatenate into a playable stream
            audio.extend(response.content)
        return bytes(audio)

    async def generate_audio_narration(
        self,
        script: str,
        voice_id: Optional[str] = None,
        file_key: Optional[str] = None,
    ) -> Optional[AudioNarration]:
        """Synthesize `script` and store it as an MP3.

        Args:
            script: Plain narration text.
            voice_id: Voice name; defaults to the configured voice.
            file_key: Stable prefix for the file name (e.g. insight id).

        Returns:
            The audio URL and estimated duration, or None when unconfigured.
        """
        if not self.is_configured():
            logger.info("Speech synthesis not configured, skipping narration")
            return None

        voice = voice_id or self.default_voice
        audio = await self._synthesize(script, voice)

        self.audio_dir.mkdir(parents=True, exist_ok=True)
        filename = f"insight-{file_key or 'audio'}-{uuid.uuid4().hex[:8]}.mp3"
        async with aiofiles.open(self.audio_dir / filename, "wb") as f:
            await f.write(audio)

        narration = AudioNarration(
            audioUrl=f"{self.base_url}/{filename}",
            durationEstimateSeconds=estimate_duration_seconds(script),
        )
        logger.info(
            "Audio narration generated",
            extra={
                "file": filename,
                "bytes": len(audio),
                "voice": voice,
                "duration_estimate": narration.durationEstimateSeconds,
            },
        )
        return narration


_default_service: Optional[NarrationService] = None


def get_narration_service() -> NarrationService:
    """Get the default narration service singleton."""
    global _default_service
    if _default_service is None:
        _default_service = NarrationService()
    return _default_service
