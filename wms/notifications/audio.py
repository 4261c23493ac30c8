"""
Audio cue selection.

The channel decides *which* cue to play; producing sound is left to the
embedding UI. Players must never raise into the dispatcher.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from wms.notifications.models import AudioCue

logger = logging.getLogger(__name__)

SOUND_FILES: Dict[AudioCue, str] = {
    AudioCue.SUCCESS: "/sounds/notification-success.mp3",
    AudioCue.WARNING: "/sounds/notification-warning.mp3",
    AudioCue.ERROR: "/sounds/notification-error.mp3",
}


def sound_url(cue: Optional[AudioCue] = None) -> str:
    """Sound file for ``cue``; unknown or missing cues use the success tone."""
    return SOUND_FILES.get(cue, SOUND_FILES[AudioCue.SUCCESS])


class SoundPlayer:
    """
    Resolves a cue to its sound file and hands it to a playback backend.

    Args:
        backend: Called with the sound URL; None records only
    """

    def __init__(self, backend: Optional[Callable[[str], None]] = None):
        self.backend = backend
        self.history: List[AudioCue] = []

    def play(self, cue: AudioCue = AudioCue.SUCCESS) -> bool:
        self.history.append(cue)
        if self.backend is None:
            logger.debug("[Audio] %s cue (no backend)", cue.value)
            return False
        try:
            self.backend(sound_url(cue))
            return True
        except Exception as e:
            logger.error("[Audio] Error playing notification sound: %s", e)
            return False
