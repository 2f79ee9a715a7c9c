"""
XP / level / rank bookkeeping.

Level and rank are derived from XP on every read, never stored, so they
cannot drift out of sync with the XP total.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from . import config
from .logger import logger
from .models import UserStats
from .parser import XP_TAG_PATTERN

# (minimum XP, rank) in descending order
RANK_THRESHOLDS = (
    (3000, "Master"),
    (1500, "Advanced"),
    (500, "Intermediate"),
    (0, "Beginner"),
)


def extract_xp_gain(text: str) -> Optional[int]:
    """
    Return the XP awarded by a reply, or None if it carries no tag.

    Only the first [XP: +N] tag counts; any further tags are ignored.
    """
    match = XP_TAG_PATTERN.search(text or "")
    if not match:
        return None
    return int(match.group(1))


def level_for_xp(xp: int) -> int:
    return xp // config.XP_PER_LEVEL + 1


def rank_for_xp(xp: int) -> str:
    for minimum, rank in RANK_THRESHOLDS:
        if xp >= minimum:
            return rank
    return RANK_THRESHOLDS[-1][1]


@dataclass(frozen=True)
class XpNotification:
    """Transient "+N XP" toast."""
    amount: int
    expires_at: float


@dataclass
class GamificationState:
    xp: int = 0
    notification: Optional[XpNotification] = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)

    @property
    def level(self) -> int:
        return level_for_xp(self.xp)

    @property
    def rank(self) -> str:
        return rank_for_xp(self.xp)

    @property
    def level_progress(self) -> float:
        """Fraction (0-1) of the way to the next level."""
        return (self.xp % config.XP_PER_LEVEL) / config.XP_PER_LEVEL

    def stats(self) -> UserStats:
        return UserStats(xp=self.xp, level=self.level, rank=self.rank)

    def award(self, gain: int) -> XpNotification:
        """Add XP and raise the "+N XP" notification for a few seconds."""
        if gain < 0:
            raise ValueError(f"XP gain must be non-negative, got {gain}")

        old_rank = self.rank
        self.xp += gain
        self.notification = XpNotification(
            amount=gain,
            expires_at=self.clock() + config.XP_NOTIFICATION_SECONDS,
        )
        logger.xp(f"+{gain} XP (total {self.xp}, level {self.level}, {self.rank})")
        if self.rank != old_rank:
            logger.xp(f"Rank up: {old_rank} → {self.rank}")
        return self.notification

    def apply_reply(self, reply_text: str) -> Optional[int]:
        """Award the XP tagged in a reply, if any. Returns the gain."""
        gain = extract_xp_gain(reply_text)
        if gain is not None:
            self.award(gain)
        return gain

    def notification_visible(self) -> bool:
        return self.notification is not None and self.clock() < self.notification.expires_at

    def clear_notification(self) -> None:
        self.notification = None

    def reset(self) -> None:
        self.xp = 0
        self.notification = None
