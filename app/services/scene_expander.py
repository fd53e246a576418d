"""Scene expansion into timed image slots.

Converts a narration script (ordered scenes) plus the measured audio duration
into an ordered list of image slots with contiguous timing windows. Pure and
deterministic: identical input always yields identical output, which keeps
retries idempotent.

Algorithm:
    1. Target slot count = max(scene count, round(duration_s / 5)), at least 1.
    2. Split each scene's narration into sentence fragments on . ! ?
       (trimmed, empties dropped). Fragments inherit the parent scene's
       visual description and index. No fragments at all → one fragment made
       of the first scene's raw text (empty string when there are no scenes).
    3. More fragments than target → keep the first `target` fragments.
    4. Fewer fragments than target → re-select fragments cyclically from the
       start until the target is reached.
    5. Prefix each slot's visual description with one of ten camera framings,
       chosen by slot position modulo ten.
    6. Allocate durations proportional to each slot's text length, rounding
       half up, on a running cursor; the last slot always ends at the audio
       duration so the windows sum exactly to it.

Usage:
    from app.services.scene_expander import expand_scenes

    result = expand_scenes(scenes, duration_ms=42_000)
    prompts = [slot.visual_description for slot in result.slots]
"""

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from app.schemas.checkpoint import TimingWindow
from app.schemas.video import Scene

SECONDS_PER_IMAGE = 5

CAMERA_FRAMINGS = (
    "wide establishing shot",
    "slight camera push-in",
    "close-up on detail",
    "subtle pan right",
    "low angle shot",
    "slow dolly back",
    "over-the-shoulder view",
    "gentle tilt up",
    "high angle overhead view",
    "slow track left",
)

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class ImageSlot:
    """One timed image placeholder.

    Attributes:
        text: Narration fragment shown during this slot.
        visual_description: Framing-decorated image prompt.
        parent_scene_index: Index of the scene the fragment came from.
    """

    text: str
    visual_description: str
    parent_scene_index: int


@dataclass(frozen=True)
class ExpansionResult:
    slots: list[ImageSlot]
    timings: list[TimingWindow]


@dataclass(frozen=True)
class _Fragment:
    text: str
    visual_description: str
    scene_index: int


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def target_slot_count(scene_count: int, duration_ms: int) -> int:
    """Number of slots for the given scene count and audio duration (never below 1)."""
    return max(scene_count, _round_half_up(duration_ms / 1000 / SECONDS_PER_IMAGE), 1)


def camera_framing(position: int) -> str:
    return CAMERA_FRAMINGS[position % len(CAMERA_FRAMINGS)]


def decorate_prompt(visual_description: str, position: int) -> str:
    framing = camera_framing(position)
    return f"{framing}, {visual_description}" if visual_description else framing


def split_fragments(scenes: Sequence[Scene]) -> list[_Fragment]:
    """Split every scene into sentence fragments (step 2, with fallback)."""
    fragments = [
        _Fragment(piece.strip(), scene.visual_description, index)
        for index, scene in enumerate(scenes)
        for piece in _SENTENCE_SPLIT.split(scene.text)
        if piece.strip()
    ]
    if fragments:
        return fragments

    if scenes:
        first = scenes[0]
        return [_Fragment(first.text, first.visual_description, 0)]
    return [_Fragment("", "", 0)]


def select_fragments(fragments: list[_Fragment], target: int) -> list[_Fragment]:
    """Truncate or cyclically extend fragments to exactly `target` entries."""
    if len(fragments) >= target:
        return fragments[:target]
    return [fragments[i % len(fragments)] for i in range(target)]


def allocate_timings(lengths: Sequence[int], duration_ms: int) -> list[TimingWindow]:
    """Split duration_ms across slots proportionally to their text lengths.

    When every slot text is empty the split is even. Non-final windows are
    clamped to the duration; the final window always ends exactly at it.
    """
    count = len(lengths)
    total = sum(lengths)
    timings: list[TimingWindow] = []
    cursor = 0
    for i, length in enumerate(lengths):
        proportion = length / total if total else 1 / count
        if i == count - 1:
            end = duration_ms
        else:
            end = min(cursor + _round_half_up(proportion * duration_ms), duration_ms)
        timings.append(TimingWindow(start_ms=cursor, end_ms=end))
        cursor = end
    return timings


def expand_scenes(scenes: Sequence[Scene], duration_ms: int) -> ExpansionResult:
    """Expand scenes into timed image slots.

    Args:
        scenes: Ordered scenes (narration text + visual description).
        duration_ms: Measured narration audio duration in milliseconds.

    Returns:
        ExpansionResult with len(slots) == len(timings) >= len(scenes),
        contiguous windows starting at 0 and ending at duration_ms.

    Raises:
        ValueError: If duration_ms is negative.

    Example:
        >>> scenes = [Scene(text="a" * 40), Scene(text="b" * 10), Scene(text="c" * 50)]
        >>> [t.duration_ms for t in expand_scenes(scenes, 10_000).timings]
        [4000, 1000, 5000]
    """
    if duration_ms < 0:
        raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")

    target = target_slot_count(len(scenes), duration_ms)
    selected = select_fragments(split_fragments(scenes), target)

    slots = [
        ImageSlot(
            text=fragment.text,
            visual_description=decorate_prompt(fragment.visual_description, position),
            parent_scene_index=fragment.scene_index,
        )
        for position, fragment in enumerate(selected)
    ]
    timings = allocate_timings([len(slot.text) for slot in slots], duration_ms)
    return ExpansionResult(slots=slots, timings=timings)
