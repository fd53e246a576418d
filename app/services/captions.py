"""Per-platform captions built from the video title, script and niche catalog.

Captions are deterministic: the same video always gets the same text, so
re-publishing a platform does not produce a different post body.
"""

import re
from dataclasses import dataclass, field

from app.services.catalog import DEFAULT_CATEGORY_ID, get_niche

HOOK_MAX_LENGTH = 150
YOUTUBE_TITLE_MAX = 100
YOUTUBE_DESCRIPTION_MAX = 5000
YOUTUBE_MAX_TAGS = 15
AI_DISCLOSURE = "Made with AI"


@dataclass(frozen=True)
class YouTubeMetadata:
    title: str
    description: str
    tags: list[str] = field(default_factory=list)
    category_id: str = DEFAULT_CATEGORY_ID


def extract_hook(script_text: str | None) -> str:
    """First sentence of the script, capped at HOOK_MAX_LENGTH characters."""
    if not script_text:
        return ""
    first = re.split(r"[.!?]", script_text, maxsplit=1)[0].strip()
    return first[:HOOK_MAX_LENGTH]


def _opening(hook_line: str, script_hook: str, fallback: str) -> str:
    if hook_line and script_hook:
        return f"{hook_line}\n\n{script_hook}..."
    if script_hook:
        return f"{script_hook}..."
    return hook_line or fallback


def youtube_metadata(
    title: str,
    niche_id: str | None,
    script_text: str | None = None,
    include_ai_tags: bool = True,
) -> YouTubeMetadata:
    """Title, description, tags and category for a YouTube Short."""
    niche = get_niche(niche_id)
    hook = extract_hook(script_text)

    lines = [_opening(niche.hook if niche else "", hook, title)]
    if niche and niche.engagement:
        lines += ["", niche.engagement]
    if niche and niche.cta:
        lines += ["", niche.cta]
    hashtags = (niche.hashtags[:3] if niche else []) + ["#Shorts"]
    lines += ["", " ".join(hashtags)]
    if include_ai_tags:
        lines += ["", AI_DISCLOSURE]

    tags = list(niche.tags) if niche else []
    tags += [w for w in re.sub(r"[^a-z0-9\s]", "", title.lower()).split() if len(w) > 3]
    tags.append("shorts")
    if include_ai_tags:
        tags.append("ai generated")
    unique_tags = list(dict.fromkeys(tags))[:YOUTUBE_MAX_TAGS]

    return YouTubeMetadata(
        title=title[:YOUTUBE_TITLE_MAX],
        description="\n".join(lines)[:YOUTUBE_DESCRIPTION_MAX],
        tags=unique_tags,
        category_id=niche.category_id if niche else DEFAULT_CATEGORY_ID,
    )


def instagram_caption(
    title: str,
    niche_id: str | None,
    script_text: str | None = None,
    include_ai_tags: bool = True,
) -> str:
    niche = get_niche(niche_id)
    hook = extract_hook(script_text)

    parts = [_opening(niche.hook.lower() if niche else "", hook, title.lower())]
    if niche and niche.engagement:
        parts += ["", niche.engagement]
    if niche and niche.cta:
        parts += ["", niche.cta]
    hashtags = (niche.hashtags[:4] if niche else []) + ["#Reels", "#Viral"]
    if include_ai_tags:
        hashtags.append("#AIGenerated")
    parts += ["", ".", ".", " ".join(hashtags)]
    return "\n".join(parts)


def facebook_caption(
    title: str,
    niche_id: str | None,
    script_text: str | None = None,
    include_ai_tags: bool = True,
) -> str:
    niche = get_niche(niche_id)
    hook = extract_hook(script_text)

    parts = [_opening(niche.hook if niche else "", hook, title)]
    if niche and niche.engagement:
        parts += ["", niche.engagement]
    hashtags = niche.hashtags[:3] if niche else []
    if hashtags:
        parts += ["", " ".join(hashtags)]
    if include_ai_tags:
        parts += ["", AI_DISCLOSURE]
    return "\n".join(parts)
