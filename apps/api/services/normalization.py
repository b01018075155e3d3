"""Platform record variants and their mapping onto canonical content rows."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse


SOCIAL_PLATFORMS = {"linkedin", "twitter", "threads"}
_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")
_IMG_SRC_RE = re.compile(r'<img[^>]+src="([^">]+)"', re.IGNORECASE)


@dataclass
class NormalizedContent:
    """Canonical content shape produced by every platform variant."""

    platform: str
    platform_content_id: str
    creator_id: str
    url: str
    title: Optional[str]
    description: Optional[str]
    content_body: Optional[str]
    published_at: Optional[datetime]
    media_urls: List[Dict[str, Any]] = field(default_factory=list)
    engagement: Dict[str, Any] = field(default_factory=dict)
    reference_type: Optional[str] = None
    referenced_content: Optional[Dict[str, Any]] = None
    content_hash: Optional[str] = None

    def identity(self) -> tuple:
        return (self.platform, self.platform_content_id, self.creator_id)


def normalize_text(text: str) -> str:
    cleaned = _NON_WORD_RE.sub(" ", (text or "").lower())
    return _SPACE_RE.sub(" ", cleaned).strip()


def strip_html(text: Optional[str]) -> str:
    return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", text or "")).strip()


def content_hash(
    *,
    platform: str,
    creator_id: str,
    title: Optional[str],
    description: Optional[str],
    content_body: Optional[str],
    url: str,
) -> str:
    """Fingerprint used to detect the same post published on several platforms.

    Social posts hash the first 100 significant words of the post text so light
    edits between cross-posts still collide; other platforms hash the
    normalized title plus the source domain.
    """
    if platform in SOCIAL_PLATFORMS:
        text = description or content_body or title or ""
        words = [word for word in normalize_text(text).split(" ") if len(word) > 2][:100]
        components = [creator_id, " ".join(words)]
    else:
        text = title or description or content_body or ""
        components = [creator_id, normalize_text(text)]
        domain = urlparse(url or "").netloc.lower()
        if domain.startswith("www."):
            domain = domain[4:]
        if domain:
            components.append(domain)
    return hashlib.sha256(":".join(components).encode("utf-8")).hexdigest()


def normalize_profile_url(url: Optional[str]) -> str:
    """Canonical form used to match vendor author URLs against creator URLs."""
    raw = (url or "").strip()
    if not raw:
        return ""
    if "://" not in raw:
        raw = f"https://{raw}"
    parsed = urlparse(raw)
    host = parsed.netloc.lower()
    for prefix in ("www.", "m.", "mobile."):
        if host.startswith(prefix):
            host = host[len(prefix):]
            break
    if host == "x.com":
        host = "twitter.com"
    path = parsed.path.rstrip("/").lower()
    return f"{host}{path}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(float(value), tz=timezone.utc)
    else:
        text = str(value).strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError):
                return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _safe_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _finalize(item: NormalizedContent) -> NormalizedContent:
    item.content_hash = content_hash(
        platform=item.platform,
        creator_id=item.creator_id,
        title=item.title,
        description=item.description,
        content_body=item.content_body,
        url=item.url,
    )
    return item


@dataclass(frozen=True)
class LinkedInRepost:
    repost_id: str
    url: str
    text: str
    user_id: Optional[str]
    user_name: Optional[str]
    date: Optional[str]


@dataclass(frozen=True)
class LinkedInPost:
    """LinkedIn post record as delivered by the Bright Data posts dataset."""

    id: str
    url: str
    author_url: Optional[str]
    user_id: Optional[str]
    title: Optional[str]
    headline: Optional[str]
    post_text: Optional[str]
    post_text_html: Optional[str]
    date_posted: Optional[str]
    images: List[str]
    videos: List[Dict[str, Any]]
    embedded_links: List[str]
    repost: Optional[LinkedInRepost]
    num_likes: int
    num_comments: int
    hashtags: List[str]

    platform = "linkedin"

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> Optional["LinkedInPost"]:
        post_id = str(raw.get("id") or "").strip()
        url = str(raw.get("url") or "").strip()
        if not post_id or not url:
            return None

        videos: List[Dict[str, Any]] = []
        for video in raw.get("videos") or []:
            video_url = video if isinstance(video, str) else (video or {}).get("url")
            if video_url:
                thumbnail = raw.get("video_thumbnail")
                if not thumbnail and isinstance(video, dict):
                    thumbnail = video.get("thumbnail")
                videos.append({"url": video_url, "thumbnail_url": thumbnail})

        repost_raw = raw.get("repost") or {}
        repost = None
        if isinstance(repost_raw, dict) and repost_raw.get("repost_id"):
            repost = LinkedInRepost(
                repost_id=str(repost_raw["repost_id"]),
                url=repost_raw.get("repost_url") or "",
                text=repost_raw.get("repost_text") or "",
                user_id=repost_raw.get("repost_user_id"),
                user_name=repost_raw.get("repost_user_name"),
                date=repost_raw.get("repost_date"),
            )

        return cls(
            id=post_id,
            url=url,
            author_url=raw.get("use_url") or raw.get("user_url"),
            user_id=raw.get("user_id"),
            title=raw.get("title"),
            headline=raw.get("headline"),
            post_text=raw.get("post_text"),
            post_text_html=raw.get("post_text_html"),
            date_posted=raw.get("date_posted"),
            images=[img for img in (raw.get("images") or []) if img],
            videos=videos,
            embedded_links=[link for link in (raw.get("embedded_links") or []) if link],
            repost=repost,
            num_likes=_safe_int(raw.get("num_likes")),
            num_comments=_safe_int(raw.get("num_comments")),
            hashtags=list(raw.get("hashtags") or []),
        )

    def normalize(self, creator_id: str) -> NormalizedContent:
        media: List[Dict[str, Any]] = [{"url": img, "type": "image"} for img in self.images]
        media.extend({"url": v["url"], "type": "video", "thumbnail_url": v.get("thumbnail_url")} for v in self.videos)
        media.extend({"url": link, "type": "link_preview"} for link in self.embedded_links)

        referenced = None
        if self.repost:
            referenced = {
                "platform_content_id": self.repost.repost_id,
                "url": self.repost.url,
                "text": self.repost.text,
                "author": {"id": self.repost.user_id, "name": self.repost.user_name or ""}
                if self.repost.user_id
                else None,
                "created_at": self.repost.date,
            }

        return _finalize(
            NormalizedContent(
                platform=self.platform,
                platform_content_id=self.id,
                creator_id=creator_id,
                url=self.url,
                title=self.title or self.headline or "LinkedIn post",
                description=self.post_text or "",
                content_body=self.post_text_html or self.post_text or "",
                published_at=parse_timestamp(self.date_posted) or datetime.now(timezone.utc),
                media_urls=media,
                engagement={
                    "likes": self.num_likes,
                    "comments": self.num_comments,
                    "hashtags": self.hashtags,
                },
                reference_type="retweet" if self.repost else None,
                referenced_content=referenced,
            )
        )


@dataclass(frozen=True)
class TwitterPost:
    id: str
    text: str
    created_at: Optional[str]
    author_url: Optional[str]
    metrics: Dict[str, Any]
    media: List[Dict[str, Any]]
    referenced: Optional[Dict[str, Any]]
    reference_type: Optional[str]

    platform = "twitter"

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> Optional["TwitterPost"]:
        tweet_id = str(raw.get("id") or "").strip()
        if not tweet_id:
            return None
        keys = set((raw.get("attachments") or {}).get("media_keys") or [])
        media = []
        for item in (raw.get("includes") or {}).get("media") or []:
            if item.get("media_key") not in keys:
                continue
            if item.get("type") == "photo":
                media.append({"url": item.get("url") or item.get("preview_image_url"), "type": "image"})
            elif item.get("type") in ("video", "animated_gif"):
                media.append({"url": item.get("preview_image_url"), "type": "video"})

        reference_type = None
        referenced = None
        for ref in raw.get("referenced_tweets") or []:
            reference_type = {"quoted": "quote", "retweeted": "retweet", "replied_to": "reply"}.get(ref.get("type"))
            if reference_type:
                referenced = {"platform_content_id": ref.get("id"), "text": ref.get("text") or ""}
                break

        username = raw.get("author_username")
        return cls(
            id=tweet_id,
            text=raw.get("text") or "",
            created_at=raw.get("created_at"),
            author_url=f"https://twitter.com/{username}" if username else raw.get("author_url"),
            metrics=raw.get("public_metrics") or {},
            media=[m for m in media if m.get("url")],
            referenced=referenced,
            reference_type=reference_type,
        )

    def normalize(self, creator_id: str) -> NormalizedContent:
        return _finalize(
            NormalizedContent(
                platform=self.platform,
                platform_content_id=self.id,
                creator_id=creator_id,
                url=f"https://twitter.com/i/status/{self.id}",
                title="",
                description=self.text,
                content_body=self.text,
                published_at=parse_timestamp(self.created_at) or datetime.now(timezone.utc),
                media_urls=self.media,
                engagement={
                    "likes": self.metrics.get("like_count"),
                    "retweets": self.metrics.get("retweet_count"),
                    "comments": self.metrics.get("reply_count"),
                },
                reference_type=self.reference_type,
                referenced_content=self.referenced,
            )
        )


@dataclass(frozen=True)
class ThreadsPost:
    id: str
    url: str
    text: str
    timestamp: Optional[str]
    author_url: Optional[str]
    media: List[Dict[str, Any]]
    likes: Optional[int]
    replies: Optional[int]

    platform = "threads"

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> Optional["ThreadsPost"]:
        post_id = str(raw.get("id") or "").strip()
        url = str(raw.get("url") or "").strip()
        if not post_id or not url:
            return None
        return cls(
            id=post_id,
            url=url,
            text=raw.get("text") or "",
            timestamp=raw.get("timestamp"),
            author_url=raw.get("profile_url"),
            media=[
                {"url": m.get("url"), "type": m.get("type") or "image"}
                for m in raw.get("media") or []
                if isinstance(m, dict) and m.get("url")
            ],
            likes=raw.get("likeCount"),
            replies=raw.get("replyCount"),
        )

    def normalize(self, creator_id: str) -> NormalizedContent:
        return _finalize(
            NormalizedContent(
                platform=self.platform,
                platform_content_id=self.id,
                creator_id=creator_id,
                url=self.url,
                title="",
                description=self.text,
                content_body=self.text,
                published_at=parse_timestamp(self.timestamp) or datetime.now(timezone.utc),
                media_urls=self.media,
                engagement={"likes": self.likes, "comments": self.replies},
            )
        )


@dataclass(frozen=True)
class RssItem:
    guid: str
    link: str
    title: str
    content: str
    snippet: str
    pub_date: Optional[str]
    enclosure: Optional[Dict[str, Any]]

    platform = "rss"

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], feed_url: str = "") -> Optional["RssItem"]:
        link = str(raw.get("link") or "").strip()
        guid = str(raw.get("guid") or link or "").strip()
        if not guid and feed_url and raw.get("pubDate"):
            guid = f"{feed_url}_{raw['pubDate']}"
        if not guid:
            return None
        return cls(
            guid=guid,
            link=link or feed_url,
            title=raw.get("title") or "Untitled",
            content=raw.get("content") or raw.get("contentSnippet") or "",
            snippet=raw.get("contentSnippet") or "",
            pub_date=raw.get("pubDate") or raw.get("isoDate"),
            enclosure=raw.get("enclosure") if isinstance(raw.get("enclosure"), dict) else None,
        )

    def normalize(self, creator_id: str) -> NormalizedContent:
        media: List[Dict[str, Any]] = []
        if self.enclosure and self.enclosure.get("url"):
            mime = str(self.enclosure.get("type") or "").lower()
            kind = "document"
            for prefix, name in (("image/", "image"), ("video/", "video"), ("audio/", "audio")):
                if mime.startswith(prefix):
                    kind = name
            media.append({"url": self.enclosure["url"], "type": kind})
        media.extend({"url": src, "type": "image"} for src in _IMG_SRC_RE.findall(self.content))

        text = strip_html(self.content)
        return _finalize(
            NormalizedContent(
                platform=self.platform,
                platform_content_id=self.guid,
                creator_id=creator_id,
                url=self.link,
                title=self.title,
                description=self.snippet or text[:300],
                content_body=self.content,
                published_at=parse_timestamp(self.pub_date) or datetime.now(timezone.utc),
                media_urls=media,
            )
        )


PlatformRecord = Union[LinkedInPost, TwitterPost, ThreadsPost, RssItem]

_PARSERS = {
    "linkedin": LinkedInPost.from_raw,
    "twitter": TwitterPost.from_raw,
    "threads": ThreadsPost.from_raw,
    "rss": RssItem.from_raw,
}


def parse_vendor_record(platform: str, raw: Dict[str, Any]) -> Optional[PlatformRecord]:
    """Parse a raw vendor payload; returns None for records missing identity fields."""
    parser = _PARSERS.get((platform or "").lower())
    if parser is None:
        raise ValueError(f"Unsupported platform: {platform}")
    if not isinstance(raw, dict):
        return None
    return parser(raw)
